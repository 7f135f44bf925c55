"""Behaviour shared by the in-memory and SQLAlchemy ticket stores."""

from datetime import timedelta, timezone

from models.handoff import Handoff, HandoffStatus
from models.health import HealthScore, HealthTrend, RiskLevel
from models.outreach import DeliveryStatus, OutreachLog, OutreachType
from models.ticket import Message, Queue, SenderType, Ticket, TicketStatus
from repositories.base import TicketQuery


def _ticket(clock, **fields):
    values = dict(customer_id="cust-1", subject="Help", created_at=clock.now())
    values.update(fields)
    return Ticket(**values)


class TestTickets:
    def test_round_trip_keeps_utc_datetimes(self, any_store, clock):
        ticket = any_store.insert_ticket(_ticket(clock, tags=["billing"]))

        loaded = any_store.get_ticket(ticket.id)

        assert loaded.created_at == clock.now()
        assert loaded.created_at.tzinfo is not None
        assert loaded.created_at.utcoffset() == timezone.utc.utcoffset(None)
        assert loaded.intent_category == "billing"
        assert any_store.get_ticket("missing") is None

    def test_conditional_update(self, any_store, clock):
        ticket = any_store.insert_ticket(_ticket(clock))

        updated = any_store.update_ticket_if_status(
            ticket.id, [TicketStatus.OPEN], {"status": TicketStatus.ESCALATED, "queue": Queue.HUMAN}
        )
        lost = any_store.update_ticket_if_status(
            ticket.id, [TicketStatus.OPEN], {"status": TicketStatus.RESOLVED}
        )

        assert updated.status == TicketStatus.ESCALATED
        assert updated.queue == Queue.HUMAN
        assert lost is None
        assert any_store.get_ticket(ticket.id).status == TicketStatus.ESCALATED

    def test_list_filters(self, any_store, clock):
        now = clock.now()
        due = any_store.insert_ticket(_ticket(clock, status=TicketStatus.PENDING,
                                               follow_up_at=now - timedelta(hours=1)))
        any_store.insert_ticket(_ticket(clock, status=TicketStatus.PENDING,
                                        follow_up_at=now + timedelta(hours=1)))
        any_store.insert_ticket(_ticket(clock, customer_id="cust-2",
                                        created_at=now - timedelta(days=100)))

        follow_ups = any_store.list_tickets(
            TicketQuery(statuses=[TicketStatus.PENDING], follow_up_before=now)
        )
        recent = any_store.list_tickets(TicketQuery(created_since=now - timedelta(days=90), limit=None))
        limited = any_store.list_tickets(TicketQuery(limit=1))

        assert [t.id for t in follow_ups] == [due.id]
        assert {t.customer_id for t in recent} == {"cust-1"}
        assert len(limited) == 1
        assert limited[0].customer_id == "cust-2"


class TestMessages:
    def test_last_message_skips_internal_notes(self, any_store, clock):
        ticket = any_store.insert_ticket(_ticket(clock))
        any_store.insert_message(Message(ticket_id=ticket.id, sender_type=SenderType.CUSTOMER,
                                         content="Hi", created_at=clock.now()))
        any_store.insert_message(Message(ticket_id=ticket.id, sender_type=SenderType.AGENT,
                                         content="note", is_internal=True,
                                         metadata={"pinned": True},
                                         created_at=clock.now() + timedelta(minutes=1)))

        assert any_store.last_message(ticket.id).content == "Hi"
        internal = any_store.last_message(ticket.id, include_internal=True)
        assert internal.content == "note"
        assert internal.metadata == {"pinned": True}
        assert any_store.count_messages(ticket.id) == 2
        assert any_store.count_messages(ticket.id, SenderType.CUSTOMER) == 1


class TestHandoffs:
    def test_one_pending_handoff_per_ticket(self, any_store, clock):
        first = Handoff(ticket_id="t-1", from_agent_id="a", to_agent_id="b", reason="x",
                        created_at=clock.now())
        second = Handoff(ticket_id="t-1", from_agent_id="a", to_agent_id="c", reason="y",
                         created_at=clock.now())

        assert any_store.insert_pending_handoff(first) is True
        assert any_store.insert_pending_handoff(second) is False

        swapped = any_store.update_handoff_if_pending(
            first.id, {"status": HandoffStatus.DECLINED, "resolved_at": clock.now()}
        )
        assert swapped.status == HandoffStatus.DECLINED
        assert any_store.update_handoff_if_pending(first.id, {"status": HandoffStatus.ACCEPTED}) is None
        assert any_store.insert_pending_handoff(second) is True
        assert any_store.find_pending_handoff("t-1").id == second.id


class TestOutreachAndScores:
    def test_outreach_guard_window(self, any_store, clock):
        log = any_store.insert_outreach(
            OutreachLog(ticket_id="t-1", customer_id="cust-1",
                        outreach_type=OutreachType.STALLED_REVIVAL,
                        delivery_status=DeliveryStatus.PENDING, created_at=clock.now())
        )
        any_store.update_outreach_status(log.id, DeliveryStatus.SENT)

        assert any_store.has_outreach("t-1", OutreachType.STALLED_REVIVAL)
        assert any_store.has_outreach("t-1", OutreachType.STALLED_REVIVAL,
                                      since=clock.now() - timedelta(days=3))
        assert not any_store.has_outreach("t-1", OutreachType.STALLED_REVIVAL,
                                          since=clock.now() + timedelta(seconds=1))
        assert not any_store.has_outreach("t-1", OutreachType.FOLLOW_UP)

    def test_health_score_upsert(self, any_store, clock):
        score = HealthScore(customer_id="cust-1", score=55, risk_level=RiskLevel.AT_RISK,
                            calculated_at=clock.now())
        any_store.upsert_health_score(score)
        any_store.upsert_health_score(
            score.model_copy(update={"score": 30, "risk_level": RiskLevel.CRITICAL,
                                     "trend": HealthTrend.DECLINING})
        )

        stored = any_store.get_health_score("cust-1")
        assert stored.score == 30
        assert stored.trend == HealthTrend.DECLINING
        assert any_store.get_health_score("cust-2") is None

    def test_ratings(self, any_store):
        any_store.add_feedback("t-1", 5)
        any_store.add_feedback("t-2", 2)
        assert any_store.ratings_for(["t-1", "t-3"]) == {"t-1": 5}
        assert any_store.ratings_for([]) == {}

    def test_default_threshold_map(self, any_store):
        thresholds = any_store.get_threshold_map()
        assert thresholds.default == 0.7
        assert thresholds.per_intent == {}
