"""Lifecycle job tests: follow-ups, auto-close, revivals, check-ins, SLA sweep."""

from datetime import timedelta

import pytest

from fakes import FakeEmailer, FakeLanguageModel
from models.outreach import DeliveryStatus, OutreachType
from models.ticket import Customer, Message, Priority, SenderType, Ticket, TicketStatus
from services.lifecycle_scheduler import (
    CLOSE_AFTER_INACTIVITY,
    CLOSE_AFTER_RESOLVE,
    FOLLOW_UP_FALLBACK,
    LifecycleScheduler,
    checkin_subject,
)
from services.sla_clock import due_dates
from utils.settings import Settings


def _ticket(store, clock, ticket_id, status=TicketStatus.PENDING, **fields):
    values = dict(
        id=ticket_id,
        customer_id="cust-1",
        subject="Export is slow",
        status=status,
        created_at=clock.now() - timedelta(days=2),
        updated_at=clock.now() - timedelta(days=1),
    )
    values.update(fields)
    ticket = Ticket(**values)
    store.insert_ticket(ticket)
    return ticket


@pytest.fixture
def customer(any_store):
    return any_store.add_customer(Customer(id="cust-1", name="Dana", email="dana@example.com"))


def _scheduler(store, clock, model=None, emailer=None, **settings):
    return LifecycleScheduler(
        store, language_model=model, emailer=emailer, clock=clock, settings=Settings(**settings)
    )


class TestFollowUps:
    def test_follow_up_sent_once(self, any_store, clock, customer):
        _ticket(any_store, clock, "t-1", follow_up_at=clock.now() - timedelta(hours=1))
        emailer = FakeEmailer()
        scheduler = _scheduler(any_store, clock, FakeLanguageModel(text="Any luck with the export?"), emailer)

        result = scheduler.run_follow_ups()

        assert result.counts == {"processed": 1}
        message = any_store.last_message("t-1")
        assert message.sender_type == SenderType.SYSTEM
        assert message.content == "Any luck with the export?"
        assert [m["to"] for m in emailer.sent] == ["dana@example.com"]
        assert any_store.has_outreach("t-1", OutreachType.FOLLOW_UP)
        assert any_store.get_ticket("t-1").follow_up_at is None

        rerun = scheduler.run_follow_ups()
        assert rerun.counts.get("processed", 0) == 0

    def test_not_yet_due_or_wrong_status(self, any_store, clock, customer):
        _ticket(any_store, clock, "future", follow_up_at=clock.now() + timedelta(hours=1))
        _ticket(any_store, clock, "escalated", status=TicketStatus.ESCALATED,
                follow_up_at=clock.now() - timedelta(hours=1))

        result = _scheduler(any_store, clock).run_follow_ups()

        assert result.counts.get("processed", 0) == 0

    def test_model_timeout_uses_fallback(self, store, clock):
        _ticket(store, clock, "t-1", follow_up_at=clock.now() - timedelta(hours=1))
        model = FakeLanguageModel(text="too late", delay=0.5)

        _scheduler(store, clock, model, llm_timeout_seconds=0.05).run_follow_ups()

        assert store.last_message("t-1").content == FOLLOW_UP_FALLBACK

    def test_email_disabled(self, store, clock):
        store.add_customer(Customer(id="cust-1", email="dana@example.com"))
        _ticket(store, clock, "t-1", follow_up_at=clock.now() - timedelta(hours=1))
        emailer = FakeEmailer()

        _scheduler(store, clock, emailer=emailer, follow_up_email_enabled=False).run_follow_ups()

        assert emailer.sent == []
        assert [log.channel for log in store.outreach.values()] == ["internal"]

    def test_failing_ticket_does_not_stop_batch(self, store, clock, monkeypatch):
        _ticket(store, clock, "t-1", follow_up_at=clock.now() - timedelta(hours=2))
        _ticket(store, clock, "t-2", follow_up_at=clock.now() - timedelta(hours=1))
        original = store.insert_message

        def flaky(message):
            if message.ticket_id == "t-1":
                raise RuntimeError("write failed")
            return original(message)

        monkeypatch.setattr(store, "insert_message", flaky)

        result = _scheduler(store, clock).run_follow_ups()

        assert result.counts == {"errors": 1, "processed": 1}


class TestAutoClose:
    def test_inactive_ticket_is_resolved(self, any_store, clock, customer):
        _ticket(any_store, clock, "t-1", auto_close_at=clock.now() - timedelta(minutes=1),
                follow_up_at=clock.now() + timedelta(hours=1),
                resolution_due_at=clock.now() + timedelta(hours=1))

        result = _scheduler(any_store, clock).run_auto_closes()

        assert result.counts == {"processed": 1}
        ticket = any_store.get_ticket("t-1")
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.resolved_at == clock.now()
        assert ticket.resolution_breached is False
        assert ticket.auto_close_at is None
        assert ticket.follow_up_at is None
        assert any_store.last_message("t-1").content == CLOSE_AFTER_INACTIVITY
        assert any_store.has_outreach("t-1", OutreachType.AUTO_CLOSE)
        assert any_store.list_events(["t-1"], event_type="status_changed")

    def test_late_close_records_resolution_breach(self, store, clock):
        _ticket(store, clock, "t-1", auto_close_at=clock.now() - timedelta(minutes=1),
                resolution_due_at=clock.now() - timedelta(hours=1))

        _scheduler(store, clock).run_auto_closes()

        assert store.get_ticket("t-1").resolution_breached is True

    def test_resolved_ticket_is_closed_out(self, any_store, clock, customer):
        resolved_at = clock.now() - timedelta(days=3)
        _ticket(any_store, clock, "t-1", status=TicketStatus.RESOLVED, resolved_at=resolved_at,
                auto_close_at=clock.now() - timedelta(minutes=1))

        scheduler = _scheduler(any_store, clock)
        scheduler.run_auto_closes()

        ticket = any_store.get_ticket("t-1")
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.resolved_at == resolved_at
        assert ticket.auto_close_at is None
        assert any_store.last_message("t-1").content == CLOSE_AFTER_RESOLVE
        assert scheduler.run_auto_closes().counts.get("processed", 0) == 0


class TestStalledRevivals:
    def _stalled(self, store, clock, sender=SenderType.AI, hours=25):
        _ticket(store, clock, "t-1")
        store.insert_message(
            Message(ticket_id="t-1", sender_type=sender, content="Try clearing the cache.",
                    created_at=clock.now() - timedelta(hours=hours))
        )

    def test_revives_quiet_conversation(self, any_store, clock, customer):
        self._stalled(any_store, clock)

        result = _scheduler(any_store, clock).run_stalled_revivals()

        assert result.counts == {"processed": 1}
        message = any_store.last_message("t-1")
        assert message.sender_type == SenderType.AI
        assert message.content.startswith("Hi Dana,")
        assert '"Export is slow"' in message.content
        assert any_store.has_outreach("t-1", OutreachType.STALLED_REVIVAL)

    def test_cooldown_prevents_repeat(self, any_store, clock, customer):
        self._stalled(any_store, clock)
        scheduler = _scheduler(any_store, clock)
        scheduler.run_stalled_revivals()

        clock.advance(hours=30)
        assert scheduler.run_stalled_revivals().counts.get("processed", 0) == 0

        clock.advance(days=3)
        assert scheduler.run_stalled_revivals().counts == {"processed": 1}

    def test_customer_spoke_last(self, any_store, clock, customer):
        self._stalled(any_store, clock, sender=SenderType.CUSTOMER)
        assert _scheduler(any_store, clock).run_stalled_revivals().counts == {"skipped": 1}

    def test_recent_reply_is_not_stalled(self, any_store, clock, customer):
        self._stalled(any_store, clock, hours=5)
        assert _scheduler(any_store, clock).run_stalled_revivals().counts == {"skipped": 1}

    def test_run_is_capped(self, store, clock):
        for i in range(3):
            _ticket(store, clock, f"t-{i}")
            store.insert_message(
                Message(ticket_id=f"t-{i}", sender_type=SenderType.AGENT, content="Done?",
                        created_at=clock.now() - timedelta(hours=48))
            )

        result = _scheduler(store, clock, max_revivals_per_run=2).run_stalled_revivals()

        assert result.counts == {"processed": 2}


class TestCheckins:
    def test_checkin_sent_five_days_after_resolution(self, store, clock):
        store.add_customer(Customer(id="cust-1", name="Dana", email="dana@example.com"))
        _ticket(store, clock, "t-1", status=TicketStatus.RESOLVED,
                resolved_at=clock.now() - timedelta(days=5, hours=2))
        _ticket(store, clock, "t-2", status=TicketStatus.RESOLVED,
                resolved_at=clock.now() - timedelta(days=4))
        emailer = FakeEmailer()
        scheduler = _scheduler(store, clock, emailer=emailer)

        result = scheduler.run_checkins()

        assert result.counts == {"processed": 1}
        assert emailer.sent[0]["subject"] == checkin_subject("t-1")
        assert emailer.sent[0]["subject"] == "Following up on your support request - #T-1"
        assert "<p>Hi Dana,</p>" in emailer.sent[0]["html"]
        logs = list(store.outreach.values())
        assert [log.delivery_status for log in logs] == [DeliveryStatus.SENT]

        assert scheduler.run_checkins().counts == {"skipped": 1}
        assert len(emailer.sent) == 1

    def test_checkin_html_escapes_subject(self, store, clock):
        store.add_customer(Customer(id="cust-1", name="Dana", email="dana@example.com"))
        _ticket(store, clock, "t-1", status=TicketStatus.RESOLVED, subject="<script>alert(1)</script>",
                resolved_at=clock.now() - timedelta(days=5, hours=2))
        emailer = FakeEmailer()

        _scheduler(store, clock, emailer=emailer).run_checkins()

        assert "<script>alert(1)</script>" in emailer.sent[0]["text"]
        assert "<script>" not in emailer.sent[0]["html"]
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in emailer.sent[0]["html"]

    def test_checkin_candidates_are_capped(self, store, clock):
        for i in range(3):
            store.add_customer(Customer(id=f"cust-{i}", email=f"c{i}@example.com"))
            _ticket(store, clock, f"t-{i}", status=TicketStatus.RESOLVED, customer_id=f"cust-{i}",
                    resolved_at=clock.now() - timedelta(days=5, hours=2 + i))
        emailer = FakeEmailer()

        result = _scheduler(store, clock, emailer=emailer, checkin_candidate_limit=2).run_checkins()

        assert result.counts == {"processed": 2}
        assert len(emailer.sent) == 2

    def test_failed_email_is_recorded(self, store, clock):
        store.add_customer(Customer(id="cust-1", email="dana@example.com"))
        _ticket(store, clock, "t-1", status=TicketStatus.RESOLVED,
                resolved_at=clock.now() - timedelta(days=5))

        result = _scheduler(store, clock, emailer=FakeEmailer(success=False)).run_checkins()

        assert result.counts == {"errors": 1}
        assert [log.delivery_status for log in store.outreach.values()] == [DeliveryStatus.FAILED]

    def test_customer_without_email_is_skipped(self, any_store, clock):
        any_store.add_customer(Customer(id="cust-1", name="Dana"))
        _ticket(any_store, clock, "t-1", status=TicketStatus.RESOLVED,
                resolved_at=clock.now() - timedelta(days=5))

        result = _scheduler(any_store, clock, emailer=FakeEmailer()).run_checkins()

        assert result.counts == {"skipped": 1}


class TestSlaSweep:
    def test_breach_flags_persisted_monotonically(self, any_store, clock):
        created = clock.now() - timedelta(hours=2)
        first_due, resolution_due = due_dates(Priority.URGENT, created)
        _ticket(any_store, clock, "t-1", status=TicketStatus.OPEN, priority=Priority.URGENT,
                created_at=created, first_response_due_at=first_due,
                resolution_due_at=resolution_due)
        scheduler = _scheduler(any_store, clock)

        assert scheduler.run_sla_sweep().counts == {"processed": 1}
        ticket = any_store.get_ticket("t-1")
        assert ticket.first_response_breached is True
        assert ticket.resolution_breached is False

        assert scheduler.run_sla_sweep().counts == {"skipped": 1}

        clock.advance(hours=3)
        scheduler.run_sla_sweep()
        assert any_store.get_ticket("t-1").resolution_breached is True
        assert scheduler.run_sla_sweep().counts == {}
