"""Customer health score formula and nightly job tests."""

from datetime import timedelta

import pytest

from models.health import HealthScore, HealthTrend, RiskLevel
from models.outreach import OutreachType
from models.ticket import Ticket, TicketStatus
from services.health_scorer import HealthScorer, derive_trend, risk_for, score_customer


def _tickets(now, customer_id="cust-1", **counts):
    tickets = []
    for status, count in counts.items():
        for i in range(count):
            tickets.append(
                Ticket(
                    id=f"{customer_id}-{status}-{i}",
                    customer_id=customer_id,
                    status=TicketStatus(status),
                    created_at=now - timedelta(days=i + 1),
                )
            )
    return tickets


class TestScoreFormula:
    def test_mixed_history(self, clock):
        now = clock.now()
        tickets = _tickets(now, resolved=2, open=1)
        ratings = {"cust-1-resolved-0": 5, "cust-1-resolved-1": 4}

        score = score_customer("cust-1", tickets, ratings, now)

        # 70 + 15 (csat 4.5) - 5 (one open) + 2 (resolved)
        assert score.score == 82
        assert score.risk_level == RiskLevel.HEALTHY
        assert score.factors.avg_csat == 4.5
        assert score.factors.days_since_last_ticket == 1

    def test_penalties_are_capped(self, clock):
        now = clock.now()
        tickets = _tickets(now, open=4, pending=2, escalated=4)

        score = score_customer("cust-1", tickets, {}, now)

        assert score.score == 15
        assert score.risk_level == RiskLevel.CRITICAL
        assert score.factors.open_tickets == 6
        assert score.factors.escalation_count == 4

    def test_high_resolution_rate_bonus(self, clock):
        now = clock.now()
        score = score_customer("cust-1", _tickets(now, resolved=5), {}, now)
        assert score.score == 85
        assert score.factors.resolution_rate == 1.0

    def test_half_point_csat_rounds_up(self, clock):
        now = clock.now()
        tickets = _tickets(now, resolved=4)
        ratings = dict(zip((t.id for t in tickets), [3, 3, 3, 4]))

        score = score_customer("cust-1", tickets, ratings, now)

        # 70 + 3 (csat 3.25 -> 2.5 rounds up) + 4 (resolved) + 10 (resolution rate)
        assert score.score == 87

    def test_score_clamped_to_100(self, clock):
        now = clock.now()
        tickets = _tickets(now, resolved=12)
        ratings = {t.id: 5 for t in tickets}
        assert score_customer("cust-1", tickets, ratings, now).score == 100

    def test_pure_function(self, clock):
        now = clock.now()
        tickets = _tickets(now, resolved=2, escalated=1)
        before = [t.model_copy() for t in tickets]

        first = score_customer("cust-1", tickets, {}, now, previous=80)
        second = score_customer("cust-1", tickets, {}, now, previous=80)

        assert first == second
        assert tickets == before

    @pytest.mark.parametrize(
        "score,risk", [(60, RiskLevel.HEALTHY), (59, RiskLevel.AT_RISK), (40, RiskLevel.AT_RISK), (39, RiskLevel.CRITICAL)]
    )
    def test_risk_bands(self, score, risk):
        assert risk_for(score) == risk


class TestTrend:
    def test_trend_relative_to_previous_score(self):
        assert derive_trend(None, 50) == HealthTrend.STABLE
        assert derive_trend(50, 56) == HealthTrend.IMPROVING
        assert derive_trend(50, 54) == HealthTrend.STABLE
        assert derive_trend(60, 56) == HealthTrend.STABLE
        assert derive_trend(60, 54) == HealthTrend.DECLINING

    def test_change_of_exactly_five_counts(self):
        assert derive_trend(50, 55) == HealthTrend.IMPROVING
        assert derive_trend(60, 55) == HealthTrend.DECLINING


class TestHealthScorerJob:
    def test_scores_customers_and_alerts_once_per_window(self, any_store, clock):
        now = clock.now()
        for ticket in _tickets(now, "cust-bad", open=3, escalated=3) + _tickets(now, "cust-ok", resolved=3):
            any_store.insert_ticket(ticket)
        scorer = HealthScorer(any_store, clock=clock)

        result = scorer.run()

        assert result.counts["processed"] == 2
        assert result.counts["updated"] == 2
        assert result.counts["critical"] == 1
        assert result.counts["alerts"] == 1
        assert any_store.get_health_score("cust-bad").risk_level == RiskLevel.CRITICAL
        assert any_store.has_alert_since("cust-bad", now - timedelta(minutes=1))
        assert not any_store.has_alert_since("cust-ok", now - timedelta(days=30))

        clock.advance(days=1)
        rerun = scorer.run()
        assert rerun.counts.get("alerts", 0) == 0
        assert any_store.get_health_score("cust-bad").trend == HealthTrend.STABLE

    def test_alert_writes_outreach_row(self, store, clock):
        for ticket in _tickets(clock.now(), "cust-bad", open=3, escalated=3):
            store.insert_ticket(ticket)

        HealthScorer(store, clock=clock).run()

        logs = list(store.outreach.values())
        assert [log.outreach_type for log in logs] == [OutreachType.HEALTH_ALERT]
        assert logs[0].customer_id == "cust-bad"

    def test_declining_customer_is_alerted(self, store, clock):
        now = clock.now()
        store.upsert_health_score(
            HealthScore(customer_id="cust-1", score=90, risk_level=RiskLevel.HEALTHY, calculated_at=now)
        )
        for ticket in _tickets(now, open=2):
            store.insert_ticket(ticket)

        result = HealthScorer(store, clock=clock).run()

        score = store.get_health_score("cust-1")
        assert score.score == 60
        assert score.trend == HealthTrend.DECLINING
        assert result.counts["alerts"] == 1

    def test_old_tickets_ignored(self, store, clock):
        store.insert_ticket(
            Ticket(customer_id="cust-old", created_at=clock.now() - timedelta(days=120))
        )
        result = HealthScorer(store, clock=clock).run()
        assert result.counts == {}

    def test_one_failing_customer_does_not_stop_the_run(self, store, clock, monkeypatch):
        now = clock.now()
        for ticket in _tickets(now, "cust-a", resolved=1) + _tickets(now, "cust-b", resolved=1):
            store.insert_ticket(ticket)
        original = store.get_health_score

        def flaky(customer_id):
            if customer_id == "cust-a":
                raise RuntimeError("connection reset")
            return original(customer_id)

        monkeypatch.setattr(store, "get_health_score", flaky)

        result = HealthScorer(store, clock=clock).run()

        assert result.counts["errors"] == 1
        assert result.counts["updated"] == 1
