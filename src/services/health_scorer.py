"""
Customer health scoring.

``score_customer`` is a pure function of a customer's recent tickets and
their CSAT ratings. ``HealthScorer.run`` applies it to every customer seen in
the trailing window and owns the side effects: the score upsert, and the
alert plus outreach row for critical or declining customers.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

from models.health import HealthAlert, HealthFactors, HealthScore, HealthTrend, RiskLevel
from models.jobs import JobResult
from models.outreach import OutreachLog, OutreachType
from models.ticket import Ticket, TicketStatus
from repositories.base import TicketQuery, TicketStore
from utils.clock import SystemClock
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

BASE_SCORE = 70
HEALTHY_MIN = 60
AT_RISK_MIN = 40
TREND_DELTA = 5


def risk_for(score: int) -> RiskLevel:
    if score >= HEALTHY_MIN:
        return RiskLevel.HEALTHY
    if score >= AT_RISK_MIN:
        return RiskLevel.AT_RISK
    return RiskLevel.CRITICAL


def _round_half_up(value: float) -> int:
    # .5 rounds toward +inf, unlike round()
    return math.floor(value + 0.5)


def derive_trend(previous: Optional[int], score: int) -> HealthTrend:
    """Trend relative to the last stored score; stable without history."""
    if previous is None:
        return HealthTrend.STABLE
    change = score - previous
    if change >= TREND_DELTA:
        return HealthTrend.IMPROVING
    if change <= -TREND_DELTA:
        return HealthTrend.DECLINING
    return HealthTrend.STABLE


def score_customer(
    customer_id: str,
    tickets: Iterable[Ticket],
    ratings: Mapping[str, int],
    now: datetime,
    previous: Optional[int] = None,
) -> HealthScore:
    tickets = list(tickets)
    open_count = sum(1 for t in tickets if t.status in (TicketStatus.OPEN, TicketStatus.PENDING))
    escalated = sum(1 for t in tickets if t.status == TicketStatus.ESCALATED)
    resolved = sum(1 for t in tickets if t.status == TicketStatus.RESOLVED)
    scores = [ratings[t.id] for t in tickets if t.id in ratings]
    avg_csat = sum(scores) / len(scores) if scores else None
    resolution_rate = resolved / len(tickets) if tickets else None
    last_created = max((t.created_at for t in tickets), default=None)

    score = BASE_SCORE
    if avg_csat is not None:
        score += _round_half_up((avg_csat - 3) * 10)
    score -= min(open_count * 5, 25)
    score -= min(escalated * 10, 30)
    score += min(resolved, 10)
    if resolution_rate is not None and resolution_rate > 0.8:
        score += 10
    score = max(0, min(100, score))

    return HealthScore(
        customer_id=customer_id,
        score=score,
        risk_level=risk_for(score),
        trend=derive_trend(previous, score),
        factors=HealthFactors(
            ticket_count=len(tickets),
            open_tickets=open_count,
            escalation_count=escalated,
            resolved_tickets=resolved,
            avg_csat=round(avg_csat, 2) if avg_csat is not None else None,
            days_since_last_ticket=(now - last_created).days if last_created else None,
            resolution_rate=round(resolution_rate, 2) if resolution_rate is not None else None,
        ),
        calculated_at=now,
    )


class HealthScorer:
    """Nightly job recomputing scores for recently active customers."""

    def __init__(self, store: TicketStore, clock=None, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.settings = settings or Settings()

    def run(self) -> JobResult:
        now = self.clock.now()
        result = JobResult()
        logger.info("Health scoring started", extra={"job": "health_scores"})

        tickets = self.store.list_tickets(
            TicketQuery(created_since=now - timedelta(days=self.settings.health_window_days), limit=None)
        )
        by_customer: Dict[str, List[Ticket]] = defaultdict(list)
        for ticket in tickets:
            by_customer[ticket.customer_id].append(ticket)

        for customer_id, customer_tickets in by_customer.items():
            result.bump("processed")
            try:
                score = self._score_one(customer_id, customer_tickets, now)
            except Exception as exc:
                result.bump("errors")
                logger.error(
                    "Health scoring failed for customer",
                    extra={"customer_id": customer_id, "error": str(exc)},
                )
                continue
            result.bump("updated")
            if score.risk_level == RiskLevel.CRITICAL:
                result.bump("critical")
            if self._maybe_alert(score, now):
                result.bump("alerts")

        logger.info("Health scoring completed", extra={"job": "health_scores", "counts": result.counts})
        return result

    def _score_one(self, customer_id: str, tickets: List[Ticket], now: datetime) -> HealthScore:
        ratings = self.store.ratings_for(t.id for t in tickets)
        stored = self.store.get_health_score(customer_id)
        score = score_customer(
            customer_id, tickets, ratings, now, stored.score if stored else None
        )
        return self.store.upsert_health_score(score)

    def _maybe_alert(self, score: HealthScore, now: datetime) -> bool:
        if score.risk_level != RiskLevel.CRITICAL and score.trend != HealthTrend.DECLINING:
            return False
        since = now - timedelta(days=self.settings.alert_cooldown_days)
        if self.store.has_alert_since(score.customer_id, since):
            return False

        self.store.insert_alert(
            HealthAlert(
                customer_id=score.customer_id,
                score=score.score,
                risk_level=score.risk_level,
                trend=score.trend,
                created_at=now,
            )
        )
        self.store.insert_outreach(
            OutreachLog(
                customer_id=score.customer_id,
                outreach_type=OutreachType.HEALTH_ALERT,
                message_content=(
                    f"Customer health score {score.score} "
                    f"({score.risk_level.value}, {score.trend.value})"
                ),
                trigger_reason=f"health_{score.risk_level.value}_{score.trend.value}",
                created_at=now,
            )
        )
        logger.warning(
            "Customer health alert raised",
            extra={"customer_id": score.customer_id, "score": score.score,
                   "risk_level": score.risk_level.value},
        )
        return True
