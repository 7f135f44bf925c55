"""
Confidence threshold calibration.

Looks back over recently resolved tickets, labels each AI-scored ticket with
an outcome, and recommends a per-intent confidence threshold from the
observed success rate and CSAT.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from models.calibration import (
    CalibrationOutcome,
    CalibrationSample,
    IntentCalibration,
    ThresholdMap,
)
from models.jobs import JobResult
from models.ticket import Ticket, TicketStatus
from repositories.base import TicketQuery, TicketStore
from services.escalation_policy import ThresholdProvider
from utils.clock import SystemClock
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

def classify_outcome(ticket: Ticket, escalated: bool, csat: Optional[int]) -> CalibrationOutcome:
    if ticket.ai_handled and not escalated:
        return CalibrationOutcome.RESOLVED_BY_AI
    if escalated and csat is not None and csat >= 4:
        return CalibrationOutcome.ESCALATED_HELPFUL
    if escalated:
        return CalibrationOutcome.ESCALATED_UNNECESSARY
    return CalibrationOutcome.RESOLVED_BY_AI


def recommended_threshold(success_rate: float, avg_csat: Optional[float]) -> float:
    """Lower the bar where the AI has earned it, raise it where it has not."""
    if success_rate >= 0.9 and avg_csat is not None and avg_csat >= 4:
        return 0.6
    if success_rate >= 0.8:
        return 0.7
    if success_rate >= 0.6:
        return 0.8
    return 0.9


def summarize(intent: str, samples: List[CalibrationSample]) -> IntentCalibration:
    """Aggregate one intent; success means the AI resolved it without escalation."""
    total = len(samples)
    successes = sum(1 for s in samples if s.outcome == CalibrationOutcome.RESOLVED_BY_AI)
    ratings = [s.csat for s in samples if s.csat is not None]
    avg_csat = sum(ratings) / len(ratings) if ratings else None
    success_rate = successes / total
    return IntentCalibration(
        intent_category=intent,
        total_samples=total,
        avg_initial_confidence=round(sum(s.initial_confidence for s in samples) / total, 3),
        success_rate=round(success_rate, 3),
        avg_csat=round(avg_csat, 2) if avg_csat is not None else None,
        recommended_threshold=recommended_threshold(success_rate, avg_csat),
    )


class CalibrationJob:
    """Weekly recalibration of escalation thresholds."""

    def __init__(
        self,
        store: TicketStore,
        thresholds: Optional[ThresholdProvider] = None,
        clock=None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.thresholds = thresholds
        self.clock = clock or SystemClock()
        self.settings = settings or Settings()

    def run(self) -> JobResult:
        now = self.clock.now()
        result = JobResult()
        logger.info("Calibration started", extra={"job": "calibration"})

        tickets = self.store.list_tickets(
            TicketQuery(
                statuses=[TicketStatus.RESOLVED],
                created_since=now - timedelta(days=self.settings.calibration_window_days),
                limit=None,
            )
        )
        ticket_ids = [t.id for t in tickets]
        escalated_ids = {
            e.ticket_id for e in self.store.list_events(ticket_ids, event_type="escalated")
        }
        ratings = self.store.ratings_for(ticket_ids)

        by_intent: Dict[str, List[CalibrationSample]] = defaultdict(list)
        for ticket in tickets:
            result.bump("analyzed")
            if ticket.ai_confidence is None:
                continue
            escalated = ticket.id in escalated_ids
            csat = ratings.get(ticket.id)
            resolution_hours = None
            if ticket.resolved_at is not None:
                resolution_hours = round(
                    (ticket.resolved_at - ticket.created_at).total_seconds() / 3600, 2
                )
            sample = CalibrationSample(
                ticket_id=ticket.id,
                initial_confidence=ticket.ai_confidence,
                outcome=classify_outcome(ticket, escalated, csat),
                csat=csat,
                intent_category=ticket.intent_category,
                resolution_time_hours=resolution_hours,
                analyzed_at=now,
            )
            try:
                self.store.upsert_calibration_sample(sample)
            except Exception as exc:
                result.bump("errors")
                logger.error(
                    "Failed to store calibration sample",
                    extra={"ticket_id": ticket.id, "error": str(exc)},
                )
                continue
            by_intent[sample.intent_category].append(sample)
            result.bump("samples")

        calibrations = [
            summarize(intent, samples)
            for intent, samples in sorted(by_intent.items())
            if len(samples) >= self.settings.calibration_min_samples
        ]
        result.bump("intents", len(calibrations))

        if calibrations:
            per_intent = {c.intent_category: c.recommended_threshold for c in calibrations}
            mean = round(sum(per_intent.values()) / len(per_intent), 2)
            self.store.save_threshold_map(ThresholdMap(default=mean, per_intent=per_intent))
            result.bump("channels_updated", self.store.update_auto_respond_thresholds(mean, now))
            if self.thresholds is not None:
                self.thresholds.invalidate()
            logger.info(
                "Confidence thresholds updated",
                extra={"job": "calibration", "thresholds": per_intent, "default": mean},
            )

        logger.info("Calibration completed", extra={"job": "calibration", "counts": result.counts})
        return result
