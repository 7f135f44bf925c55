"""
AI-confidence and keyword driven escalation decisions.

Rules run in a fixed order and the first match wins. Thresholds arrive as a
``ThresholdMap`` value at call time; the policy itself holds no mutable state.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern

from models.calibration import ThresholdMap
from models.escalation import EscalationDecision, EscalationInput, EscalationReason
from utils.cache_service import LRUCache

HUMAN_REQUEST_PHRASES = (
    "human",
    "agent",
    "real person",
    "representative",
    "speak to someone",
    "talk to someone",
)
SECURITY_PHRASES = ("password", "hacked", "unauthorized", "security", "compromised")
BILLING_SUBJECT_PHRASES = ("refund", "charge", "charged", "billing")
BILLING_PROBLEM_PHRASES = ("wrong", "error", "dispute")
FRUSTRATION_PHRASES = (
    "frustrated",
    "angry",
    "upset",
    "ridiculous",
    "doesn't work",
    "useless",
    "terrible",
    "awful",
)
FRUSTRATION_MIN_PRIOR_MESSAGES = 3


def _pattern(phrases: Iterable[str]) -> Pattern[str]:
    """Case-insensitive substring match, so plurals and inflections count."""
    alternatives = "|".join(re.escape(p) for p in phrases)
    return re.compile(alternatives, re.IGNORECASE)


class EscalationPolicy:
    """Decides whether a customer message should leave AI handling."""

    def __init__(self, default_threshold: float = 0.7) -> None:
        self.default_threshold = default_threshold
        self._human = _pattern(HUMAN_REQUEST_PHRASES)
        self._security = _pattern(SECURITY_PHRASES)
        self._billing_subject = _pattern(BILLING_SUBJECT_PHRASES)
        self._billing_problem = _pattern(BILLING_PROBLEM_PHRASES)
        self._frustration = _pattern(FRUSTRATION_PHRASES)

    def evaluate(
        self,
        request: EscalationInput,
        thresholds: Optional[ThresholdMap] = None,
    ) -> EscalationDecision:
        """Run the ordered rules; a ``None`` confidence skips the confidence rule."""
        text = request.message or ""

        if self._human.search(text):
            return self._escalate(EscalationReason.HUMAN_REQUESTED, "Customer requested human agent")
        if self._security.search(text):
            return self._escalate(EscalationReason.SECURITY, "Security-related issue detected")
        if self._billing_subject.search(text) and self._billing_problem.search(text):
            return self._escalate(EscalationReason.BILLING_DISPUTE, "Billing dispute detected")
        if (
            request.prior_message_count >= FRUSTRATION_MIN_PRIOR_MESSAGES
            and self._frustration.search(text)
        ):
            return self._escalate(EscalationReason.FRUSTRATION, "High frustration detected")

        threshold = self.threshold_for(request.intent_category, thresholds)
        if request.confidence is not None and request.confidence < threshold:
            return self._escalate(
                EscalationReason.LOW_CONFIDENCE,
                f"AI confidence {request.confidence:.2f} below threshold {threshold:.2f}",
                threshold,
            )
        return EscalationDecision.continue_ai(threshold)

    def threshold_for(self, intent: str, thresholds: Optional[ThresholdMap]) -> float:
        if thresholds is None:
            return self.default_threshold
        return thresholds.for_intent(intent)

    @staticmethod
    def _escalate(
        reason: EscalationReason, detail: str, threshold: Optional[float] = None
    ) -> EscalationDecision:
        return EscalationDecision(
            should_escalate=True, reason=reason, detail=detail, threshold=threshold
        )


class ThresholdProvider:
    """Reads the calibrated ThresholdMap, cached across warm invocations."""

    CACHE_KEY = "threshold_map"

    def __init__(self, store, cache: Optional[LRUCache] = None, ttl_seconds: int = 300) -> None:
        self.store = store
        self.cache = cache or LRUCache(max_size=4, ttl_seconds=ttl_seconds)

    def current(self) -> ThresholdMap:
        return self.cache.get_or_load(self.CACHE_KEY, self.store.get_threshold_map)

    def invalidate(self) -> None:
        self.cache.delete(self.CACHE_KEY)
