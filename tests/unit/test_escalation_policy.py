"""Escalation rule ordering and threshold lookup tests."""

from unittest.mock import MagicMock

import pytest

from models.calibration import ThresholdMap
from models.escalation import EscalationInput, EscalationReason
from services.escalation_policy import EscalationPolicy, ThresholdProvider


@pytest.fixture
def policy():
    return EscalationPolicy(default_threshold=0.7)


class TestKeywordRules:
    def test_human_request_escalates_regardless_of_confidence(self, policy):
        decision = policy.evaluate(
            EscalationInput(message="I want to speak to a human", confidence=0.99)
        )
        assert decision.should_escalate is True
        assert decision.reason == EscalationReason.HUMAN_REQUESTED

    def test_human_request_without_confidence(self, policy):
        decision = policy.evaluate(EscalationInput(message="Can I talk to a real person?"))
        assert decision.reason == EscalationReason.HUMAN_REQUESTED

    def test_security_issue(self, policy):
        decision = policy.evaluate(EscalationInput(message="My account was hacked", confidence=0.95))
        assert decision.reason == EscalationReason.SECURITY

    def test_billing_needs_both_subject_and_problem(self, policy):
        dispute = policy.evaluate(
            EscalationInput(message="I was charged the wrong amount", confidence=0.95)
        )
        question = policy.evaluate(
            EscalationInput(message="When will my refund arrive?", confidence=0.95)
        )
        assert dispute.reason == EscalationReason.BILLING_DISPUTE
        assert question.should_escalate is False

    def test_frustration_needs_conversation_history(self, policy):
        early = policy.evaluate(
            EscalationInput(message="This is ridiculous", confidence=0.95, prior_message_count=2)
        )
        late = policy.evaluate(
            EscalationInput(message="This is ridiculous", confidence=0.95, prior_message_count=3)
        )
        assert early.should_escalate is False
        assert late.reason == EscalationReason.FRUSTRATION

    def test_rules_run_in_order(self, policy):
        decision = policy.evaluate(
            EscalationInput(message="I was hacked, get me a human", confidence=0.1)
        )
        assert decision.reason == EscalationReason.HUMAN_REQUESTED

    @pytest.mark.parametrize(
        "message,reason",
        [
            ("Can I talk to a support agent please", EscalationReason.HUMAN_REQUESTED),
            ("I want to speak to humans", EscalationReason.HUMAN_REQUESTED),
            ("I need my refunds processed, the amount is wrong", EscalationReason.BILLING_DISPUTE),
            ("These charges are an error", EscalationReason.BILLING_DISPUTE),
        ],
    )
    def test_keywords_match_inflected_forms(self, policy, message, reason):
        decision = policy.evaluate(EscalationInput(message=message, confidence=0.95))
        assert decision.should_escalate is True
        assert decision.reason == reason

    def test_keywords_are_case_insensitive(self, policy):
        decision = policy.evaluate(EscalationInput(message="PASSWORD reset loop", confidence=0.95))
        assert decision.reason == EscalationReason.SECURITY


class TestConfidenceRule:
    def test_low_confidence_escalates(self, policy):
        decision = policy.evaluate(EscalationInput(message="How do I export data?", confidence=0.5))
        assert decision.reason == EscalationReason.LOW_CONFIDENCE
        assert decision.threshold == 0.7

    def test_missing_confidence_skips_rule(self, policy):
        decision = policy.evaluate(EscalationInput(message="How do I export data?"))
        assert decision.should_escalate is False

    def test_per_intent_threshold(self, policy):
        thresholds = ThresholdMap(default=0.8, per_intent={"billing": 0.6})
        billing = policy.evaluate(
            EscalationInput(message="Where is my invoice?", confidence=0.65, intent_category="billing"),
            thresholds,
        )
        general = policy.evaluate(
            EscalationInput(message="Where is my invoice?", confidence=0.65, intent_category="general"),
            thresholds,
        )
        assert billing.should_escalate is False
        assert billing.threshold == 0.6
        assert general.should_escalate is True
        assert general.threshold == 0.8


class TestThresholdProvider:
    def test_threshold_map_is_cached_until_invalidated(self):
        store = MagicMock()
        store.get_threshold_map.return_value = ThresholdMap(default=0.65)
        provider = ThresholdProvider(store, ttl_seconds=300)

        assert provider.current().default == 0.65
        assert provider.current().default == 0.65
        assert store.get_threshold_map.call_count == 1

        provider.invalidate()
        provider.current()
        assert store.get_threshold_map.call_count == 2
