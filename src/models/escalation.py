"""Escalation decision models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EscalationReason(str, Enum):
    HUMAN_REQUESTED = "human_requested"
    SECURITY = "security"
    BILLING_DISPUTE = "billing_dispute"
    FRUSTRATION = "frustration"
    LOW_CONFIDENCE = "low_confidence"


class EscalationInput(BaseModel):
    """Everything the policy looks at for one inbound customer message."""

    message: str
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    prior_message_count: int = Field(default=0, ge=0)
    intent_category: str = "general"


class EscalationDecision(BaseModel):
    should_escalate: bool
    reason: Optional[EscalationReason] = None
    detail: str = ""
    threshold: Optional[float] = None

    @classmethod
    def continue_ai(cls, threshold: Optional[float] = None) -> "EscalationDecision":
        return cls(should_escalate=False, detail="AI handling continues", threshold=threshold)
