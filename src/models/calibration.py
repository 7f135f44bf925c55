"""Confidence calibration models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CalibrationOutcome(str, Enum):
    RESOLVED_BY_AI = "resolved_by_ai"
    ESCALATED_HELPFUL = "escalated_helpful"
    ESCALATED_UNNECESSARY = "escalated_unnecessary"


class CalibrationSample(BaseModel):
    ticket_id: str
    initial_confidence: float = Field(ge=0, le=1)
    outcome: CalibrationOutcome
    csat: Optional[int] = None
    intent_category: str = "general"
    resolution_time_hours: Optional[float] = None
    analyzed_at: Optional[datetime] = None


class IntentCalibration(BaseModel):
    """Aggregated stats and the recommended threshold for one intent."""

    intent_category: str
    total_samples: int
    avg_initial_confidence: float
    success_rate: float
    avg_csat: Optional[float] = None
    recommended_threshold: float


class ThresholdMap(BaseModel):
    """Immutable per-intent confidence thresholds with a fallback default."""

    model_config = ConfigDict(frozen=True)

    default: float = Field(default=0.7, ge=0, le=1)
    per_intent: Dict[str, float] = Field(default_factory=dict)

    def for_intent(self, intent: Optional[str]) -> float:
        if intent and intent in self.per_intent:
            return self.per_intent[intent]
        return self.default


class ChannelConfig(BaseModel):
    id: str
    ai_auto_respond: bool = True
    ai_confidence_threshold: float = 0.7
    updated_at: Optional[datetime] = None
