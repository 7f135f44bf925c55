"""Customer health scoring models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.ticket import new_id


class RiskLevel(str, Enum):
    HEALTHY = "healthy"
    AT_RISK = "at_risk"
    CRITICAL = "critical"


class HealthTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class HealthFactors(BaseModel):
    """Inputs that produced a score, stored alongside it for the dashboard."""

    ticket_count: int = 0
    open_tickets: int = 0
    escalation_count: int = 0
    resolved_tickets: int = 0
    avg_csat: Optional[float] = None
    days_since_last_ticket: Optional[int] = None
    resolution_rate: Optional[float] = None


class HealthScore(BaseModel):
    customer_id: str
    score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    trend: HealthTrend = HealthTrend.STABLE
    factors: HealthFactors = Field(default_factory=HealthFactors)
    calculated_at: datetime


class HealthAlert(BaseModel):
    """Internal alert raised for critical or declining customers."""

    id: str = Field(default_factory=new_id)
    customer_id: str
    score: int
    risk_level: RiskLevel
    trend: HealthTrend
    created_at: datetime
