"""SLA reporting models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class SlaStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    BREACHED = "breached"


class SlaKind(str, Enum):
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


class SlaInfo(BaseModel):
    """Point-in-time view of one SLA clock on a ticket."""

    kind: SlaKind
    status: SlaStatus
    due_at: Optional[datetime] = None
    percentage_used: float
    time_remaining: Optional[str] = None
    breached: bool
    frozen: bool = False


class SlaReport(BaseModel):
    ticket_id: str
    first_response: Optional[SlaInfo] = None
    resolution: Optional[SlaInfo] = None
    active: Optional[SlaInfo] = None
