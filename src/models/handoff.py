"""Agent-to-agent handoff models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.ticket import Ticket, new_id


class HandoffStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Handoff(BaseModel):
    """Proposed transfer of ticket ownership between two agents."""

    id: str = Field(default_factory=new_id)
    ticket_id: str
    from_agent_id: str
    to_agent_id: str
    reason: str
    status: HandoffStatus = HandoffStatus.PENDING
    created_at: datetime
    accepted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class HandoffResolution(BaseModel):
    """Outcome of resolving a handoff, returned to the caller."""

    handoff: Handoff
    ticket: Optional[Ticket] = None
    reconciliation_needed: bool = False
