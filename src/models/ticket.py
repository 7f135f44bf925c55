"""Ticket, message and audit-trail models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.escalation import EscalationDecision


def new_id() -> str:
    return str(uuid.uuid4())


class TicketStatus(str, Enum):
    """Ticket lifecycle states."""

    OPEN = "open"
    PENDING = "pending"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class Priority(str, Enum):
    """Priority levels; each maps to SLA and lifecycle timelines."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class Queue(str, Enum):
    """Which side currently owns the conversation."""

    AI = "ai"
    HUMAN = "human"


class SenderType(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    AI = "ai"
    SYSTEM = "system"


class Ticket(BaseModel):
    """Normalized ticket row as seen by the domain services."""

    id: str = Field(default_factory=new_id)
    customer_id: str
    subject: str = ""
    channel: str = "widget"
    status: TicketStatus = TicketStatus.OPEN
    priority: Priority = Priority.NORMAL
    created_at: datetime
    updated_at: Optional[datetime] = None

    first_response_at: Optional[datetime] = None
    first_response_due_at: Optional[datetime] = None
    first_response_breached: bool = False
    resolution_due_at: Optional[datetime] = None
    resolution_breached: bool = False
    resolved_at: Optional[datetime] = None

    ai_handled: bool = True
    ai_confidence: Optional[float] = Field(default=None, ge=0, le=1)
    queue: Queue = Queue.AI

    follow_up_at: Optional[datetime] = None
    auto_close_at: Optional[datetime] = None
    assigned_agent_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @property
    def intent_category(self) -> str:
        """First tag doubles as the intent category used for calibration."""
        return self.tags[0] if self.tags else "general"


class Message(BaseModel):
    """A single message on a ticket conversation."""

    id: str = Field(default_factory=new_id)
    ticket_id: str
    sender_type: SenderType
    sender_id: Optional[str] = None
    content: str
    is_internal: bool = False
    metadata: dict = Field(default_factory=dict)
    created_at: datetime


class TicketEvent(BaseModel):
    """Audit trail entry (status changes, handoffs, escalations)."""

    id: str = Field(default_factory=new_id)
    ticket_id: str
    event_type: str
    agent_id: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime


class Customer(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class Agent(BaseModel):
    id: str
    name: str = ""


class Feedback(BaseModel):
    """CSAT rating left by the customer for a ticket."""

    ticket_id: str
    rating: int = Field(ge=1, le=5)
    created_at: Optional[datetime] = None


class PostMessageResult(BaseModel):
    """What happened when a message was posted to a ticket."""

    message: Message
    ticket: Ticket
    reply: Optional[Message] = None
    escalation: Optional[EscalationDecision] = None
