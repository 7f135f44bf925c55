"""Outreach log and agent notification models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.ticket import new_id


class OutreachType(str, Enum):
    FOLLOW_UP = "follow_up"
    AUTO_CLOSE = "auto_close"
    STALLED_REVIVAL = "stalled_revival"
    POST_RESOLUTION_CHECKIN = "post_resolution_checkin"
    HEALTH_ALERT = "health_alert"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutreachLog(BaseModel):
    """Durable record of a proactive message; doubles as a job guard."""

    id: str = Field(default_factory=new_id)
    customer_id: Optional[str] = None
    ticket_id: Optional[str] = None
    outreach_type: OutreachType
    channel: str = "internal"
    message_content: str = ""
    trigger_reason: str = ""
    delivery_status: DeliveryStatus = DeliveryStatus.SENT
    created_at: datetime


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    agent_id: str
    title: str
    message: str
    ticket_id: Optional[str] = None
    created_at: datetime
