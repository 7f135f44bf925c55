"""Agent notifications persisted to the notifications table."""

from __future__ import annotations

from typing import Optional

from models.outreach import Notification
from repositories.base import TicketStore
from utils.clock import SystemClock


class StoreNotifier:
    """Emit in-app notifications for agents."""

    def __init__(self, store: TicketStore, clock=None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    def emit(self, agent_id: str, title: str, message: str, ticket_id: Optional[str] = None) -> Notification:
        return self.store.insert_notification(
            Notification(
                agent_id=agent_id,
                title=title,
                message=message,
                ticket_id=ticket_id,
                created_at=self.clock.now(),
            )
        )
