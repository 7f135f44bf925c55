"""
Store interface consumed by the domain services.

Implementations normalize whatever their backend returns into the typed
models under ``models`` before domain logic ever sees it. Conditional writes
(``*_if_status`` / ``insert_pending_handoff``) are the only mutual-exclusion
mechanism the services rely on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models.calibration import CalibrationSample, ThresholdMap
from models.handoff import Handoff
from models.health import HealthAlert, HealthScore
from models.outreach import DeliveryStatus, Notification, OutreachLog, OutreachType
from models.ticket import (
    Agent,
    Customer,
    Message,
    SenderType,
    Ticket,
    TicketEvent,
    TicketStatus,
)


@dataclass
class TicketQuery:
    """Bounded ticket selection used by the request path and the jobs."""

    statuses: Optional[List[TicketStatus]] = None
    customer_id: Optional[str] = None
    follow_up_before: Optional[datetime] = None
    auto_close_before: Optional[datetime] = None
    created_since: Optional[datetime] = None
    resolved_between: Optional[tuple] = None
    has_live_sla: bool = False
    order_by: str = "created_at"
    limit: Optional[int] = 100
    ticket_ids: Optional[List[str]] = field(default=None)


class TicketStore(ABC):
    """Generic transactional store for tickets and their satellites."""

    # Tickets
    @abstractmethod
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        ...

    @abstractmethod
    def insert_ticket(self, ticket: Ticket) -> Ticket:
        ...

    @abstractmethod
    def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> Optional[Ticket]:
        """Unconditional update; returns the stored ticket or None if missing."""

    @abstractmethod
    def update_ticket_if_status(
        self,
        ticket_id: str,
        expected: Iterable[TicketStatus],
        fields: Dict[str, Any],
    ) -> Optional[Ticket]:
        """Update only while the ticket status is one of ``expected``.

        Returns None when the ticket is missing or the precondition failed.
        """

    @abstractmethod
    def list_tickets(self, query: TicketQuery) -> List[Ticket]:
        ...

    # Messages
    @abstractmethod
    def insert_message(self, message: Message) -> Message:
        ...

    @abstractmethod
    def last_message(self, ticket_id: str, include_internal: bool = False) -> Optional[Message]:
        ...

    @abstractmethod
    def count_messages(self, ticket_id: str, sender_type: Optional[SenderType] = None) -> int:
        ...

    # People
    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        ...

    @abstractmethod
    def get_agent(self, agent_id: str) -> Optional[Agent]:
        ...

    # Handoffs
    @abstractmethod
    def get_handoff(self, handoff_id: str) -> Optional[Handoff]:
        ...

    @abstractmethod
    def find_pending_handoff(self, ticket_id: str) -> Optional[Handoff]:
        ...

    @abstractmethod
    def insert_pending_handoff(self, handoff: Handoff) -> bool:
        """Insert unless another pending handoff exists for the ticket."""

    @abstractmethod
    def update_handoff_if_pending(self, handoff_id: str, fields: Dict[str, Any]) -> Optional[Handoff]:
        """Compare-and-swap on ``status == pending``; None if the swap lost."""

    # Audit trail
    @abstractmethod
    def insert_event(self, event: TicketEvent) -> TicketEvent:
        ...

    @abstractmethod
    def list_events(
        self,
        ticket_ids: Optional[Iterable[str]] = None,
        event_type: Optional[str] = None,
    ) -> List[TicketEvent]:
        ...

    # Outreach, notifications, alerts
    @abstractmethod
    def insert_outreach(self, log: OutreachLog) -> OutreachLog:
        ...

    @abstractmethod
    def update_outreach_status(self, outreach_id: str, status: DeliveryStatus) -> None:
        ...

    @abstractmethod
    def has_outreach(
        self,
        ticket_id: str,
        outreach_type: OutreachType,
        since: Optional[datetime] = None,
    ) -> bool:
        ...

    @abstractmethod
    def insert_notification(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    def insert_alert(self, alert: HealthAlert) -> HealthAlert:
        ...

    @abstractmethod
    def has_alert_since(self, customer_id: str, since: datetime) -> bool:
        ...

    # Feedback
    @abstractmethod
    def ratings_for(self, ticket_ids: Iterable[str]) -> Dict[str, int]:
        ...

    # Health scores
    @abstractmethod
    def get_health_score(self, customer_id: str) -> Optional[HealthScore]:
        ...

    @abstractmethod
    def upsert_health_score(self, score: HealthScore) -> HealthScore:
        ...

    # Calibration
    @abstractmethod
    def upsert_calibration_sample(self, sample: CalibrationSample) -> CalibrationSample:
        ...

    @abstractmethod
    def get_threshold_map(self) -> ThresholdMap:
        ...

    @abstractmethod
    def save_threshold_map(self, thresholds: ThresholdMap) -> None:
        ...

    @abstractmethod
    def update_auto_respond_thresholds(self, threshold: float, updated_at: datetime) -> int:
        """Write ``threshold`` to every auto-respond channel; returns rows touched."""
