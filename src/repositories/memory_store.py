"""
In-memory TicketStore.

Used for local runs without a database and as the reference store in unit
tests. A single lock makes each conditional write atomic, which mirrors the
row-level guarantees the SQL store gets from the database.
"""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from models.calibration import CalibrationSample, ChannelConfig, ThresholdMap
from models.handoff import Handoff, HandoffStatus
from models.health import HealthAlert, HealthScore
from models.outreach import DeliveryStatus, Notification, OutreachLog, OutreachType
from models.ticket import (
    Agent,
    Customer,
    Feedback,
    Message,
    SenderType,
    Ticket,
    TicketEvent,
    TicketStatus,
)
from repositories.base import TicketQuery, TicketStore


def _has_live_sla(ticket: Ticket) -> bool:
    if ticket.status == TicketStatus.RESOLVED:
        return False
    first_live = (
        ticket.first_response_at is None
        and ticket.first_response_due_at is not None
        and not ticket.first_response_breached
    )
    resolution_live = ticket.resolution_due_at is not None and not ticket.resolution_breached
    return first_live or resolution_live


class InMemoryTicketStore(TicketStore):
    """Dict-backed store; returns copies so callers never mutate stored rows."""

    def __init__(self, default_threshold: float = 0.7) -> None:
        self._lock = Lock()
        self.tickets: Dict[str, Ticket] = {}
        self.messages: List[Message] = []
        self.events: List[TicketEvent] = []
        self.customers: Dict[str, Customer] = {}
        self.agents: Dict[str, Agent] = {}
        self.handoffs: Dict[str, Handoff] = {}
        self.outreach: Dict[str, OutreachLog] = {}
        self.notifications: List[Notification] = []
        self.alerts: List[HealthAlert] = []
        self.feedback: Dict[str, Feedback] = {}
        self.health_scores: Dict[str, HealthScore] = {}
        self.calibration_samples: Dict[str, CalibrationSample] = {}
        self.channels: Dict[str, ChannelConfig] = {}
        self.thresholds = ThresholdMap(default=default_threshold)

    # Seeding helpers (not part of the store interface)
    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    def add_agent(self, agent: Agent) -> Agent:
        self.agents[agent.id] = agent
        return agent

    def add_feedback(self, ticket_id: str, rating: int, created_at: Optional[datetime] = None) -> None:
        self.feedback[ticket_id] = Feedback(ticket_id=ticket_id, rating=rating, created_at=created_at)

    def add_channel(self, channel_id: str, ai_auto_respond: bool = True, threshold: float = 0.7) -> None:
        self.channels[channel_id] = ChannelConfig(
            id=channel_id, ai_auto_respond=ai_auto_respond, ai_confidence_threshold=threshold
        )

    def channel_thresholds(self) -> Dict[str, float]:
        return {c.id: c.ai_confidence_threshold for c in self.channels.values()}

    # Tickets
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return ticket.model_copy(deep=True) if ticket else None

    def insert_ticket(self, ticket: Ticket) -> Ticket:
        with self._lock:
            self.tickets[ticket.id] = ticket.model_copy(deep=True)
        return ticket

    def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> Optional[Ticket]:
        with self._lock:
            return self._apply_ticket_update(ticket_id, fields)

    def update_ticket_if_status(
        self,
        ticket_id: str,
        expected: Iterable[TicketStatus],
        fields: Dict[str, Any],
    ) -> Optional[Ticket]:
        expected = set(expected)
        with self._lock:
            current = self.tickets.get(ticket_id)
            if current is None or current.status not in expected:
                return None
            return self._apply_ticket_update(ticket_id, fields)

    def _apply_ticket_update(self, ticket_id: str, fields: Dict[str, Any]) -> Optional[Ticket]:
        current = self.tickets.get(ticket_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields, deep=True)
        self.tickets[ticket_id] = updated
        return updated.model_copy(deep=True)

    def list_tickets(self, query: TicketQuery) -> List[Ticket]:
        rows = list(self.tickets.values())
        if query.ticket_ids is not None:
            wanted = set(query.ticket_ids)
            rows = [t for t in rows if t.id in wanted]
        if query.statuses is not None:
            rows = [t for t in rows if t.status in query.statuses]
        if query.customer_id is not None:
            rows = [t for t in rows if t.customer_id == query.customer_id]
        if query.follow_up_before is not None:
            rows = [t for t in rows if t.follow_up_at and t.follow_up_at < query.follow_up_before]
        if query.auto_close_before is not None:
            rows = [t for t in rows if t.auto_close_at and t.auto_close_at < query.auto_close_before]
        if query.created_since is not None:
            rows = [t for t in rows if t.created_at >= query.created_since]
        if query.resolved_between is not None:
            start, end = query.resolved_between
            rows = [t for t in rows if t.resolved_at and start <= t.resolved_at <= end]
        if query.has_live_sla:
            rows = [t for t in rows if _has_live_sla(t)]

        rows.sort(key=lambda t: getattr(t, query.order_by) or t.created_at)
        if query.limit is not None:
            rows = rows[: query.limit]
        return [t.model_copy(deep=True) for t in rows]

    # Messages
    def insert_message(self, message: Message) -> Message:
        with self._lock:
            self.messages.append(message.model_copy(deep=True))
        return message

    def _messages_for(self, ticket_id: str) -> List[Message]:
        return sorted(
            (m for m in self.messages if m.ticket_id == ticket_id),
            key=lambda m: m.created_at,
        )

    def last_message(self, ticket_id: str, include_internal: bool = False) -> Optional[Message]:
        rows = [m for m in self._messages_for(ticket_id) if include_internal or not m.is_internal]
        return rows[-1].model_copy(deep=True) if rows else None

    def count_messages(self, ticket_id: str, sender_type: Optional[SenderType] = None) -> int:
        return sum(
            1
            for m in self.messages
            if m.ticket_id == ticket_id and (sender_type is None or m.sender_type == sender_type)
        )

    # People
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.customers.get(customer_id)

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self.agents.get(agent_id)

    # Handoffs
    def get_handoff(self, handoff_id: str) -> Optional[Handoff]:
        handoff = self.handoffs.get(handoff_id)
        return handoff.model_copy() if handoff else None

    def find_pending_handoff(self, ticket_id: str) -> Optional[Handoff]:
        for handoff in list(self.handoffs.values()):
            if handoff.ticket_id == ticket_id and handoff.status == HandoffStatus.PENDING:
                return handoff.model_copy()
        return None

    def insert_pending_handoff(self, handoff: Handoff) -> bool:
        with self._lock:
            if self.find_pending_handoff(handoff.ticket_id) is not None:
                return False
            self.handoffs[handoff.id] = handoff.model_copy()
            return True

    def update_handoff_if_pending(self, handoff_id: str, fields: Dict[str, Any]) -> Optional[Handoff]:
        with self._lock:
            current = self.handoffs.get(handoff_id)
            if current is None or current.status != HandoffStatus.PENDING:
                return None
            updated = current.model_copy(update=fields)
            self.handoffs[handoff_id] = updated
            return updated.model_copy()

    # Audit trail
    def insert_event(self, event: TicketEvent) -> TicketEvent:
        with self._lock:
            self.events.append(event.model_copy(deep=True))
        return event

    def list_events(
        self,
        ticket_ids: Optional[Iterable[str]] = None,
        event_type: Optional[str] = None,
    ) -> List[TicketEvent]:
        wanted = set(ticket_ids) if ticket_ids is not None else None
        return [
            e.model_copy(deep=True)
            for e in self.events
            if (wanted is None or e.ticket_id in wanted)
            and (event_type is None or e.event_type == event_type)
        ]

    # Outreach, notifications, alerts
    def insert_outreach(self, log: OutreachLog) -> OutreachLog:
        with self._lock:
            self.outreach[log.id] = log.model_copy()
        return log

    def update_outreach_status(self, outreach_id: str, status: DeliveryStatus) -> None:
        with self._lock:
            current = self.outreach.get(outreach_id)
            if current is not None:
                self.outreach[outreach_id] = current.model_copy(update={"delivery_status": status})

    def has_outreach(
        self,
        ticket_id: str,
        outreach_type: OutreachType,
        since: Optional[datetime] = None,
    ) -> bool:
        return any(
            log.ticket_id == ticket_id
            and log.outreach_type == outreach_type
            and (since is None or log.created_at >= since)
            for log in list(self.outreach.values())
        )

    def insert_notification(self, notification: Notification) -> Notification:
        with self._lock:
            self.notifications.append(notification.model_copy())
        return notification

    def insert_alert(self, alert: HealthAlert) -> HealthAlert:
        with self._lock:
            self.alerts.append(alert.model_copy())
        return alert

    def has_alert_since(self, customer_id: str, since: datetime) -> bool:
        return any(a.customer_id == customer_id and a.created_at >= since for a in self.alerts)

    # Feedback
    def ratings_for(self, ticket_ids: Iterable[str]) -> Dict[str, int]:
        return {
            ticket_id: self.feedback[ticket_id].rating
            for ticket_id in ticket_ids
            if ticket_id in self.feedback
        }

    # Health scores
    def get_health_score(self, customer_id: str) -> Optional[HealthScore]:
        score = self.health_scores.get(customer_id)
        return score.model_copy(deep=True) if score else None

    def upsert_health_score(self, score: HealthScore) -> HealthScore:
        with self._lock:
            self.health_scores[score.customer_id] = score.model_copy(deep=True)
        return score

    # Calibration
    def upsert_calibration_sample(self, sample: CalibrationSample) -> CalibrationSample:
        with self._lock:
            self.calibration_samples[sample.ticket_id] = sample.model_copy()
        return sample

    def get_threshold_map(self) -> ThresholdMap:
        return self.thresholds

    def save_threshold_map(self, thresholds: ThresholdMap) -> None:
        self.thresholds = thresholds

    def update_auto_respond_thresholds(self, threshold: float, updated_at: datetime) -> int:
        touched = 0
        with self._lock:
            for channel_id, channel in list(self.channels.items()):
                if channel.ai_auto_respond:
                    self.channels[channel_id] = channel.model_copy(
                        update={"ai_confidence_threshold": threshold, "updated_at": updated_at}
                    )
                    touched += 1
        return touched
