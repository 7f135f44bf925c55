"""
SQLAlchemy Core implementation of the TicketStore.

Every public method runs in its own short transaction (``engine.begin()``).
Conditional writes are single UPDATE statements filtered on the expected
status, so the database decides which of two concurrent callers wins.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from models.calibration import CalibrationSample, ThresholdMap
from models.handoff import Handoff, HandoffStatus
from models.health import HealthAlert, HealthFactors, HealthScore
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
from repositories import schema
from repositories.base import TicketQuery, TicketStore
from utils.clock import ensure_utc
from utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_INTENT_KEY = "*"


def _db_value(value: Any) -> Any:
    """Convert domain values into plain column values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def _db_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _db_value(value) for key, value in fields.items()}


def _normalize_row(row) -> Dict[str, Any]:
    """Row mapping with timezone-aware datetimes (SQLite returns naive ones)."""
    data = dict(row._mapping)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = ensure_utc(value)
    return data


def _ticket_from_row(row) -> Ticket:
    data = _normalize_row(row)
    data["tags"] = list(data.get("tags") or [])
    return Ticket.model_validate(data)


def _message_from_row(row) -> Message:
    data = _normalize_row(row)
    data["metadata"] = data.pop("details", None) or {}
    return Message.model_validate(data)


def _event_from_row(row) -> TicketEvent:
    data = _normalize_row(row)
    data["metadata"] = data.pop("details", None) or {}
    return TicketEvent.model_validate(data)


class SqlTicketStore(TicketStore):
    """TicketStore backed by PostgreSQL (or SQLite in tests)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self) -> None:
        schema.metadata.create_all(self.engine)

    # Seeding helpers (not part of the store interface)
    def add_customer(self, customer: Customer) -> Customer:
        self._insert(schema.customers, customer.model_dump())
        return customer

    def add_agent(self, agent: Agent) -> Agent:
        self._insert(schema.agents, agent.model_dump())
        return agent

    def add_feedback(self, ticket_id: str, rating: int, created_at: Optional[datetime] = None) -> None:
        self._insert(
            schema.ticket_feedback,
            {"ticket_id": ticket_id, "rating": rating, "created_at": created_at},
        )

    def add_channel(self, channel_id: str, ai_auto_respond: bool = True, threshold: float = 0.7) -> None:
        self._insert(
            schema.channel_config,
            {
                "id": channel_id,
                "ai_auto_respond": ai_auto_respond,
                "ai_confidence_threshold": threshold,
            },
        )

    def channel_thresholds(self) -> Dict[str, float]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(schema.channel_config)).fetchall()
        return {row.id: row.ai_confidence_threshold for row in rows}

    def _insert(self, table, values: Dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(table).values(**_db_fields(values)))

    # Tickets
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(schema.tickets).where(schema.tickets.c.id == ticket_id)
            ).fetchone()
        return _ticket_from_row(row) if row else None

    def insert_ticket(self, ticket: Ticket) -> Ticket:
        self._insert(schema.tickets, ticket.model_dump())
        return ticket

    def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> Optional[Ticket]:
        return self._conditional_ticket_update(ticket_id, None, fields)

    def update_ticket_if_status(
        self,
        ticket_id: str,
        expected: Iterable[TicketStatus],
        fields: Dict[str, Any],
    ) -> Optional[Ticket]:
        return self._conditional_ticket_update(ticket_id, list(expected), fields)

    def _conditional_ticket_update(
        self,
        ticket_id: str,
        expected: Optional[List[TicketStatus]],
        fields: Dict[str, Any],
    ) -> Optional[Ticket]:
        table = schema.tickets
        conditions = [table.c.id == ticket_id]
        if expected is not None:
            conditions.append(table.c.status.in_([_db_value(s) for s in expected]))

        with self.engine.begin() as conn:
            result = conn.execute(update(table).where(*conditions).values(**_db_fields(fields)))
            if result.rowcount == 0:
                return None
            row = conn.execute(select(table).where(table.c.id == ticket_id)).fetchone()
        return _ticket_from_row(row)

    def list_tickets(self, query: TicketQuery) -> List[Ticket]:
        table = schema.tickets
        stmt = select(table)
        if query.ticket_ids is not None:
            stmt = stmt.where(table.c.id.in_(list(query.ticket_ids)))
        if query.statuses is not None:
            stmt = stmt.where(table.c.status.in_([_db_value(s) for s in query.statuses]))
        if query.customer_id is not None:
            stmt = stmt.where(table.c.customer_id == query.customer_id)
        if query.follow_up_before is not None:
            stmt = stmt.where(table.c.follow_up_at < _db_value(query.follow_up_before))
        if query.auto_close_before is not None:
            stmt = stmt.where(table.c.auto_close_at < _db_value(query.auto_close_before))
        if query.created_since is not None:
            stmt = stmt.where(table.c.created_at >= _db_value(query.created_since))
        if query.resolved_between is not None:
            start, end = query.resolved_between
            stmt = stmt.where(table.c.resolved_at.between(_db_value(start), _db_value(end)))
        if query.has_live_sla:
            stmt = stmt.where(
                table.c.status != TicketStatus.RESOLVED.value,
                or_(
                    and_(
                        table.c.first_response_at.is_(None),
                        table.c.first_response_due_at.is_not(None),
                        table.c.first_response_breached.is_(False),
                    ),
                    and_(
                        table.c.resolution_due_at.is_not(None),
                        table.c.resolution_breached.is_(False),
                    ),
                ),
            )

        order_column = table.c[query.order_by]
        stmt = stmt.order_by(func.coalesce(order_column, table.c.created_at))
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_ticket_from_row(row) for row in rows]

    # Messages
    def insert_message(self, message: Message) -> Message:
        values = message.model_dump()
        values["details"] = values.pop("metadata")
        self._insert(schema.messages, values)
        return message

    def last_message(self, ticket_id: str, include_internal: bool = False) -> Optional[Message]:
        table = schema.messages
        stmt = select(table).where(table.c.ticket_id == ticket_id)
        if not include_internal:
            stmt = stmt.where(table.c.is_internal.is_(False))
        stmt = stmt.order_by(table.c.created_at.desc()).limit(1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _message_from_row(row) if row else None

    def count_messages(self, ticket_id: str, sender_type: Optional[SenderType] = None) -> int:
        table = schema.messages
        stmt = select(func.count()).select_from(table).where(table.c.ticket_id == ticket_id)
        if sender_type is not None:
            stmt = stmt.where(table.c.sender_type == sender_type.value)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar() or 0)

    # People
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(schema.customers).where(schema.customers.c.id == customer_id)
            ).fetchone()
        return Customer.model_validate(dict(row._mapping)) if row else None

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(schema.agents).where(schema.agents.c.id == agent_id)
            ).fetchone()
        return Agent.model_validate(dict(row._mapping)) if row else None

    # Handoffs
    def get_handoff(self, handoff_id: str) -> Optional[Handoff]:
        table = schema.ticket_handoffs
        with self.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == handoff_id)).fetchone()
        return Handoff.model_validate(_normalize_row(row)) if row else None

    def find_pending_handoff(self, ticket_id: str) -> Optional[Handoff]:
        table = schema.ticket_handoffs
        with self.engine.connect() as conn:
            row = conn.execute(
                select(table).where(
                    table.c.ticket_id == ticket_id,
                    table.c.status == HandoffStatus.PENDING.value,
                )
            ).fetchone()
        return Handoff.model_validate(_normalize_row(row)) if row else None

    def insert_pending_handoff(self, handoff: Handoff) -> bool:
        try:
            self._insert(schema.ticket_handoffs, handoff.model_dump())
        except IntegrityError:
            logger.info(
                "Pending handoff already exists",
                extra={"ticket_id": handoff.ticket_id},
            )
            return False
        return True

    def update_handoff_if_pending(self, handoff_id: str, fields: Dict[str, Any]) -> Optional[Handoff]:
        table = schema.ticket_handoffs
        with self.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(table.c.id == handoff_id, table.c.status == HandoffStatus.PENDING.value)
                .values(**_db_fields(fields))
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(select(table).where(table.c.id == handoff_id)).fetchone()
        return Handoff.model_validate(_normalize_row(row))

    # Audit trail
    def insert_event(self, event: TicketEvent) -> TicketEvent:
        values = event.model_dump()
        values["details"] = values.pop("metadata")
        self._insert(schema.ticket_events, values)
        return event

    def list_events(
        self,
        ticket_ids: Optional[Iterable[str]] = None,
        event_type: Optional[str] = None,
    ) -> List[TicketEvent]:
        table = schema.ticket_events
        stmt = select(table)
        if ticket_ids is not None:
            stmt = stmt.where(table.c.ticket_id.in_(list(ticket_ids)))
        if event_type is not None:
            stmt = stmt.where(table.c.event_type == event_type)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(table.c.created_at)).fetchall()
        return [_event_from_row(row) for row in rows]

    # Outreach, notifications, alerts
    def insert_outreach(self, log: OutreachLog) -> OutreachLog:
        self._insert(schema.proactive_outreach_log, log.model_dump())
        return log

    def update_outreach_status(self, outreach_id: str, status: DeliveryStatus) -> None:
        table = schema.proactive_outreach_log
        with self.engine.begin() as conn:
            conn.execute(
                update(table).where(table.c.id == outreach_id).values(delivery_status=status.value)
            )

    def has_outreach(
        self,
        ticket_id: str,
        outreach_type: OutreachType,
        since: Optional[datetime] = None,
    ) -> bool:
        table = schema.proactive_outreach_log
        stmt = select(table.c.id).where(
            table.c.ticket_id == ticket_id,
            table.c.outreach_type == outreach_type.value,
        )
        if since is not None:
            stmt = stmt.where(table.c.created_at >= _db_value(since))
        with self.engine.connect() as conn:
            return conn.execute(stmt.limit(1)).fetchone() is not None

    def insert_notification(self, notification: Notification) -> Notification:
        self._insert(schema.notifications, notification.model_dump())
        return notification

    def insert_alert(self, alert: HealthAlert) -> HealthAlert:
        self._insert(schema.health_alerts, alert.model_dump())
        return alert

    def has_alert_since(self, customer_id: str, since: datetime) -> bool:
        table = schema.health_alerts
        stmt = (
            select(table.c.id)
            .where(table.c.customer_id == customer_id, table.c.created_at >= _db_value(since))
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).fetchone() is not None

    # Feedback
    def ratings_for(self, ticket_ids: Iterable[str]) -> Dict[str, int]:
        ticket_ids = list(ticket_ids)
        if not ticket_ids:
            return {}
        table = schema.ticket_feedback
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(table.c.ticket_id, table.c.rating).where(table.c.ticket_id.in_(ticket_ids))
            ).fetchall()
        return {row.ticket_id: int(row.rating) for row in rows}

    # Health scores
    def get_health_score(self, customer_id: str) -> Optional[HealthScore]:
        table = schema.customer_health_scores
        with self.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.customer_id == customer_id)).fetchone()
        if not row:
            return None
        data = _normalize_row(row)
        data["factors"] = HealthFactors.model_validate(data.get("factors") or {})
        return HealthScore.model_validate(data)

    def upsert_health_score(self, score: HealthScore) -> HealthScore:
        values = score.model_dump(mode="json")
        values["calculated_at"] = score.calculated_at
        self._upsert(
            schema.customer_health_scores,
            schema.customer_health_scores.c.customer_id,
            score.customer_id,
            values,
        )
        return score

    def _upsert(self, table, key_column, key_value: str, values: Dict[str, Any]) -> None:
        """UPDATE then INSERT; a lost insert race falls back to UPDATE."""
        values = _db_fields(values)
        changes = {k: v for k, v in values.items() if k != key_column.name}
        with self.engine.begin() as conn:
            result = conn.execute(update(table).where(key_column == key_value).values(**changes))
            if result.rowcount:
                return
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(table).values(**values))
        except IntegrityError:
            with self.engine.begin() as conn:
                conn.execute(update(table).where(key_column == key_value).values(**changes))

    # Calibration
    def upsert_calibration_sample(self, sample: CalibrationSample) -> CalibrationSample:
        self._upsert(
            schema.ai_calibration_data,
            schema.ai_calibration_data.c.ticket_id,
            sample.ticket_id,
            sample.model_dump(),
        )
        return sample

    def get_threshold_map(self) -> ThresholdMap:
        table = schema.confidence_thresholds
        with self.engine.connect() as conn:
            rows = conn.execute(select(table.c.intent, table.c.threshold)).fetchall()
        values = {row.intent: float(row.threshold) for row in rows}
        default = values.pop(DEFAULT_INTENT_KEY, None)
        if default is None:
            return ThresholdMap(per_intent=values)
        return ThresholdMap(default=default, per_intent=values)

    def save_threshold_map(self, thresholds: ThresholdMap) -> None:
        table = schema.confidence_thresholds
        rows = [{"intent": DEFAULT_INTENT_KEY, "threshold": thresholds.default}]
        rows.extend(
            {"intent": intent, "threshold": value}
            for intent, value in thresholds.per_intent.items()
        )
        with self.engine.begin() as conn:
            conn.execute(delete(table))
            conn.execute(insert(table), rows)

    def update_auto_respond_thresholds(self, threshold: float, updated_at: datetime) -> int:
        table = schema.channel_config
        with self.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(table.c.ai_auto_respond.is_(True))
                .values(ai_confidence_threshold=threshold, updated_at=_db_value(updated_at))
            )
            return result.rowcount
