"""
Request-path ticket operations: create, post a message, change status.

Every status change is a conditional update on the status the caller read,
issued only after the message that triggered it has been stored. For
customer messages on AI-handled tickets the escalation decision is made
before the AI reply is persisted, so the reply and the decision land
together.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from models.escalation import EscalationDecision, EscalationInput, EscalationReason
from models.jobs import GenerationResult
from models.sla import SlaReport
from models.ticket import (
    Message,
    PostMessageResult,
    Priority,
    Queue,
    SenderType,
    Ticket,
    TicketEvent,
    TicketStatus,
)
from repositories.base import TicketStore
from services import state_machine
from services.escalation_policy import EscalationPolicy, ThresholdProvider
from services.language_model import generate_with_timeout
from services.lifecycle_timelines import cleared_markers, reply_markers, resolve_markers
from services.sla_clock import SlaClock, due_dates
from services.state_machine import TicketEventKind
from utils.clock import SystemClock
from utils.error_handling import ConflictError, NotFoundError, ValidationError
from utils.logging_config import get_logger
from utils.settings import Settings
from utils.validators import ensure_one_of, ensure_present

logger = get_logger(__name__)

HANDOVER_MESSAGE = (
    "I'm connecting you with a member of our support team who can help with this. "
    "They'll pick up this conversation shortly."
)
MAX_STATUS_ATTEMPTS = 2


class TicketService:
    """Synchronous operations invoked by customers, agents and the AI."""

    def __init__(
        self,
        store: TicketStore,
        language_model=None,
        policy: Optional[EscalationPolicy] = None,
        thresholds: Optional[ThresholdProvider] = None,
        clock=None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.language_model = language_model
        self.settings = settings or Settings()
        self.policy = policy or EscalationPolicy(self.settings.default_confidence_threshold)
        self.thresholds = thresholds or ThresholdProvider(
            store, ttl_seconds=self.settings.threshold_cache_ttl_seconds
        )
        self.clock = clock or SystemClock()
        self.sla = SlaClock()

    # Creation and reads

    def create_ticket(
        self,
        customer_id: str,
        subject: str,
        priority: str = Priority.NORMAL.value,
        channel: str = "widget",
        tags: Optional[List[str]] = None,
        content: Optional[str] = None,
    ) -> Ticket:
        """Open a ticket with SLA deadlines; an initial message runs the AI turn."""
        ensure_present(customer_id, "customer_id")
        ensure_one_of(_value(priority), "priority", (p.value for p in Priority))
        priority = Priority(priority)

        now = self.clock.now()
        first_due, resolution_due = due_dates(priority, now)
        ticket = Ticket(
            customer_id=customer_id,
            subject=(subject or "").strip(),
            channel=channel,
            status=state_machine.initial_status(),
            priority=priority,
            created_at=now,
            updated_at=now,
            first_response_due_at=first_due,
            resolution_due_at=resolution_due,
            tags=list(tags or []),
        )
        self.store.insert_ticket(ticket)
        self.store.insert_event(
            TicketEvent(ticket_id=ticket.id, event_type="created", new_value=ticket.status.value,
                        created_at=now)
        )
        logger.info("Ticket created", extra={"ticket_id": ticket.id, "priority": priority.value})

        if content:
            return self.post_message(ticket.id, SenderType.CUSTOMER.value, content).ticket
        return ticket

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        return ticket

    def sla_report(self, ticket_id: str) -> SlaReport:
        return self.sla.report(self.get_ticket(ticket_id), self.clock.now())

    # Messages

    def post_message(
        self,
        ticket_id: str,
        sender_type: str,
        content: str,
        sender_id: Optional[str] = None,
        is_internal: bool = False,
    ) -> PostMessageResult:
        """Store a message and apply the status change it implies."""
        ensure_present(content, "content")
        ensure_one_of(_value(sender_type), "sender_type", (s.value for s in SenderType))
        sender = SenderType(sender_type)
        if is_internal and sender == SenderType.CUSTOMER:
            raise ValidationError("Customers cannot post internal notes")

        ticket = self.get_ticket(ticket_id)
        now = self.clock.now()
        message = self.store.insert_message(
            Message(
                ticket_id=ticket.id,
                sender_type=sender,
                sender_id=sender_id,
                content=content.strip(),
                is_internal=is_internal,
                created_at=now,
            )
        )

        if is_internal or sender == SenderType.SYSTEM:
            return PostMessageResult(message=message, ticket=ticket)
        if sender == SenderType.CUSTOMER:
            return self._on_customer_message(ticket, message, now)

        ticket = self._record_reply(ticket, sender, sender_id, now)
        return PostMessageResult(message=message, ticket=ticket)

    def _on_customer_message(self, ticket: Ticket, message: Message, now: datetime) -> PostMessageResult:
        was_resolved = ticket.status == TicketStatus.RESOLVED

        def fields(current: Ticket) -> Dict[str, object]:
            changes: Dict[str, object] = dict(cleared_markers())
            if current.status == TicketStatus.RESOLVED:
                changes["resolved_at"] = None
            return changes

        ticket = self._transition(ticket, TicketEventKind.CUSTOMER_REPLY, fields, now)
        if was_resolved:
            self.store.insert_event(
                TicketEvent(ticket_id=ticket.id, event_type="reopened",
                            old_value=TicketStatus.RESOLVED.value, new_value=ticket.status.value,
                            created_at=now)
            )

        if not ticket.ai_handled:
            return PostMessageResult(message=message, ticket=ticket)

        prior_messages = max(self.store.count_messages(ticket.id, SenderType.CUSTOMER) - 1, 0)
        request = EscalationInput(
            message=message.content,
            prior_message_count=prior_messages,
            intent_category=ticket.intent_category,
        )
        thresholds = self.thresholds.current()

        # Keyword rules first so an explicit request never waits on the model.
        decision = self.policy.evaluate(request, thresholds)
        generation: Optional[GenerationResult] = None
        if not decision.should_escalate:
            if self.language_model is None:
                return PostMessageResult(message=message, ticket=ticket)
            generation = self._generate_reply(ticket, message.content)
            confidence = generation.confidence_hint if generation else 0.0
            decision = self.policy.evaluate(
                request.model_copy(update={"confidence": confidence}), thresholds
            )
            if generation is None and not decision.should_escalate:
                decision = EscalationDecision(
                    should_escalate=True,
                    reason=EscalationReason.LOW_CONFIDENCE,
                    detail="AI reply unavailable",
                    threshold=decision.threshold,
                )

        if decision.should_escalate:
            return self._escalate(ticket, message, decision, now)

        reply = self.store.insert_message(
            Message(
                ticket_id=ticket.id,
                sender_type=SenderType.AI,
                content=generation.text,
                metadata={"confidence": generation.confidence_hint},
                created_at=_after(now, message.created_at),
            )
        )
        ticket = self._record_reply(
            ticket, SenderType.AI, None, now, {"ai_confidence": generation.confidence_hint}
        )
        return PostMessageResult(message=message, ticket=ticket, reply=reply, escalation=decision)

    def _generate_reply(self, ticket: Ticket, content: str) -> Optional[GenerationResult]:
        context = {
            "subject": ticket.subject,
            "priority": ticket.priority.value,
            "intent": ticket.intent_category,
        }
        try:
            return generate_with_timeout(
                self.language_model, content, context, self.settings.llm_timeout_seconds
            )
        except Exception as exc:
            logger.warning(
                "AI reply unavailable; treating as zero confidence",
                extra={"ticket_id": ticket.id, "error": str(exc)},
            )
            return None

    def _escalate(
        self, ticket: Ticket, message: Message, decision: EscalationDecision, now: datetime
    ) -> PostMessageResult:
        handover = self.store.insert_message(
            Message(
                ticket_id=ticket.id,
                sender_type=SenderType.SYSTEM,
                content=HANDOVER_MESSAGE,
                metadata={"escalation_reason": decision.reason.value},
                created_at=_after(now, message.created_at),
            )
        )
        ticket = self._transition(
            ticket,
            TicketEventKind.ESCALATE,
            lambda current: {"ai_handled": False, "queue": Queue.HUMAN},
            now,
        )
        self.store.insert_event(
            TicketEvent(ticket_id=ticket.id, event_type="escalated",
                        new_value=decision.reason.value, metadata={"detail": decision.detail},
                        created_at=now)
        )
        logger.info(
            "Ticket escalated",
            extra={"ticket_id": ticket.id, "reason": decision.reason.value},
        )
        return PostMessageResult(message=message, ticket=ticket, reply=handover, escalation=decision)

    def _record_reply(
        self,
        ticket: Ticket,
        sender: SenderType,
        sender_id: Optional[str],
        now: datetime,
        extra: Optional[Dict[str, object]] = None,
    ) -> Ticket:
        """Apply a non-internal agent/AI reply to the ticket."""

        def fields(current: Ticket) -> Dict[str, object]:
            changes: Dict[str, object] = dict(extra or {})
            changes.update(self.sla.first_response_fields(current, now))
            if current.status != TicketStatus.RESOLVED:
                changes.update(reply_markers(current.priority, now))
            if sender == SenderType.AGENT:
                changes["ai_handled"] = False
                changes["queue"] = Queue.HUMAN
                if current.assigned_agent_id is None and sender_id:
                    changes["assigned_agent_id"] = sender_id
            return changes

        return self._transition(ticket, TicketEventKind.REPLY_SENT, fields, now)

    # Status

    def update_ticket_status(
        self, ticket_id: str, status: str, agent_id: Optional[str] = None
    ) -> Ticket:
        """Explicit status change by an agent."""
        event = state_machine.event_for_status(status)
        ticket = self.get_ticket(ticket_id)
        now = self.clock.now()
        previous = ticket.status

        def fields(current: Ticket) -> Dict[str, object]:
            if event == TicketEventKind.RESOLVE:
                changes = dict(self.sla.resolution_fields(current, now))
                changes["resolved_at"] = now
                changes.update(resolve_markers(current.priority, now))
                return changes
            if event == TicketEventKind.ESCALATE:
                return {"ai_handled": False, "queue": Queue.HUMAN}
            if event == TicketEventKind.REOPEN:
                changes = dict(cleared_markers())
                changes["resolved_at"] = None
                return changes
            return dict(reply_markers(current.priority, now))

        ticket = self._transition(ticket, event, fields, now)
        self.store.insert_event(
            TicketEvent(ticket_id=ticket.id, agent_id=agent_id, event_type="status_changed",
                        old_value=previous.value, new_value=ticket.status.value, created_at=now)
        )
        if event == TicketEventKind.ESCALATE:
            self.store.insert_event(
                TicketEvent(ticket_id=ticket.id, agent_id=agent_id, event_type="escalated",
                            new_value="manual", created_at=now)
            )
        logger.info(
            "Ticket status updated",
            extra={"ticket_id": ticket.id, "from": previous.value, "to": ticket.status.value},
        )
        return ticket

    def _transition(
        self,
        ticket: Ticket,
        event: TicketEventKind,
        build_fields: Callable[[Ticket], Dict[str, object]],
        now: datetime,
    ) -> Ticket:
        """Conditional status update; re-reads once if another writer got there first."""
        current = ticket
        for _ in range(MAX_STATUS_ATTEMPTS):
            changes = {"status": state_machine.transition(current.status, event), "updated_at": now}
            changes.update(build_fields(current))
            updated = self.store.update_ticket_if_status(current.id, [current.status], changes)
            if updated is not None:
                return updated
            current = self.get_ticket(ticket.id)
        raise ConflictError("Ticket was modified concurrently")


def _value(raw):
    return raw.value if isinstance(raw, Enum) else raw


def _after(now: datetime, previous: datetime) -> datetime:
    """A timestamp strictly after ``previous`` so conversation order is stable."""
    if now > previous:
        return now
    return previous + timedelta(microseconds=1)
