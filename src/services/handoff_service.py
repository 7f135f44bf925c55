"""
Exclusive agent-to-agent handoff negotiation.

Exclusivity lives in the store: a conditional insert guarantees at most one
pending handoff per ticket, and a compare-and-swap on ``status == pending``
decides the single winner among concurrent resolutions. Writes that follow
a committed swap are not rolled back; failures there are logged as
reconciliation warnings.
"""

from __future__ import annotations

from typing import Callable, Optional

from models.handoff import Handoff, HandoffResolution, HandoffStatus
from models.ticket import Ticket, TicketEvent
from repositories.base import TicketStore
from utils.clock import SystemClock
from utils.error_handling import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from utils.logging_config import get_logger
from utils.validators import ensure_present

logger = get_logger(__name__)

DECISIONS = (HandoffStatus.ACCEPTED.value, HandoffStatus.DECLINED.value)


class HandoffCoordinator:
    """Request and resolve ticket handoffs between agents."""

    def __init__(self, store: TicketStore, notifier, clock=None) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock or SystemClock()

    def request_handoff(
        self,
        ticket_id: str,
        from_agent_id: str,
        to_agent_id: str,
        reason: str,
    ) -> Handoff:
        """Create a pending handoff and notify the receiving agent."""
        ensure_present(reason, "reason")
        if from_agent_id == to_agent_id:
            raise ValidationError("Cannot hand a ticket off to yourself")

        ticket = self.store.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        from_agent = self.store.get_agent(from_agent_id)
        to_agent = self.store.get_agent(to_agent_id)
        if from_agent is None or to_agent is None:
            raise NotFoundError("Agent not found")

        if self.store.find_pending_handoff(ticket_id) is not None:
            raise ConflictError("A pending handoff already exists for this ticket")

        now = self.clock.now()
        handoff = Handoff(
            ticket_id=ticket_id,
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            reason=reason.strip(),
            created_at=now,
        )
        if not self.store.insert_pending_handoff(handoff):
            raise ConflictError("A pending handoff already exists for this ticket")

        self.store.insert_event(
            TicketEvent(
                ticket_id=ticket_id,
                agent_id=from_agent_id,
                event_type="handoff_requested",
                old_value=from_agent_id,
                new_value=to_agent_id,
                metadata={"handoff_id": handoff.id, "reason": handoff.reason},
                created_at=now,
            )
        )
        self._notify(
            to_agent_id,
            "Handoff request",
            f"{from_agent.name or from_agent_id} wants to hand off \"{ticket.subject}\": {handoff.reason}",
            ticket_id,
            handoff.id,
        )
        logger.info(
            "Handoff requested",
            extra={"handoff_id": handoff.id, "ticket_id": ticket_id, "to_agent_id": to_agent_id},
        )
        return handoff

    def resolve_handoff(
        self, handoff_id: str, acting_agent_id: str, decision: str
    ) -> HandoffResolution:
        """Accept or decline a pending handoff as its receiving agent."""
        if decision not in DECISIONS:
            raise ValidationError('decision must be "accepted" or "declined"')

        handoff = self.store.get_handoff(handoff_id)
        if handoff is None:
            raise NotFoundError("Handoff not found")
        if handoff.to_agent_id != acting_agent_id:
            raise ForbiddenError("Only the receiving agent can accept or decline this handoff")
        if handoff.status != HandoffStatus.PENDING:
            raise ConflictError("This handoff has already been processed")

        now = self.clock.now()
        fields = {"status": HandoffStatus(decision), "resolved_at": now}
        if decision == HandoffStatus.ACCEPTED.value:
            fields["accepted_at"] = now
        swapped = self.store.update_handoff_if_pending(handoff_id, fields)
        if swapped is None:
            raise ConflictError("This handoff has already been processed")

        if swapped.status == HandoffStatus.ACCEPTED:
            return self._complete_accept(swapped, acting_agent_id)
        return self._complete_decline(swapped, acting_agent_id)

    def _complete_accept(self, handoff: Handoff, acting_agent_id: str) -> HandoffResolution:
        now = handoff.accepted_at or self.clock.now()
        ticket: Optional[Ticket] = None
        failed_steps = []

        def reassign():
            nonlocal ticket
            ticket = self.store.update_ticket(
                handoff.ticket_id, {"assigned_agent_id": acting_agent_id, "updated_at": now}
            )

        steps = (
            ("reassign_ticket", reassign),
            ("handoff_accepted_event", lambda: self._event(handoff, "handoff_accepted", acting_agent_id, now)),
            ("reassigned_event", lambda: self._event(
                handoff, "reassigned", acting_agent_id, now, {"reason": "handoff_accepted"}
            )),
            ("notify_from_agent", lambda: self.notifier.emit(
                handoff.from_agent_id,
                "Handoff accepted",
                "Your handoff request was accepted",
                handoff.ticket_id,
            )),
        )
        for name, step in steps:
            if not self._run_step(name, step, handoff):
                failed_steps.append(name)

        logger.info(
            "Handoff accepted",
            extra={"handoff_id": handoff.id, "ticket_id": handoff.ticket_id, "failed_steps": failed_steps},
        )
        return HandoffResolution(
            handoff=handoff, ticket=ticket, reconciliation_needed=bool(failed_steps)
        )

    def _complete_decline(self, handoff: Handoff, acting_agent_id: str) -> HandoffResolution:
        now = handoff.resolved_at or self.clock.now()
        ok = self._run_step(
            "handoff_declined_event",
            lambda: self._event(handoff, "handoff_declined", acting_agent_id, now),
            handoff,
        )
        notified = self._run_step(
            "notify_from_agent",
            lambda: self.notifier.emit(
                handoff.from_agent_id,
                "Handoff declined",
                "Your handoff request was declined",
                handoff.ticket_id,
            ),
            handoff,
        )
        logger.info("Handoff declined", extra={"handoff_id": handoff.id, "ticket_id": handoff.ticket_id})
        return HandoffResolution(handoff=handoff, reconciliation_needed=not (ok and notified))

    def _event(self, handoff: Handoff, event_type: str, agent_id: str, now, extra=None) -> None:
        metadata = {"handoff_id": handoff.id}
        metadata.update(extra or {})
        self.store.insert_event(
            TicketEvent(
                ticket_id=handoff.ticket_id,
                agent_id=agent_id,
                event_type=event_type,
                old_value=handoff.from_agent_id,
                new_value=agent_id,
                metadata=metadata,
                created_at=now,
            )
        )

    def _run_step(self, name: str, step: Callable[[], object], handoff: Handoff) -> bool:
        """Run a post-swap write; log instead of raising so the outcome stands."""
        try:
            step()
            return True
        except Exception as exc:
            logger.warning(
                "Handoff reconciliation needed",
                extra={
                    "handoff_id": handoff.id,
                    "ticket_id": handoff.ticket_id,
                    "step": name,
                    "error": str(exc),
                },
            )
            return False

    def _notify(self, agent_id: str, title: str, message: str, ticket_id: str, handoff_id: str) -> None:
        try:
            self.notifier.emit(agent_id, title, message, ticket_id)
        except Exception as exc:
            logger.warning(
                "Handoff notification failed",
                extra={"handoff_id": handoff_id, "agent_id": agent_id, "error": str(exc)},
            )
