"""
Ticket status state machine.

The next status is a pure function of (current status, event kind). Side
fields that accompany a transition (SLA freezes, lifecycle markers,
``ai_handled``) are computed by the ticket service, not here.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from models.ticket import TicketStatus
from utils.error_handling import InvalidTransitionError, ValidationError


class TicketEventKind(str, Enum):
    """Things that can happen to a ticket."""

    REPLY_SENT = "reply_sent"
    CUSTOMER_REPLY = "customer_reply"
    INTERNAL_NOTE = "internal_note"
    ESCALATE = "escalate"
    RESOLVE = "resolve"
    REOPEN = "reopen"
    AWAIT_CUSTOMER = "await_customer"


OPEN = TicketStatus.OPEN
PENDING = TicketStatus.PENDING
ESCALATED = TicketStatus.ESCALATED
RESOLVED = TicketStatus.RESOLVED
ALL_STATUSES = (OPEN, PENDING, ESCALATED, RESOLVED)
ACTIVE_STATUSES = (OPEN, PENDING, ESCALATED)


def _build_table() -> Dict[Tuple[TicketStatus, TicketEventKind], TicketStatus]:
    table: Dict[Tuple[TicketStatus, TicketEventKind], TicketStatus] = {}
    for status in ALL_STATUSES:
        table[(status, TicketEventKind.CUSTOMER_REPLY)] = OPEN
        table[(status, TicketEventKind.INTERNAL_NOTE)] = status
        table[(status, TicketEventKind.REOPEN)] = OPEN
    for status in ACTIVE_STATUSES:
        table[(status, TicketEventKind.REPLY_SENT)] = PENDING
        table[(status, TicketEventKind.ESCALATE)] = ESCALATED
        table[(status, TicketEventKind.RESOLVE)] = RESOLVED
        table[(status, TicketEventKind.AWAIT_CUSTOMER)] = PENDING
    # Replies on a resolved ticket leave it resolved; only the customer reopens it.
    table[(RESOLVED, TicketEventKind.REPLY_SENT)] = RESOLVED
    return table


TRANSITIONS = _build_table()


def initial_status() -> TicketStatus:
    """Status of a freshly created ticket."""
    return OPEN


def transition(current: TicketStatus, event: TicketEventKind) -> TicketStatus:
    """Return the status after ``event``; raise InvalidTransitionError if not allowed."""
    try:
        return TRANSITIONS[(TicketStatus(current), TicketEventKind(event))]
    except KeyError:
        raise InvalidTransitionError(TicketStatus(current).value, TicketEventKind(event).value)


_TARGET_EVENTS = {
    OPEN: TicketEventKind.REOPEN,
    PENDING: TicketEventKind.AWAIT_CUSTOMER,
    ESCALATED: TicketEventKind.ESCALATE,
    RESOLVED: TicketEventKind.RESOLVE,
}


def event_for_status(target: str) -> TicketEventKind:
    """Map an explicitly requested status onto the event that produces it."""
    try:
        return _TARGET_EVENTS[TicketStatus(target)]
    except ValueError:
        raise ValidationError(
            f"status must be one of: {', '.join(s.value for s in ALL_STATUSES)}"
        )
