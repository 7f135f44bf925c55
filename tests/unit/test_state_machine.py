"""Ticket status transition table tests."""

import pytest

from models.ticket import TicketStatus
from services import state_machine
from services.state_machine import TicketEventKind
from utils.error_handling import ConflictError, InvalidTransitionError, ValidationError


class TestTransitions:
    """Next status as a pure function of (status, event)."""

    def test_new_tickets_start_open(self):
        assert state_machine.initial_status() == TicketStatus.OPEN

    @pytest.mark.parametrize("status", list(TicketStatus))
    def test_customer_reply_always_opens(self, status):
        assert state_machine.transition(status, TicketEventKind.CUSTOMER_REPLY) == TicketStatus.OPEN

    @pytest.mark.parametrize("status", list(TicketStatus))
    def test_internal_note_never_changes_status(self, status):
        assert state_machine.transition(status, TicketEventKind.INTERNAL_NOTE) == status

    @pytest.mark.parametrize(
        "status", [TicketStatus.OPEN, TicketStatus.PENDING, TicketStatus.ESCALATED]
    )
    def test_reply_moves_active_tickets_to_pending(self, status):
        assert state_machine.transition(status, TicketEventKind.REPLY_SENT) == TicketStatus.PENDING

    def test_reply_on_resolved_ticket_keeps_it_resolved(self):
        result = state_machine.transition(TicketStatus.RESOLVED, TicketEventKind.REPLY_SENT)
        assert result == TicketStatus.RESOLVED

    def test_escalate_and_resolve_from_open(self):
        assert state_machine.transition("open", "escalate") == TicketStatus.ESCALATED
        assert state_machine.transition("open", "resolve") == TicketStatus.RESOLVED

    @pytest.mark.parametrize(
        "event", [TicketEventKind.ESCALATE, TicketEventKind.RESOLVE, TicketEventKind.AWAIT_CUSTOMER]
    )
    def test_resolved_tickets_reject_agent_transitions(self, event):
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.transition(TicketStatus.RESOLVED, event)
        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.status_code == 409

    def test_reopen_from_resolved(self):
        assert state_machine.transition(TicketStatus.RESOLVED, TicketEventKind.REOPEN) == TicketStatus.OPEN


class TestEventForStatus:
    """Explicit status requests map onto events."""

    @pytest.mark.parametrize(
        "target,event",
        [
            ("open", TicketEventKind.REOPEN),
            ("pending", TicketEventKind.AWAIT_CUSTOMER),
            ("escalated", TicketEventKind.ESCALATE),
            ("resolved", TicketEventKind.RESOLVE),
        ],
    )
    def test_known_statuses(self, target, event):
        assert state_machine.event_for_status(target) == event

    def test_unknown_status_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            state_machine.event_for_status("closed")
