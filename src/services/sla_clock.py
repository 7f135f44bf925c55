"""
SLA deadline computation and breach freezing.

Percentages are clamped to [0, 150]. Once the qualifying event has happened
(first response sent, ticket resolved) the clock is frozen: the percentage
reports 100 and the status comes from the breach flag captured at that
instant, so later queries never recompute it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from models.sla import SlaInfo, SlaKind, SlaReport, SlaStatus
from models.ticket import Priority, Ticket, TicketStatus

SLA_TARGETS: Dict[Priority, Tuple[timedelta, timedelta]] = {
    Priority.URGENT: (timedelta(hours=1), timedelta(hours=4)),
    Priority.HIGH: (timedelta(hours=4), timedelta(hours=24)),
    Priority.NORMAL: (timedelta(hours=8), timedelta(hours=48)),
    Priority.LOW: (timedelta(hours=24), timedelta(hours=72)),
}

WARNING_PERCENTAGE = 50.0
BREACH_PERCENTAGE = 100.0
MAX_PERCENTAGE = 150.0


def due_dates(priority: Priority, created_at: datetime) -> Tuple[datetime, datetime]:
    """First-response and resolution deadlines for a new ticket."""
    first_response, resolution = SLA_TARGETS[Priority(priority)]
    return created_at + first_response, created_at + resolution


def percentage(created_at: datetime, due_at: datetime, now: datetime) -> float:
    """Share of the SLA window already used, clamped to [0, 150]."""
    total = (due_at - created_at).total_seconds()
    if total <= 0:
        return BREACH_PERCENTAGE
    elapsed = (now - created_at).total_seconds()
    return max(0.0, min(MAX_PERCENTAGE, elapsed / total * 100))


def status_for(pct: float, breached: bool = False) -> SlaStatus:
    if breached or pct >= BREACH_PERCENTAGE:
        return SlaStatus.BREACHED
    if pct >= WARNING_PERCENTAGE:
        return SlaStatus.WARNING
    return SlaStatus.OK


def format_duration(seconds: float) -> str:
    """Human readable duration such as ``2h 30m``, ``3d`` or ``< 1m``."""
    minutes = int(seconds // 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m"
    return "< 1m"


def format_remaining(due_at: Optional[datetime], now: datetime) -> Optional[str]:
    if due_at is None:
        return None
    remaining = (due_at - now).total_seconds()
    if remaining <= 0:
        return "Breached"
    return format_duration(remaining)


class SlaClock:
    """Computes and freezes SLA state for tickets."""

    # Freezing: fields to persist at the moment the qualifying event fires.

    def first_response_fields(self, ticket: Ticket, now: datetime) -> Dict[str, object]:
        """Stamp the first response and capture its breach flag; no-op if already frozen."""
        if ticket.first_response_at is not None:
            return {}
        fields: Dict[str, object] = {"first_response_at": now}
        if ticket.first_response_due_at is not None and now >= ticket.first_response_due_at:
            fields["first_response_breached"] = True
        return fields

    def resolution_fields(self, ticket: Ticket, now: datetime) -> Dict[str, object]:
        """Capture the resolution breach flag as the ticket resolves.

        Breach flags are only ever written as true, so a flag set by the
        sweep after ``ticket`` was read survives this update.
        """
        if ticket.resolution_due_at is not None and now >= ticket.resolution_due_at:
            return {"resolution_breached": True}
        return {}

    def breach_updates(self, ticket: Ticket, now: datetime) -> Dict[str, bool]:
        """Flags that should flip to true for live SLAs past their deadline."""
        updates: Dict[str, bool] = {}
        if ticket.status == TicketStatus.RESOLVED:
            return updates
        if (
            ticket.first_response_at is None
            and not ticket.first_response_breached
            and ticket.first_response_due_at is not None
            and now >= ticket.first_response_due_at
        ):
            updates["first_response_breached"] = True
        if (
            not ticket.resolution_breached
            and ticket.resolution_due_at is not None
            and now >= ticket.resolution_due_at
        ):
            updates["resolution_breached"] = True
        return updates

    # Reporting

    def first_response_info(self, ticket: Ticket, now: datetime) -> Optional[SlaInfo]:
        if ticket.first_response_at is not None:
            return self._frozen(SlaKind.FIRST_RESPONSE, ticket.first_response_due_at,
                                ticket.first_response_breached)
        if ticket.first_response_due_at is None:
            return None
        return self._live(SlaKind.FIRST_RESPONSE, ticket.created_at,
                          ticket.first_response_due_at, ticket.first_response_breached, now)

    def resolution_info(self, ticket: Ticket, now: datetime) -> Optional[SlaInfo]:
        if ticket.status == TicketStatus.RESOLVED:
            return self._frozen(SlaKind.RESOLUTION, ticket.resolution_due_at,
                                ticket.resolution_breached)
        if ticket.resolution_due_at is None:
            return None
        return self._live(SlaKind.RESOLUTION, ticket.created_at,
                          ticket.resolution_due_at, ticket.resolution_breached, now)

    def active_info(self, ticket: Ticket, now: datetime) -> Optional[SlaInfo]:
        """The most urgent live SLA: first response until answered, then resolution."""
        if ticket.first_response_at is None and ticket.first_response_due_at is not None:
            return self.first_response_info(ticket, now)
        if ticket.resolution_due_at is not None and ticket.status != TicketStatus.RESOLVED:
            return self.resolution_info(ticket, now)
        return None

    def report(self, ticket: Ticket, now: datetime) -> SlaReport:
        return SlaReport(
            ticket_id=ticket.id,
            first_response=self.first_response_info(ticket, now),
            resolution=self.resolution_info(ticket, now),
            active=self.active_info(ticket, now),
        )

    def _frozen(self, kind: SlaKind, due_at: Optional[datetime], breached: bool) -> SlaInfo:
        return SlaInfo(
            kind=kind,
            status=SlaStatus.BREACHED if breached else SlaStatus.OK,
            due_at=due_at,
            percentage_used=BREACH_PERCENTAGE,
            time_remaining=None,
            breached=breached,
            frozen=True,
        )

    def _live(
        self,
        kind: SlaKind,
        created_at: datetime,
        due_at: datetime,
        breached: bool,
        now: datetime,
    ) -> SlaInfo:
        pct = percentage(created_at, due_at, now)
        return SlaInfo(
            kind=kind,
            status=status_for(pct, breached),
            due_at=due_at,
            percentage_used=round(pct, 2),
            time_remaining=format_remaining(due_at, now),
            breached=breached or pct >= BREACH_PERCENTAGE,
        )
