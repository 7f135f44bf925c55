"""
Scheduled lifecycle jobs.

Every job follows the same shape: select a bounded batch of candidates,
re-read each one and re-check its guard, perform the side effect, then write
the durable marker that keeps the next run from repeating it. Overlapping
runs are tolerated; the guards keep sends at most one per cooldown window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from models.jobs import JobResult
from models.outreach import DeliveryStatus, OutreachLog, OutreachType
from models.ticket import Message, SenderType, Ticket, TicketEvent, TicketStatus
from repositories.base import TicketQuery, TicketStore
from services import state_machine
from services.email_service import text_to_html
from services.language_model import generate_with_timeout
from services.lifecycle_timelines import cleared_markers
from services.sla_clock import SlaClock
from services.state_machine import TicketEventKind
from utils.clock import SystemClock
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

FOLLOW_UP_FALLBACK = (
    "Hi! Just checking in - is there anything else we can help with? "
    "If not, we'll close this ticket automatically in a few days."
)
CLOSE_AFTER_RESOLVE = (
    "Glad we could help! This ticket is now closed. "
    "Don't hesitate to reach out if you need anything else."
)
CLOSE_AFTER_INACTIVITY = (
    "This ticket has been automatically resolved due to inactivity. "
    "Feel free to reach out anytime if you need more help!"
)

FOLLOW_UP_STATUSES = [TicketStatus.OPEN, TicketStatus.PENDING]
AUTO_CLOSE_STATUSES = [TicketStatus.OPEN, TicketStatus.PENDING, TicketStatus.RESOLVED]


def revival_message(subject: str, name: Optional[str]) -> str:
    return (
        f"Hi {name or 'there'},\n\n"
        f"I wanted to follow up on your support request regarding \"{subject}\".\n\n"
        "We sent you a response but haven't heard back. Is there anything else we can "
        "help you with, or has your issue been resolved?\n\n"
        "If everything is working now, just let us know and we'll close this ticket. "
        "If you're still experiencing issues, we're here to help!\n\n"
        "Best regards,\nSupport Team"
    )


def checkin_message(subject: str, name: Optional[str]) -> str:
    return (
        f"Hi {name or 'there'},\n\n"
        f"We recently helped you with \"{subject}\" and wanted to check in.\n\n"
        "Is everything still working well? If you've encountered any new issues or have "
        "questions, please don't hesitate to reach out - we're here to help!\n\n"
        "If everything is going smoothly, no need to reply. We're just making sure "
        "you're taken care of.\n\n"
        "Best regards,\nSupport Team"
    )


def checkin_subject(ticket_id: str) -> str:
    return f"Following up on your support request - #{ticket_id[:8].upper()}"


class LifecycleScheduler:
    """Follow-ups, auto-closes, stalled revivals, check-ins and the SLA sweep."""

    def __init__(
        self,
        store: TicketStore,
        language_model=None,
        emailer=None,
        clock=None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.language_model = language_model
        self.emailer = emailer
        self.clock = clock or SystemClock()
        self.settings = settings or Settings()
        self.sla = SlaClock()

    def _run(self, job: str, body: Callable[[datetime, JobResult], None]) -> JobResult:
        now = self.clock.now()
        result = JobResult()
        logger.info("Job started", extra={"job": job})
        try:
            body(now, result)
        except Exception:
            logger.exception("Job failed", extra={"job": job, "counts": result.counts})
            raise
        logger.info("Job completed", extra={"job": job, "counts": result.counts})
        return result

    def _item(self, job: str, ticket_id: str, result: JobResult, action: Callable[[], bool]) -> None:
        """Run one candidate; a failure is counted and the batch continues."""
        try:
            if action():
                result.bump("processed")
            else:
                result.bump("skipped")
        except Exception as exc:
            result.bump("errors")
            logger.error(
                "Lifecycle item failed",
                extra={"job": job, "ticket_id": ticket_id, "error": str(exc)},
            )

    # Follow-ups

    def run_follow_ups(self) -> JobResult:
        def body(now: datetime, result: JobResult) -> None:
            candidates = self.store.list_tickets(
                TicketQuery(
                    statuses=FOLLOW_UP_STATUSES,
                    follow_up_before=now,
                    order_by="follow_up_at",
                    limit=self.settings.follow_up_batch_size,
                )
            )
            for ticket in candidates:
                self._item("follow_ups", ticket.id, result, lambda t=ticket: self._follow_up(t.id, now))

        return self._run("follow_ups", body)

    def _follow_up(self, ticket_id: str, now: datetime) -> bool:
        ticket = self.store.get_ticket(ticket_id)
        if (
            ticket is None
            or ticket.status not in FOLLOW_UP_STATUSES
            or ticket.follow_up_at is None
            or ticket.follow_up_at >= now
        ):
            return False

        content = self._follow_up_text(ticket)
        self.store.insert_message(
            Message(ticket_id=ticket.id, sender_type=SenderType.SYSTEM, content=content,
                    metadata={"lifecycle": "follow_up"}, created_at=now)
        )

        channel = "internal"
        customer = self.store.get_customer(ticket.customer_id)
        if self.settings.follow_up_email_enabled and self.emailer and customer and customer.email:
            sent = self.emailer.send(
                customer.email, f"Re: {ticket.subject or 'Your support request'}",
                content, text_to_html(content),
            )
            if sent.success:
                channel = "email"

        self.store.insert_outreach(
            OutreachLog(customer_id=ticket.customer_id, ticket_id=ticket.id,
                        outreach_type=OutreachType.FOLLOW_UP, channel=channel,
                        message_content=content, trigger_reason="follow_up_due", created_at=now)
        )
        self.store.update_ticket_if_status(
            ticket.id, FOLLOW_UP_STATUSES, {"follow_up_at": None, "updated_at": now}
        )
        return True

    def _follow_up_text(self, ticket: Ticket) -> str:
        if self.language_model is None:
            return FOLLOW_UP_FALLBACK
        prompt = (
            "Write a short, friendly check-in for a customer who has not replied to our "
            f"last message about \"{ticket.subject}\". Mention that the ticket will close "
            "automatically in a few days if we don't hear back."
        )
        try:
            return generate_with_timeout(
                self.language_model, prompt, {"priority": ticket.priority.value},
                self.settings.llm_timeout_seconds,
            ).text or FOLLOW_UP_FALLBACK
        except Exception as exc:
            logger.warning(
                "Using fallback follow-up text",
                extra={"ticket_id": ticket.id, "error": str(exc)},
            )
            return FOLLOW_UP_FALLBACK

    # Auto-close

    def run_auto_closes(self) -> JobResult:
        def body(now: datetime, result: JobResult) -> None:
            candidates = self.store.list_tickets(
                TicketQuery(
                    statuses=AUTO_CLOSE_STATUSES,
                    auto_close_before=now,
                    order_by="auto_close_at",
                    limit=self.settings.auto_close_batch_size,
                )
            )
            for ticket in candidates:
                self._item("auto_closes", ticket.id, result, lambda t=ticket: self._auto_close(t.id, now))

        return self._run("auto_closes", body)

    def _auto_close(self, ticket_id: str, now: datetime) -> bool:
        ticket = self.store.get_ticket(ticket_id)
        if (
            ticket is None
            or ticket.status not in AUTO_CLOSE_STATUSES
            or ticket.auto_close_at is None
            or ticket.auto_close_at >= now
        ):
            return False

        was_resolved = ticket.status == TicketStatus.RESOLVED
        content = CLOSE_AFTER_RESOLVE if was_resolved else CLOSE_AFTER_INACTIVITY
        self.store.insert_message(
            Message(ticket_id=ticket.id, sender_type=SenderType.SYSTEM, content=content,
                    metadata={"lifecycle": "auto_close"}, created_at=now)
        )

        changes = dict(cleared_markers())
        changes["updated_at"] = now
        if not was_resolved:
            changes["status"] = state_machine.transition(ticket.status, TicketEventKind.RESOLVE)
            changes["resolved_at"] = now
            changes.update(self.sla.resolution_fields(ticket, now))
        if self.store.update_ticket_if_status(ticket.id, [ticket.status], changes) is None:
            logger.info("Ticket changed before auto-close", extra={"ticket_id": ticket.id})
            return False

        if not was_resolved:
            self.store.insert_event(
                TicketEvent(ticket_id=ticket.id, event_type="status_changed",
                            old_value=ticket.status.value, new_value=TicketStatus.RESOLVED.value,
                            metadata={"reason": "auto_close"}, created_at=now)
            )
        self.store.insert_outreach(
            OutreachLog(customer_id=ticket.customer_id, ticket_id=ticket.id,
                        outreach_type=OutreachType.AUTO_CLOSE, message_content=content,
                        trigger_reason="resolved" if was_resolved else "inactivity",
                        created_at=now)
        )
        return True

    # Stalled conversations

    def run_stalled_revivals(self) -> JobResult:
        def body(now: datetime, result: JobResult) -> None:
            candidates = self.store.list_tickets(
                TicketQuery(
                    statuses=[TicketStatus.PENDING],
                    order_by="updated_at",
                    limit=self.settings.stalled_candidate_limit,
                )
            )
            for ticket in candidates:
                if result.counts.get("processed", 0) >= self.settings.max_revivals_per_run:
                    break
                self._item("stalled_revivals", ticket.id, result, lambda t=ticket: self._revive(t.id, now))

        return self._run("stalled_revivals", body)

    def _revive(self, ticket_id: str, now: datetime) -> bool:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None or ticket.status != TicketStatus.PENDING:
            return False
        last = self.store.last_message(ticket.id)
        if last is None or last.sender_type == SenderType.CUSTOMER:
            return False
        if now - last.created_at < timedelta(hours=self.settings.stalled_hours):
            return False
        cooldown = now - timedelta(days=self.settings.revival_cooldown_days)
        if self.store.has_outreach(ticket.id, OutreachType.STALLED_REVIVAL, since=cooldown):
            return False

        customer = self.store.get_customer(ticket.customer_id)
        content = revival_message(ticket.subject, customer.name if customer else None)
        self.store.insert_message(
            Message(ticket_id=ticket.id, sender_type=SenderType.AI, content=content,
                    metadata={"lifecycle": "stalled_revival"}, created_at=now)
        )
        hours_stalled = int((now - last.created_at).total_seconds() // 3600)
        self.store.insert_outreach(
            OutreachLog(customer_id=ticket.customer_id, ticket_id=ticket.id,
                        outreach_type=OutreachType.STALLED_REVIVAL, channel="in_app",
                        message_content=content,
                        trigger_reason=f"No customer response for {hours_stalled} hours",
                        created_at=now)
        )
        return True

    # Post-resolution check-ins

    def run_checkins(self) -> JobResult:
        def body(now: datetime, result: JobResult) -> None:
            target_day = (now - timedelta(days=self.settings.checkin_days_after_resolution)).astimezone(
                timezone.utc
            )
            start = target_day.replace(hour=0, minute=0, second=0, microsecond=0)
            end = start + timedelta(days=1) - timedelta(microseconds=1)
            candidates = self.store.list_tickets(
                TicketQuery(
                    statuses=[TicketStatus.RESOLVED],
                    resolved_between=(start, end),
                    order_by="resolved_at",
                    limit=self.settings.checkin_candidate_limit,
                )
            )
            for ticket in candidates:
                if result.counts.get("processed", 0) >= self.settings.max_checkins_per_run:
                    break
                self._item("checkins", ticket.id, result, lambda t=ticket: self._check_in(t.id, now))

        return self._run("checkins", body)

    def _check_in(self, ticket_id: str, now: datetime) -> bool:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None or ticket.status != TicketStatus.RESOLVED:
            return False
        if self.store.has_outreach(ticket.id, OutreachType.POST_RESOLUTION_CHECKIN):
            return False
        customer = self.store.get_customer(ticket.customer_id)
        if customer is None or not customer.email or self.emailer is None:
            return False

        content = checkin_message(ticket.subject, customer.name)
        log = self.store.insert_outreach(
            OutreachLog(customer_id=customer.id, ticket_id=ticket.id,
                        outreach_type=OutreachType.POST_RESOLUTION_CHECKIN, channel="email",
                        message_content=content,
                        trigger_reason=(
                            f"Resolved {self.settings.checkin_days_after_resolution} days ago"
                        ),
                        delivery_status=DeliveryStatus.PENDING, created_at=now)
        )
        sent = self.emailer.send(customer.email, checkin_subject(ticket.id), content, text_to_html(content))
        self.store.update_outreach_status(
            log.id, DeliveryStatus.SENT if sent.success else DeliveryStatus.FAILED
        )
        if not sent.success:
            raise RuntimeError(f"Check-in email failed: {sent.error}")
        return True

    # SLA sweep

    def run_sla_sweep(self) -> JobResult:
        def body(now: datetime, result: JobResult) -> None:
            candidates = self.store.list_tickets(
                TicketQuery(
                    has_live_sla=True,
                    order_by="resolution_due_at",
                    limit=self.settings.sla_sweep_batch_size,
                )
            )
            for ticket in candidates:
                self._item("sla_sweep", ticket.id, result, lambda t=ticket: self._sweep(t.id, now))

        return self._run("sla_sweep", body)

    def _sweep(self, ticket_id: str, now: datetime) -> bool:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None:
            return False
        updates = self.sla.breach_updates(ticket, now)
        if not updates:
            return False
        if self.store.update_ticket_if_status(ticket.id, list(state_machine.ACTIVE_STATUSES), updates) is None:
            return False
        logger.warning(
            "SLA breached",
            extra={"ticket_id": ticket.id, "breaches": sorted(updates)},
        )
        return True
