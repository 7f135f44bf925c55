"""Per-priority follow-up and auto-close timelines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from models.ticket import Priority


@dataclass(frozen=True)
class LifecycleTimeline:
    follow_up_hours: int
    auto_close_hours: int
    post_resolve_close_hours: int


LIFECYCLE_TIMELINES: Dict[Priority, LifecycleTimeline] = {
    Priority.URGENT: LifecycleTimeline(4, 48, 24),
    Priority.HIGH: LifecycleTimeline(8, 72, 48),
    Priority.NORMAL: LifecycleTimeline(24, 168, 72),
    Priority.LOW: LifecycleTimeline(48, 336, 120),
}


def reply_markers(priority: Priority, now: datetime) -> Dict[str, Optional[datetime]]:
    """Markers set when we reply and wait on the customer."""
    timeline = LIFECYCLE_TIMELINES[Priority(priority)]
    return {
        "follow_up_at": now + timedelta(hours=timeline.follow_up_hours),
        "auto_close_at": now + timedelta(hours=timeline.auto_close_hours),
    }


def resolve_markers(priority: Priority, now: datetime) -> Dict[str, Optional[datetime]]:
    """A resolved ticket gets no follow-up, only a final close."""
    timeline = LIFECYCLE_TIMELINES[Priority(priority)]
    return {
        "follow_up_at": None,
        "auto_close_at": now + timedelta(hours=timeline.post_resolve_close_hours),
    }


def cleared_markers() -> Dict[str, Optional[datetime]]:
    return {"follow_up_at": None, "auto_close_at": None}
