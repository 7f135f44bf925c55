"""
Scheduled job triggers.

Reachable as ``POST /cron/{job}`` and as a scheduled (EventBridge) event of
the form ``{"job": "<name>"}``. When ``CRON_SECRET`` is configured, HTTP
triggers must present it in the ``x-cron-secret`` header.
"""

from __future__ import annotations

import hmac
from typing import Callable, Dict

from models.jobs import JobResult
from utils.error_handling import ForbiddenError, NotFoundError, json_response
from utils.logging_config import get_logger

from .common import api_handler, header, path_param
from .dependencies import (
    get_calibration_job,
    get_health_scorer,
    get_scheduler,
    get_settings,
)

logger = get_logger(__name__)

JOBS: Dict[str, Callable[[], JobResult]] = {
    "follow-ups": lambda: get_scheduler().run_follow_ups(),
    "auto-closes": lambda: get_scheduler().run_auto_closes(),
    "stalled-revivals": lambda: get_scheduler().run_stalled_revivals(),
    "checkins": lambda: get_scheduler().run_checkins(),
    "sla-sweep": lambda: get_scheduler().run_sla_sweep(),
    "health-scores": lambda: get_health_scorer().run(),
    "calibration": lambda: get_calibration_job().run(),
}


def run_job(name: str) -> JobResult:
    job = JOBS.get(name)
    if job is None:
        raise NotFoundError(f"Unknown job: {name}")
    return job()


@api_handler
def lambda_handler(event, context):
    """POST /cron/{job}"""
    secret = get_settings().cron_secret
    if secret and not hmac.compare_digest(header(event, "x-cron-secret") or "", secret):
        raise ForbiddenError("Invalid cron secret")
    result = run_job(path_param(event, "job"))
    return json_response(200, result.model_dump())


def scheduled_handler(event, context):
    """EventBridge schedule target; errors propagate so the invocation is retried."""
    name = event.get("job") or (event.get("detail") or {}).get("job", "")
    result = run_job(name)
    logger.info("Scheduled job finished", extra={"job": name, "counts": result.counts})
    return result.model_dump()
