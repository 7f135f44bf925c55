"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

Scheduled events (no ``requestContext``) go straight to the job runner.
"""

import re
from typing import Callable, Pattern, Tuple

from utils.error_handling import json_response

from . import cron, handoffs, health_check, tickets

ROUTES: Tuple[Tuple[str, Pattern[str], Callable], ...] = tuple(
    (method, re.compile(pattern), handler)
    for method, pattern, handler in (
        ("GET", r"^/health$", health_check.lambda_handler),
        ("POST", r"^/tickets$", tickets.create_handler),
        ("POST", r"^/tickets/(?P<ticket_id>[^/]+)/messages$", tickets.message_handler),
        ("PATCH", r"^/tickets/(?P<ticket_id>[^/]+)/status$", tickets.status_handler),
        ("GET", r"^/tickets/(?P<ticket_id>[^/]+)/sla$", tickets.sla_handler),
        ("POST", r"^/tickets/(?P<ticket_id>[^/]+)/handoff$", handoffs.request_handler),
        ("PATCH", r"^/handoffs/(?P<handoff_id>[^/]+)$", handoffs.resolve_handler),
        ("POST", r"^/cron/(?P<job>[a-z-]+)$", cron.lambda_handler),
    )
)


def lambda_handler(event, context):
    """Entry point invoked by API Gateway HTTP API or an EventBridge schedule."""
    if "requestContext" not in event and ("job" in event or "detail" in event):
        return cron.scheduled_handler(event, context)

    http = event.get("requestContext", {}).get("http", {})
    method = http.get("method", "").upper()
    path = http.get("path", "").rstrip("/") or "/"

    for route_method, pattern, handler in ROUTES:
        match = pattern.match(path)
        if match and route_method == method:
            params = dict(event.get("pathParameters") or {})
            params.update(match.groupdict())
            return handler({**event, "pathParameters": params}, context)

    return json_response(404, {"message": "Route not found", "route": f"{method} {path}"})
