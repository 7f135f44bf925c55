"""Request parsing and error mapping shared by the HTTP handlers."""

from __future__ import annotations

import functools
import json
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from utils.error_handling import AppError, ValidationError, json_response, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    try:
        payload = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def path_param(event: Dict[str, Any], name: str) -> str:
    value = (event.get("pathParameters") or {}).get(name)
    if not value:
        raise ValidationError(f"Missing path parameter: {name}")
    return value


def header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    for key, value in (event.get("headers") or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def acting_agent(event: Dict[str, Any]) -> str:
    agent_id = header(event, "x-agent-id")
    if not agent_id:
        raise ValidationError("x-agent-id header is required")
    return agent_id


def api_handler(func: Callable) -> Callable:
    """Map domain errors onto HTTP responses."""

    @functools.wraps(func)
    def wrapper(event, context):
        try:
            return func(event, context)
        except AppError as exc:
            logger.info(
                "Request rejected",
                extra={"handler": func.__name__, "status_code": exc.status_code, "error": exc.message},
            )
            return to_response(exc)
        except PydanticValidationError as exc:
            return json_response(
                400, {"message": "Invalid request", "status": "error", "errors": exc.errors()}
            )
        except Exception:
            logger.exception("Unhandled error", extra={"handler": func.__name__})
            return json_response(500, {"message": "Internal server error", "status": "error"})

    return wrapper
