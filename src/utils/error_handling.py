"""Custom exceptions and helpers for consistent error responses."""

import json
from typing import Any, Dict


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ForbiddenError(AppError):
    """Raised when the acting agent is not the one allowed to act."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class ConflictError(AppError):
    """Raised when a state precondition no longer holds."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


class InvalidTransitionError(ConflictError):
    """Raised when a ticket status transition is not allowed."""

    def __init__(self, current: str, event: str):
        super().__init__(f"Cannot apply {event} to a ticket in status {current}")
        self.current = current
        self.event = event


class UpstreamTimeoutError(AppError):
    """A collaborator (model, email) exceeded its time bound.

    Callers recover locally with fallback content; it is never returned to a
    client.
    """

    def __init__(self, message: str = "Upstream call timed out"):
        super().__init__(message, status_code=500)


class UpstreamFailureError(AppError):
    """A store write failed."""

    def __init__(self, message: str = "Upstream write failed"):
        super().__init__(message, status_code=502)


def json_response(status: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def to_response(error: AppError) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    return json_response(error.status_code, {"message": str(error), "status": "error"})
