"""Agent handoff routes."""

from __future__ import annotations

from pydantic import BaseModel, Field

from utils.error_handling import json_response

from .common import acting_agent, api_handler, parse_body, path_param
from .dependencies import get_handoff_coordinator


class HandoffRequest(BaseModel):
    to_agent_id: str = Field(min_length=1)
    reason: str = ""


class HandoffDecision(BaseModel):
    decision: str


@api_handler
def request_handler(event, context):
    """POST /tickets/{ticket_id}/handoff (requesting agent from x-agent-id)."""
    request = HandoffRequest.model_validate(parse_body(event))
    handoff = get_handoff_coordinator().request_handoff(
        path_param(event, "ticket_id"), acting_agent(event), request.to_agent_id, request.reason
    )
    return json_response(201, handoff.model_dump(mode="json"))


@api_handler
def resolve_handler(event, context):
    """PATCH /handoffs/{handoff_id}"""
    request = HandoffDecision.model_validate(parse_body(event))
    resolution = get_handoff_coordinator().resolve_handoff(
        path_param(event, "handoff_id"), acting_agent(event), request.decision
    )
    return json_response(200, resolution.model_dump(mode="json"))
