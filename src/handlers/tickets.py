"""Ticket routes: create, post message, change status, SLA report."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from models.ticket import Priority, SenderType
from utils.error_handling import json_response

from .common import api_handler, header, parse_body, path_param
from .dependencies import get_ticket_service


class CreateTicketRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    subject: str = ""
    priority: Priority = Priority.NORMAL
    channel: str = "widget"
    tags: List[str] = Field(default_factory=list)
    content: Optional[str] = None


class PostMessageRequest(BaseModel):
    sender_type: SenderType
    content: str = Field(min_length=1)
    sender_id: Optional[str] = None
    is_internal: bool = False


class StatusRequest(BaseModel):
    status: str


@api_handler
def create_handler(event, context):
    """POST /tickets"""
    request = CreateTicketRequest.model_validate(parse_body(event))
    ticket = get_ticket_service().create_ticket(
        customer_id=request.customer_id,
        subject=request.subject,
        priority=request.priority.value,
        channel=request.channel,
        tags=request.tags,
        content=request.content,
    )
    return json_response(201, ticket.model_dump(mode="json"))


@api_handler
def message_handler(event, context):
    """POST /tickets/{ticket_id}/messages"""
    request = PostMessageRequest.model_validate(parse_body(event))
    sender_id = request.sender_id
    if request.sender_type == SenderType.AGENT and not sender_id:
        sender_id = header(event, "x-agent-id")
    result = get_ticket_service().post_message(
        path_param(event, "ticket_id"),
        request.sender_type.value,
        request.content,
        sender_id=sender_id,
        is_internal=request.is_internal,
    )
    return json_response(201, result.model_dump(mode="json"))


@api_handler
def status_handler(event, context):
    """PATCH /tickets/{ticket_id}/status"""
    request = StatusRequest.model_validate(parse_body(event))
    ticket = get_ticket_service().update_ticket_status(
        path_param(event, "ticket_id"), request.status, agent_id=header(event, "x-agent-id")
    )
    return json_response(200, ticket.model_dump(mode="json"))


@api_handler
def sla_handler(event, context):
    """GET /tickets/{ticket_id}/sla"""
    report = get_ticket_service().sla_report(path_param(event, "ticket_id"))
    return json_response(200, report.model_dump(mode="json"))
