"""SQLAlchemy Core table definitions for the ticket store."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

tickets = Table(
    "tickets",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_id", String(64), nullable=False, index=True),
    Column("subject", Text, nullable=False, default=""),
    Column("channel", String(32), nullable=False, default="widget"),
    Column("status", String(16), nullable=False, index=True),
    Column("priority", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True)),
    Column("first_response_at", DateTime(timezone=True)),
    Column("first_response_due_at", DateTime(timezone=True)),
    Column("first_response_breached", Boolean, nullable=False, default=False),
    Column("resolution_due_at", DateTime(timezone=True)),
    Column("resolution_breached", Boolean, nullable=False, default=False),
    Column("resolved_at", DateTime(timezone=True)),
    Column("ai_handled", Boolean, nullable=False, default=True),
    Column("ai_confidence", Float),
    Column("queue", String(16), nullable=False, default="ai"),
    Column("follow_up_at", DateTime(timezone=True), index=True),
    Column("auto_close_at", DateTime(timezone=True), index=True),
    Column("assigned_agent_id", String(64)),
    Column("tags", JSON, nullable=False, default=list),
)

messages = Table(
    "messages",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("ticket_id", String(36), nullable=False, index=True),
    Column("sender_type", String(16), nullable=False),
    Column("sender_id", String(64)),
    Column("content", Text, nullable=False),
    Column("is_internal", Boolean, nullable=False, default=False),
    Column("details", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

ticket_events = Table(
    "ticket_events",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("ticket_id", String(36), nullable=False, index=True),
    Column("event_type", String(32), nullable=False, index=True),
    Column("agent_id", String(64)),
    Column("old_value", Text),
    Column("new_value", Text),
    Column("details", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

customers = Table(
    "customers",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", Text),
    Column("email", Text),
)

agents = Table(
    "agents",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", Text, nullable=False, default=""),
)

ticket_handoffs = Table(
    "ticket_handoffs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("ticket_id", String(36), nullable=False),
    Column("from_agent_id", String(64), nullable=False),
    Column("to_agent_id", String(64), nullable=False),
    Column("reason", Text, nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("accepted_at", DateTime(timezone=True)),
    Column("resolved_at", DateTime(timezone=True)),
)

# At most one pending handoff per ticket.
Index(
    "uq_ticket_handoffs_one_pending",
    ticket_handoffs.c.ticket_id,
    unique=True,
    postgresql_where=ticket_handoffs.c.status == "pending",
    sqlite_where=ticket_handoffs.c.status == "pending",
)

proactive_outreach_log = Table(
    "proactive_outreach_log",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_id", String(64)),
    Column("ticket_id", String(36), index=True),
    Column("outreach_type", String(32), nullable=False),
    Column("channel", String(16), nullable=False),
    Column("message_content", Text, nullable=False, default=""),
    Column("trigger_reason", Text, nullable=False, default=""),
    Column("delivery_status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("agent_id", String(64), nullable=False, index=True),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("ticket_id", String(36)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

health_alerts = Table(
    "health_alerts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_id", String(64), nullable=False, index=True),
    Column("score", Integer, nullable=False),
    Column("risk_level", String(16), nullable=False),
    Column("trend", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

ticket_feedback = Table(
    "ticket_feedback",
    metadata,
    Column("ticket_id", String(36), primary_key=True),
    Column("rating", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True)),
)

customer_health_scores = Table(
    "customer_health_scores",
    metadata,
    Column("customer_id", String(64), primary_key=True),
    Column("score", Integer, nullable=False),
    Column("risk_level", String(16), nullable=False),
    Column("trend", String(16), nullable=False),
    Column("factors", JSON, nullable=False, default=dict),
    Column("calculated_at", DateTime(timezone=True), nullable=False),
)

ai_calibration_data = Table(
    "ai_calibration_data",
    metadata,
    Column("ticket_id", String(36), primary_key=True),
    Column("initial_confidence", Float, nullable=False),
    Column("outcome", String(32), nullable=False),
    Column("csat", Integer),
    Column("intent_category", String(64), nullable=False),
    Column("resolution_time_hours", Float),
    Column("analyzed_at", DateTime(timezone=True)),
)

# Intent "*" holds the map default.
confidence_thresholds = Table(
    "confidence_thresholds",
    metadata,
    Column("intent", String(64), primary_key=True),
    Column("threshold", Float, nullable=False),
    Column("updated_at", DateTime(timezone=True)),
)

channel_config = Table(
    "channel_config",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("ai_auto_respond", Boolean, nullable=False, default=True),
    Column("ai_confidence_threshold", Float, nullable=False, default=0.7),
    Column("updated_at", DateTime(timezone=True)),
)
