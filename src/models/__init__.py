"""Pydantic models shared by services, repositories and handlers."""

from models.calibration import (  # noqa: F401
    CalibrationOutcome,
    CalibrationSample,
    ChannelConfig,
    IntentCalibration,
    ThresholdMap,
)
from models.escalation import EscalationDecision, EscalationInput, EscalationReason  # noqa: F401
from models.handoff import Handoff, HandoffResolution, HandoffStatus  # noqa: F401
from models.health import HealthAlert, HealthFactors, HealthScore, HealthTrend, RiskLevel  # noqa: F401
from models.jobs import EmailResult, GenerationResult, JobResult  # noqa: F401
from models.outreach import DeliveryStatus, Notification, OutreachLog, OutreachType  # noqa: F401
from models.sla import SlaInfo, SlaKind, SlaReport, SlaStatus  # noqa: F401
from models.ticket import (  # noqa: F401
    Agent,
    Customer,
    Feedback,
    Message,
    PostMessageResult,
    Priority,
    Queue,
    SenderType,
    Ticket,
    TicketEvent,
    TicketStatus,
)
