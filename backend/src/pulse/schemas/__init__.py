"""Pydantic schemas for API request/response validation."""

from pulse.schemas.asaas import (
    AsaasEventType,
    AsaasNotification,
    AsaasPayment,
    AsaasSubscription,
    EventKind,
    classify_event,
)
from pulse.schemas.error import ErrorCode, ErrorDetail, ErrorResponse
from pulse.schemas.webhook_event import AsaasWebhookResponse, WebhookResult
from pulse.schemas.whatsapp import (
    ConnectionStart,
    ConnectionStarted,
    ConnectionState,
    ConnectResult,
    InstanceCreate,
    InstanceStatus,
    MessagingInstance,
    Notification,
    PollOutcome,
)

__all__ = [
    "AsaasEventType",
    "AsaasNotification",
    "AsaasPayment",
    "AsaasSubscription",
    "AsaasWebhookResponse",
    "ConnectResult",
    "ConnectionStart",
    "ConnectionStarted",
    "ConnectionState",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "EventKind",
    "InstanceCreate",
    "InstanceStatus",
    "MessagingInstance",
    "Notification",
    "PollOutcome",
    "WebhookResult",
    "classify_event",
]
