"""Pydantic models for payment reconciliation."""

from .catalog import ServiceDefinition
from .compensation import (
    CompensationRecord,
    CompensationReport,
    CompensationStats,
    EmailRetryOutcome,
    FailedEmail,
    FailedSheetWrite,
    PartialTransaction,
    ResolveResult,
)
from .enums import (
    BillingPeriod,
    CompensationKind,
    EmailType,
    FlowType,
    FulfillmentStep,
    PaymentStatus,
)
from .errors import (
    CheckoutError,
    CurrencyConversionError,
    DownstreamFulfillmentError,
    ErrorCode,
    ErrorResponse,
    GatewayError,
    NotificationError,
    SaasRegistrationError,
)
from .order import CheckoutRequest, CredentialsRegistration, PendingOrder
from .webhook import PaymentStatusRecord, QueuedWebhook, WebhookAck, WebhookEvent

__all__ = [
    "BillingPeriod",
    "CheckoutError",
    "CheckoutRequest",
    "CompensationKind",
    "CompensationRecord",
    "CompensationReport",
    "CompensationStats",
    "CredentialsRegistration",
    "CurrencyConversionError",
    "DownstreamFulfillmentError",
    "EmailRetryOutcome",
    "EmailType",
    "ErrorCode",
    "ErrorResponse",
    "FailedEmail",
    "FailedSheetWrite",
    "FlowType",
    "FulfillmentStep",
    "GatewayError",
    "NotificationError",
    "PartialTransaction",
    "PaymentStatus",
    "PaymentStatusRecord",
    "PendingOrder",
    "QueuedWebhook",
    "ResolveResult",
    "SaasRegistrationError",
    "ServiceDefinition",
    "WebhookAck",
    "WebhookEvent",
]
