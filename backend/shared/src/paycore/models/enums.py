"""Enumerations shared by the payment reconciliation models."""

from enum import Enum


class BillingPeriod(str, Enum):
    """Subscription billing period chosen at checkout."""

    MONTHLY = "monthly"
    ANNUAL = "annual"


class FlowType(str, Enum):
    """Fulfillment flow a service follows after payment."""

    CONTACT = "contact"
    CREDENTIALS = "credentials"
    CHATBOT = "chatbot"


class PaymentStatus(str, Enum):
    """Normalized payment outcome reported by the processor."""

    ACCEPTED = "accepted"
    PENDING = "pending"
    REJECTED = "rejected"
    FAILED = "failed"
    UNKNOWN = "unknown"


# Processor status words (lowercased) to normalized status
PROCESSOR_STATUS_WORDS: dict[str, PaymentStatus] = {
    "aceptada": PaymentStatus.ACCEPTED,
    "pendiente": PaymentStatus.PENDING,
    "rechazada": PaymentStatus.REJECTED,
    "fallida": PaymentStatus.FAILED,
}


class CompensationKind(str, Enum):
    """Ledger partitions addressable by the admin resolve operation."""

    EMAIL = "email"
    SHEET = "sheet"
    TRANSACTION = "transaction"


class EmailType(str, Enum):
    """Kind of customer notification."""

    CREDENTIALS = "credentials"
    CONFIRMATION = "confirmation"


class FulfillmentStep(str, Enum):
    """Named steps of post-payment fulfillment."""

    PAYMENT = "payment"
    SAAS_REGISTRATION = "saas_registration"
    ASSIGN_CREDENTIALS = "assign_credentials"
    REGISTER_PURCHASE = "register_purchase"
    SEND_EMAIL = "send_email"
