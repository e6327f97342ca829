"""Processor webhook, retry-queue and payment-status models."""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import PROCESSOR_STATUS_WORDS, PaymentStatus

# Processor form field -> WebhookEvent attribute
PROCESSOR_FIELD_MAP: dict[str, str] = {
    "x_cust_id_cliente": "customer_id",
    "x_ref_payco": "reference_id",
    "x_transaction_id": "transaction_id",
    "x_amount": "amount",
    "x_currency_code": "currency_code",
    "x_customer_email": "customer_email",
    "x_customer_movil": "customer_phone",
    "x_response": "response",
    "x_response_reason_text": "reason",
    "x_extra1": "order_id",
    "x_extra2": "service_id",
    "x_signature": "signature",
    "x_test_request": "test_request",
}


class WebhookEvent(BaseModel):
    """A payment notification as received from the processor.

    All fields are optional strings so that malformed notifications can
    still be parsed, logged and rejected by the integrity check.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: str | None = Field(default=None, description="Merchant customer ID (x_cust_id_cliente)")
    reference_id: str | None = Field(default=None, description="Processor reference (x_ref_payco)")
    transaction_id: str | None = Field(default=None, description="Processor transaction ID")
    amount: str | None = Field(default=None, description="Amount exactly as signed by the processor")
    currency_code: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    response: str | None = Field(default=None, description="Raw status word, e.g. 'Aceptada'")
    reason: str | None = None
    order_id: str | None = Field(default=None, description="Correlation ID echoed in x_extra1")
    service_id: str | None = None
    signature: str | None = None
    test_request: str | None = None

    @classmethod
    def from_processor_payload(cls, payload: Mapping[str, Any]) -> "WebhookEvent":
        """Build an event from the processor's x_* field set.

        Args:
            payload: Parsed form or JSON body

        Returns:
            WebhookEvent with every known field copied as a stripped string
        """
        values: dict[str, str | None] = {}
        for source, target in PROCESSOR_FIELD_MAP.items():
            raw = payload.get(source)
            if raw is None:
                continue
            text = str(raw).strip()
            values[target] = text or None
        return cls(**values)

    @property
    def status(self) -> PaymentStatus:
        """Normalized status; unrecognized words map to UNKNOWN."""
        if not self.response:
            return PaymentStatus.UNKNOWN
        return PROCESSOR_STATUS_WORDS.get(self.response.strip().lower(), PaymentStatus.UNKNOWN)

    @property
    def amount_value(self) -> Decimal | None:
        """Amount as a Decimal, or None when absent or unparseable."""
        if self.amount is None:
            return None
        try:
            value = Decimal(self.amount)
        except InvalidOperation:
            return None
        return value if value.is_finite() else None


class QueuedWebhook(BaseModel):
    """An accepted webhook that arrived before its order was visible.

    retries and last_retry_at are the only fields the retry processor
    updates in place.
    """

    queue_id: str = Field(..., examples=["QUEUE-1767225600000-k3j9x0a1b"])
    event: WebhookEvent
    reason: str
    enqueued_at: datetime
    retries: int = Field(default=0, ge=0)
    last_retry_at: datetime | None = None

    @property
    def order_id(self) -> str | None:
        return self.event.order_id

    @property
    def transaction_id(self) -> str | None:
        return self.event.transaction_id


class PaymentStatusRecord(BaseModel):
    """Last known outcome of a processor transaction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_id: str
    reference_id: str | None = None
    status: PaymentStatus
    reason: str | None = None
    message: str | None = None
    email: str | None = None
    flow_type: str | None = None
    order_id: str | None = None
    amount: str | None = None
    currency: str | None = None
    updated_at: datetime


class WebhookAck(BaseModel):
    """Generic acknowledgement returned to the processor."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    transaction_id: str | None = None
