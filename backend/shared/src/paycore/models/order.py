"""Pending order and flow-specific checkout payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import BillingPeriod, FlowType


class CheckoutRequest(BaseModel):
    """Checkout form as submitted by the browser.

    Fields are deliberately loose; CheckoutService validates them one by
    one so each problem maps to its own error code.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    service_id: str | None = Field(default=None, examples=["rasi-assistant"])
    service_name: str | None = None
    amount: Any = Field(default=None, description="Client-computed amount; verified server-side")
    currency: str | None = Field(default="COP")
    billing_period: str | None = Field(default=None, examples=["monthly"])
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    user_id: str | None = None
    flow_type: str | None = Field(default=None, examples=["credentials"])
    registration_data: dict[str, Any] | None = Field(
        default=None,
        description="Company and user details, credentials flow only",
    )


class CredentialsRegistration(BaseModel):
    """Company and user details collected for the credentials flow.

    Every field is required; the SaaS platform creates the tenant and the
    first user account from them after payment.
    """

    model_config = ConfigDict(
        strict=True,
        frozen=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    company_name: str = Field(..., min_length=1)
    tax_id: str = Field(..., min_length=1, description="Company tax identifier (NIT)")
    legal_representative: str = Field(..., min_length=1)
    user_email: str = Field(..., min_length=3)
    user_name: str = Field(..., min_length=1)
    user_document: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)


class PendingOrder(BaseModel):
    """A checkout that has been initiated but not yet reconciled.

    Created only by checkout, never mutated, removed by a terminal webhook
    or by the abandonment sweep.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    order_id: str = Field(..., description="Correlation ID", examples=["ORD-1767225600000-user42"])
    service_id: str
    service_name: str
    validated_amount: int = Field(
        ..., gt=0, description="Backend-computed amount in the checkout currency"
    )
    currency: str = Field(default="COP")
    billing_period: BillingPeriod
    email: str
    full_name: str
    phone: str = Field(..., description="Normalized 10-digit local number")
    flow_type: FlowType
    user_id: str | None = None
    registration: CredentialsRegistration | None = Field(
        default=None,
        description="Only present for the credentials flow",
    )
    created_at: datetime | None = Field(
        default=None,
        description="Creation timestamp; records without one are swept immediately",
    )
