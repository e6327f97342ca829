"""API models for the service catalog endpoints."""

from decimal import Decimal

from pydantic import Field

from paycore.models import BillingPeriod, FlowType, ServiceDefinition
from paycore.services.price_guard import period_price

from .common import ApiModel


class ServiceSummary(ApiModel):
    """Public view of a purchasable service.

    Prices are in the service's own currency; the checkout amount in the
    checkout currency is computed by the server at session creation.
    """

    service_id: str = Field(..., examples=["rasi-assistant"])
    name: str
    currency: str = Field(..., examples=["USD"])
    monthly_price: Decimal
    annual_price: Decimal = Field(..., description="12 months with the annual discount applied")
    flow_type: FlowType

    @classmethod
    def from_definition(cls, service: ServiceDefinition) -> "ServiceSummary":
        return cls(
            service_id=service.service_id,
            name=service.name,
            currency=service.currency,
            monthly_price=period_price(service.monthly_price, BillingPeriod.MONTHLY),
            annual_price=period_price(service.monthly_price, BillingPeriod.ANNUAL),
            flow_type=service.flow_type,
        )


class ServiceListResponse(ApiModel):
    success: bool = True
    services: list[ServiceSummary]


class ServiceResponse(ApiModel):
    success: bool = True
    service: ServiceSummary
