"""Service catalog model."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import FlowType


class ServiceDefinition(BaseModel):
    """A purchasable service and its authoritative monthly price."""

    model_config = ConfigDict(strict=True, frozen=True)

    service_id: str = Field(..., description="Catalog identifier", examples=["rasi-assistant"])
    name: str = Field(..., description="Display name")
    monthly_price: Decimal = Field(..., gt=0, description="Monthly price in the service currency")
    currency: str = Field(default="USD", description="ISO currency of monthly_price")
    flow_type: FlowType = Field(..., description="Fulfillment flow after payment")
    active: bool = Field(default=True, description="Whether the service can be purchased")
