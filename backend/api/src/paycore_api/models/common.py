"""Shared API response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for API bodies serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorMessage(ApiModel):
    """Plain failure body for endpoints outside the checkout error table."""

    success: bool = False
    error: str = Field(..., examples=["Item not found"])


class ComponentCounts(ApiModel):
    pending_orders: int
    queued_webhooks: int
    failed_emails: int
    failed_sheet_writes: int
    partial_transactions: int


class HealthResponse(ApiModel):
    status: str = "ok"
    timestamp: datetime
    service: str = "paycore-api"
    environment: str
    scheduler_running: bool
    components: ComponentCounts
