"""API models for the operator endpoints.

These endpoints expose the in-memory ledger, order store and retry queue.
They carry no authentication; deployments restrict them at the edge.
"""

from datetime import datetime

from pydantic import Field

from paycore.models import CompensationRecord, CompensationReport, CompensationStats
from paycore.services.order_store import OrderStats
from paycore.services.retry_queue import QueueStats

from .common import ApiModel


class ResolveRequest(ApiModel):
    """Body for marking a ledger entry as handled.

    Both fields are optional in the schema so that a missing field is
    answered with 400 instead of a 422 validation error.
    """

    type: str | None = Field(default=None, examples=["email"], description="email, sheet or transaction")
    id: str | None = Field(default=None, examples=["EMAIL-1767225600000-a1b2c3d4e"])


class ResolveResponse(ApiModel):
    success: bool = True
    message: str
    item: CompensationRecord


class CompensationStatsResponse(ApiModel):
    success: bool = True
    timestamp: datetime
    stats: CompensationStats


class CompensationReportResponse(ApiModel):
    success: bool = True
    report: CompensationReport


class OrderStatsResponse(ApiModel):
    success: bool = True
    timestamp: datetime
    stats: OrderStats


class QueueStatsResponse(ApiModel):
    success: bool = True
    timestamp: datetime
    stats: QueueStats
