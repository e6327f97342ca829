"""Operator endpoints for the compensation ledger and in-memory stores.

Provides:
- Compensation ledger stats, full report and manual resolution
- Pending order and webhook retry queue statistics

No authentication is applied here; these routes must only be reachable
from the operator network.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from paycore.services.compensation import CompensationLedger
from paycore.services.order_store import OrderStore, utc_now
from paycore.services.retry_queue import WebhookRetryQueue
from paycore_api.dependencies import get_ledger, get_order_store, get_retry_queue
from paycore_api.models.admin import (
    CompensationReportResponse,
    CompensationStatsResponse,
    OrderStatsResponse,
    QueueStatsResponse,
    ResolveRequest,
    ResolveResponse,
)
from paycore_api.models.common import ErrorMessage

router = APIRouter(prefix="/admin", tags=["admin"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorMessage(error=message).model_dump(by_alias=True),
    )


# === Compensation ledger ===


@router.get(
    "/compensation/stats",
    response_model=CompensationStatsResponse,
    summary="Compensation ledger counts",
)
async def get_compensation_stats(
    ledger: CompensationLedger = Depends(get_ledger),
) -> CompensationStatsResponse:
    return CompensationStatsResponse(timestamp=utc_now(), stats=ledger.stats())


@router.get(
    "/compensation/report",
    response_model=CompensationReportResponse,
    summary="Full compensation ledger report",
)
async def get_compensation_report(
    ledger: CompensationLedger = Depends(get_ledger),
) -> CompensationReportResponse:
    return CompensationReportResponse(report=ledger.report())


@router.post(
    "/compensation/resolve",
    response_model=ResolveResponse,
    summary="Mark a ledger entry as resolved",
    description="""
Removes a failed email, failed registry write or partial transaction after
an operator has handled it.

**Body:** `{"type": "email" | "sheet" | "transaction", "id": "<entry id>"}`

- `400` when `type` or `id` is missing
- `404` when the type is unknown or no entry has that ID
""",
    responses={
        HTTP_400_BAD_REQUEST: {"model": ErrorMessage, "description": "type or id missing"},
        HTTP_404_NOT_FOUND: {"model": ErrorMessage, "description": "Unknown type or entry"},
    },
)
async def resolve_compensation(
    body: ResolveRequest,
    ledger: CompensationLedger = Depends(get_ledger),
) -> ResolveResponse | JSONResponse:
    if not body.type or not body.id:
        return _error(HTTP_400_BAD_REQUEST, "type and id are required")

    result = ledger.resolve(body.type, body.id)
    if not result.success or result.item is None:
        return _error(HTTP_404_NOT_FOUND, result.message)

    return ResolveResponse(message=result.message, item=result.item)


# === Monitoring ===


@router.get(
    "/orders/stats",
    response_model=OrderStatsResponse,
    summary="Pending order statistics",
)
async def get_order_stats(
    order_store: OrderStore = Depends(get_order_store),
) -> OrderStatsResponse:
    return OrderStatsResponse(timestamp=utc_now(), stats=order_store.stats())


@router.get(
    "/webhook-queue/stats",
    response_model=QueueStatsResponse,
    summary="Webhook retry queue statistics",
)
async def get_webhook_queue_stats(
    retry_queue: WebhookRetryQueue = Depends(get_retry_queue),
) -> QueueStatsResponse:
    return QueueStatsResponse(timestamp=utc_now(), stats=retry_queue.stats())
