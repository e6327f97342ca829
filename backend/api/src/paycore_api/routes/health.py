"""Health check endpoint with in-memory component counts."""

from fastapi import APIRouter, Depends

from paycore.config import Settings, get_settings
from paycore.services.compensation import CompensationLedger
from paycore.services.order_store import OrderStore, utc_now
from paycore.services.retry_queue import WebhookRetryQueue
from paycore.services.scheduler import BackgroundScheduler
from paycore_api.dependencies import get_ledger, get_order_store, get_retry_queue, get_scheduler
from paycore_api.models.common import ComponentCounts, HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness and component counts")
async def health(
    settings: Settings = Depends(get_settings),
    order_store: OrderStore = Depends(get_order_store),
    retry_queue: WebhookRetryQueue = Depends(get_retry_queue),
    ledger: CompensationLedger = Depends(get_ledger),
    scheduler: BackgroundScheduler = Depends(get_scheduler),
) -> HealthResponse:
    return HealthResponse(
        timestamp=utc_now(),
        environment=settings.environment,
        scheduler_running=scheduler.running,
        components=ComponentCounts(
            pending_orders=len(order_store),
            queued_webhooks=len(retry_queue),
            failed_emails=len(ledger.failed_emails),
            failed_sheet_writes=len(ledger.failed_sheet_writes),
            partial_transactions=len(ledger.partial_transactions),
        ),
    )
