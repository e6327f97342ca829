"""FastAPI application for the payment reconciliation API.

This package provides REST endpoints for:
- Health checks
- Service catalog and checkout session creation
- ePayco webhook reception and payment status lookup
- Operator views of the compensation ledger and in-memory stores

The order sweep, webhook retry and email retry jobs run as asyncio tasks
for the lifetime of the app. All state is in-process, so the API must run
as a single long-lived worker.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paycore.config import get_settings
from paycore.utils.logging import configure_logging, get_logger
from paycore_api.dependencies import get_scheduler
from paycore_api.exceptions import register_exception_handlers
from paycore_api.middleware import CorrelationIdMiddleware
from paycore_api.routes import (
    admin_router,
    checkout_router,
    health_router,
    services_router,
    verify_router,
    webhooks_router,
)

logger = get_logger(__name__)

PAYMENT_PREFIX = "/api/payment"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(logging.INFO)
    settings = get_settings()
    logger.info(
        "Starting payment API | env=%s | test_mode=%s | signature_validation=%s",
        settings.environment,
        settings.epayco_test_mode,
        settings.signature_validation_enabled,
    )

    scheduler = get_scheduler()
    scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        logger.info("Payment API stopped")


app = FastAPI(
    title="Payment Reconciliation API",
    description="Checkout sessions, processor webhooks and compensation tracking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(health_router, prefix="/api")
app.include_router(services_router, prefix=PAYMENT_PREFIX)
app.include_router(checkout_router, prefix=PAYMENT_PREFIX)
app.include_router(webhooks_router, prefix=PAYMENT_PREFIX)
app.include_router(verify_router, prefix=PAYMENT_PREFIX)
app.include_router(admin_router, prefix=PAYMENT_PREFIX)


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "paycore_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
