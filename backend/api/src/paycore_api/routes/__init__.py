"""API routes package.

Routers are organized by concern:

- health: Liveness and component counts (mounted under /api)
- services: Service catalog
- checkout: Checkout session creation
- webhooks: Processor payment confirmations
- verify: Payment status lookup
- admin: Compensation ledger and store monitoring

All routers except health are registered in main.py under /api/payment.
"""

from paycore_api.routes.admin import router as admin_router
from paycore_api.routes.checkout import router as checkout_router
from paycore_api.routes.health import router as health_router
from paycore_api.routes.services import router as services_router
from paycore_api.routes.verify import router as verify_router
from paycore_api.routes.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "checkout_router",
    "health_router",
    "services_router",
    "verify_router",
    "webhooks_router",
]
