"""Processor webhook endpoint.

Receives ePayco confirmation notifications. The endpoint does NOT use any
authentication header: notifications are authenticated by source IP and
by their SHA-256 signature inside PaymentReconciler.

The response is always 200 with a generic acknowledgement, including for
rejected or malformed notifications.
"""

import json
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from starlette.status import HTTP_200_OK

from paycore.models import WebhookAck
from paycore.services.reconciler import PaymentReconciler
from paycore.utils.logging import get_logger
from paycore_api.dependencies import get_reconciler
from paycore_api.middleware.client_ip import get_client_ip

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


async def read_webhook_payload(request: Request) -> dict[str, Any]:
    """Parse a JSON or form-encoded notification body.

    Returns:
        The body as a flat dict; empty when the body cannot be parsed.
    """
    body = await request.body()
    if not body:
        return {}

    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = json.loads(body)
            return data if isinstance(data, dict) else {}
        return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
    except (ValueError, UnicodeDecodeError):
        logger.warning("Unparseable webhook body (%s, %d bytes)", content_type, len(body))
        return {}


@router.post(
    "/webhooks/epayco",
    response_model=WebhookAck,
    status_code=HTTP_200_OK,
    summary="Receive ePayco payment confirmation",
    description="""
Receives the processor's asynchronous payment confirmation.

**Authentication:** source IP allow-list and `x_signature`
(SHA-256 over `cust_id^private_key^ref_payco^transaction_id^amount^currency`).

**Processing:**
- `Aceptada`: fulfill the matching order, or queue the notification if the
  order is not stored yet (retried every 30 s for up to 5 minutes)
- `Pendiente`: record status, keep the order
- `Rechazada` / `Fallida`: record status with reason, drop the order

**Response:** always `200` with `{success, message, transactionId}` so the
processor does not retry and cannot distinguish rejected notifications.
""",
)
async def receive_epayco_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> WebhookAck:
    payload = await read_webhook_payload(request)
    return await reconciler.handle_webhook(
        payload,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
