"""Payment status lookup endpoint.

Answers from the status recorded by the webhook handler first. When no
webhook has been seen for the ID, the processor's validation API is asked
with the ID treated as a processor reference.
"""

from fastapi import APIRouter, Depends
from starlette.status import HTTP_404_NOT_FOUND, HTTP_502_BAD_GATEWAY

from paycore.models import CheckoutError, ErrorCode, ErrorResponse, GatewayError, PaymentStatusRecord
from paycore.services.epayco_client import EpaycoClient
from paycore.services.payment_status import PaymentStatusStore
from paycore.utils.logging import get_logger
from paycore_api.dependencies import get_epayco_client, get_status_store

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


@router.get(
    "/verify/{payment_id}",
    response_model=PaymentStatusRecord,
    summary="Get last known payment status",
    description="""
Returns the last known status for a processor transaction ID or reference
(`ref_payco`).

**Lookup order:**
1. Status recorded from webhooks
2. ePayco validation API by reference

Status is one of `accepted`, `pending`, `rejected`, `failed`, `unknown`.
""",
    responses={
        HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "No payment with this ID"},
        HTTP_502_BAD_GATEWAY: {"model": ErrorResponse, "description": "Processor lookup failed"},
    },
)
async def verify_payment(
    payment_id: str,
    status_store: PaymentStatusStore = Depends(get_status_store),
    epayco: EpaycoClient = Depends(get_epayco_client),
) -> PaymentStatusRecord:
    record = status_store.get(payment_id)
    if record is not None:
        return record

    try:
        data = await epayco.get_transaction(payment_id)
    except GatewayError as e:
        logger.error("Processor lookup for %s failed: %s", payment_id, e)
        raise CheckoutError(ErrorCode.GATEWAY_ERROR, {"payment_id": payment_id}) from e

    if data is None:
        raise CheckoutError(ErrorCode.PAYMENT_NOT_FOUND, {"payment_id": payment_id})
    return status_store.from_processor(payment_id, data)
