"""Checkout session endpoint."""

from fastapi import APIRouter, Depends, Request
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from paycore.models import CheckoutRequest, ErrorResponse
from paycore.services.checkout import CheckoutService, CheckoutSession
from paycore_api.dependencies import get_checkout_service
from paycore_api.middleware.client_ip import get_client_ip

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout-session",
    response_model=CheckoutSession,
    status_code=HTTP_200_OK,
    summary="Create a hosted checkout session",
    description="""
Validates the checkout form, recomputes the price on the server and opens
an ePayco checkout session.

**Validation order:** required fields, service, billing period, amount,
flow type, email, phone, registration data (credentials flow), price.

**Price check:** the submitted `amount` must equal the server price in the
checkout currency (annual plans are 12 months less 10%, USD prices are
converted at the current rate). A mismatch returns `PRICE_MISMATCH` with
`correctAmount`.
""",
    responses={
        HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Invalid request or price mismatch"},
        HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Unknown or inactive service"},
        HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "Currency conversion failed"},
        HTTP_502_BAD_GATEWAY: {"model": ErrorResponse, "description": "Processor session creation failed"},
    },
)
async def create_checkout_session(
    body: CheckoutRequest,
    request: Request,
    checkout: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSession:
    return await checkout.create_session(body, client_ip=get_client_ip(request))
