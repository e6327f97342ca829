"""FastAPI exception handlers for checkout errors.

CheckoutError is converted to a JSON body matching ErrorResponse, with the
status taken from ERROR_CODE_TO_HTTP_STATUS:
- 400 Bad Request: validation and price mismatches
- 404 Not Found: unknown service or payment
- 500 Internal Server Error: currency conversion failures
- 502 Bad Gateway: processor errors

The webhook endpoint never raises CheckoutError and is not affected.

Usage:
    from paycore_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from paycore.models import CheckoutError, ErrorCode
from paycore.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.SERVICE_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.PAYMENT_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.CURRENCY_CONVERSION_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.GATEWAY_ERROR: HTTP_502_BAD_GATEWAY,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode; 400 unless mapped otherwise."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Convert a CheckoutError to its JSON response."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code.value)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code.value)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(CheckoutError, checkout_error_handler)  # type: ignore[arg-type]
