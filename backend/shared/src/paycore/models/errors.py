"""Error codes and exceptions for checkout and reconciliation.

Checkout failures are raised as CheckoutError and converted to HTTP
responses by the API layer. Everything on the webhook path is caught at
the reconciler boundary and never reaches the processor as an error.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorCode(str, Enum):
    """Error codes returned by the checkout and verification endpoints."""

    MISSING_FIELDS = "MISSING_FIELDS"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    INVALID_BILLING_PERIOD = "INVALID_BILLING_PERIOD"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_FLOW_TYPE = "INVALID_FLOW_TYPE"
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_PHONE = "INVALID_PHONE"
    INVALID_REGISTRATION_DATA = "INVALID_REGISTRATION_DATA"
    PRICE_MISMATCH = "PRICE_MISMATCH"
    CURRENCY_CONVERSION_ERROR = "CURRENCY_CONVERSION_ERROR"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_FIELDS: "Required checkout fields are missing",
    ErrorCode.SERVICE_NOT_FOUND: "Service not found or not available",
    ErrorCode.INVALID_BILLING_PERIOD: "Billing period must be 'monthly' or 'annual'",
    ErrorCode.INVALID_AMOUNT: "Amount must be a positive number",
    ErrorCode.INVALID_FLOW_TYPE: "Flow type does not match the selected service",
    ErrorCode.INVALID_EMAIL: "Email address is not valid",
    ErrorCode.INVALID_PHONE: "Phone number must be a 10-digit mobile number starting with 3",
    ErrorCode.INVALID_REGISTRATION_DATA: "Registration data is incomplete",
    ErrorCode.PRICE_MISMATCH: "Amount does not match the service price",
    ErrorCode.CURRENCY_CONVERSION_ERROR: "Price could not be converted to the checkout currency",
    ErrorCode.GATEWAY_ERROR: "Payment session could not be created",
    ErrorCode.PAYMENT_NOT_FOUND: "No payment found for this reference",
}

ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.MISSING_FIELDS: "Complete every required field and submit again",
    ErrorCode.SERVICE_NOT_FOUND: "Choose a service from the current catalog",
    ErrorCode.INVALID_BILLING_PERIOD: "Select a monthly or annual plan",
    ErrorCode.INVALID_AMOUNT: "Reload the pricing page and try again",
    ErrorCode.INVALID_FLOW_TYPE: "Reload the service page and try again",
    ErrorCode.INVALID_EMAIL: "Check the email address for typos",
    ErrorCode.INVALID_PHONE: "Enter a mobile number such as 3001234567",
    ErrorCode.INVALID_REGISTRATION_DATA: "Fill in every company and user field",
    ErrorCode.PRICE_MISMATCH: "Use the amount returned in correctAmount",
    ErrorCode.CURRENCY_CONVERSION_ERROR: "Try again in a few minutes",
    ErrorCode.GATEWAY_ERROR: "Try again or contact support",
    ErrorCode.PAYMENT_NOT_FOUND: "Wait a few minutes for the processor to confirm",
}


class ErrorResponse(BaseModel):
    """Error body returned by the HTTP layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = False
    error: str = Field(..., description="Human-readable error message")
    code: ErrorCode
    recovery: str
    correct_amount: Optional[int] = Field(
        default=None,
        description="Backend-computed amount, set only for PRICE_MISMATCH",
    )
    details: Optional[dict[str, Any]] = None


class CheckoutError(Exception):
    """Exception raised by checkout validation and session creation."""

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
        *,
        correct_amount: Optional[int] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        self.correct_amount = correct_amount
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert to the HTTP error body."""
        return ErrorResponse(
            error=self.message,
            code=self.code,
            recovery=self.recovery,
            correct_amount=self.correct_amount,
            details=self.details,
        )


class CurrencyConversionError(Exception):
    """Raised when no exchange rate at all is available or the input is invalid."""


class GatewayError(Exception):
    """Raised when a payment-processor API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize with message and optional HTTP status.

        Args:
            message: Human-readable error message.
            status_code: Processor HTTP status if one was received.
        """
        super().__init__(message)
        self.status_code = status_code


class SaasRegistrationError(Exception):
    """Raised when the SaaS platform rejects or fails a registration."""


class NotificationError(Exception):
    """Raised when a customer notification cannot be delivered."""


class DownstreamFulfillmentError(Exception):
    """Raised when a required post-payment fulfillment step fails.

    The compensation ledger already holds a record for the failure by the
    time this is raised.
    """

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Fulfillment step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause
