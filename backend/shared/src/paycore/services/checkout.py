"""Checkout session creation.

Validates the checkout form, verifies the price server-side, opens a
hosted processor session and stores the PendingOrder the webhook will be
matched against.
"""

import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from paycore.models import (
    BillingPeriod,
    CheckoutError,
    CheckoutRequest,
    CredentialsRegistration,
    ErrorCode,
    FlowType,
    GatewayError,
    PendingOrder,
)
from paycore.utils.ids import generate_order_id
from paycore.utils.logging import get_logger, mask_email

from .currency import to_positive_decimal
from .epayco_client import EpaycoClient, SessionRequest
from .order_store import OrderStore, utc_now
from .price_guard import PriceGuard, parse_billing_period

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^3\d{9}$")

REQUIRED_FIELDS = (
    "service_id",
    "service_name",
    "amount",
    "email",
    "phone",
    "billing_period",
    "flow_type",
)


class CheckoutSession(BaseModel):
    """Data the browser needs to open the hosted checkout."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    session_id: str
    token: str | None = None
    order_id: str


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes, parentheses and a +57 country prefix."""
    digits = re.sub(r"[\s\-()]", "", phone)
    if digits.startswith("+57"):
        digits = digits[3:]
    elif digits.startswith("57") and len(digits) == 12:
        digits = digits[2:]
    return digits


def name_from_email(email: str) -> str:
    """Best-effort display name from the email local part ('juan.perez' -> 'Juan Perez')."""
    local = email.split("@", 1)[0]
    parts = [part for part in re.split(r"[._\-+]+", local) if part]
    return " ".join(part.capitalize() for part in parts) or "Cliente"


class CheckoutService:
    """Creates processor checkout sessions for validated orders."""

    def __init__(
        self,
        *,
        price_guard: PriceGuard,
        order_store: OrderStore,
        gateway: EpaycoClient,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._price_guard = price_guard
        self._orders = order_store
        self._gateway = gateway
        self._clock = clock
        # Every ID handed out, stored or not; never reissued while the process runs
        self._issued_order_ids: set[str] = set()

    async def create_session(
        self, request: CheckoutRequest, *, client_ip: str | None = None
    ) -> CheckoutSession:
        """Validate the request and open a checkout session.

        Args:
            request: Checkout form
            client_ip: Customer IP, forwarded to the processor

        Returns:
            CheckoutSession with the processor session and our order ID

        Raises:
            CheckoutError: For every validation, pricing or gateway failure
        """
        missing = [field for field in REQUIRED_FIELDS if not getattr(request, field)]
        if missing:
            raise CheckoutError(ErrorCode.MISSING_FIELDS, {"missing": [to_camel(f) for f in missing]})

        service = self._price_guard.get_service(request.service_id)  # type: ignore[arg-type]
        billing_period = parse_billing_period(request.billing_period)

        if to_positive_decimal(request.amount) is None:
            raise CheckoutError(ErrorCode.INVALID_AMOUNT, {"amount": repr(request.amount)})

        flow_type = self._validate_flow_type(request.flow_type, service.flow_type)

        email = request.email.strip()  # type: ignore[union-attr]
        if not EMAIL_PATTERN.match(email):
            raise CheckoutError(ErrorCode.INVALID_EMAIL)

        phone = normalize_phone(request.phone)  # type: ignore[arg-type]
        if not PHONE_PATTERN.match(phone):
            raise CheckoutError(ErrorCode.INVALID_PHONE)

        registration = self._parse_registration(flow_type, request.registration_data)

        check = await self._price_guard.verify(
            service.service_id,
            billing_period,
            request.amount,
            email=mask_email(email),
            ip=client_ip,
        )
        if not check.ok:
            raise CheckoutError(
                ErrorCode.PRICE_MISMATCH,
                {"service_id": service.service_id, "billing_period": billing_period.value},
                correct_amount=check.correct_amount,
            )

        now = self._clock()
        order_id = self._new_order_id(now, request.user_id)
        full_name = (request.full_name or "").strip() or name_from_email(email)

        try:
            session = await self._gateway.create_checkout_session(
                SessionRequest(
                    order_id=order_id,
                    service_id=service.service_id,
                    service_name=service.name,
                    description=self._describe(service.name, billing_period),
                    amount=check.correct_amount,
                    currency=check.quote.currency,
                    email=email,
                    full_name=full_name,
                    phone=phone,
                    user_id=request.user_id,
                    client_ip=client_ip,
                )
            )
        except GatewayError as e:
            logger.error("Checkout session failed for order %s: %s", order_id, e)
            raise CheckoutError(ErrorCode.GATEWAY_ERROR) from e

        self._orders.put(
            PendingOrder(
                order_id=order_id,
                service_id=service.service_id,
                service_name=service.name,
                validated_amount=check.correct_amount,
                currency=check.quote.currency,
                billing_period=billing_period,
                email=email,
                full_name=full_name,
                phone=phone,
                flow_type=flow_type,
                user_id=request.user_id,
                registration=registration,
                created_at=now,
            )
        )

        logger.info(
            "Checkout ready: order=%s service=%s amount=%d %s email=%s",
            order_id,
            service.service_id,
            check.correct_amount,
            check.quote.currency,
            mask_email(email),
        )
        return CheckoutSession(session_id=session.session_id, token=session.token, order_id=order_id)

    @staticmethod
    def _validate_flow_type(raw: Any, expected: FlowType) -> FlowType:
        try:
            flow_type = FlowType(raw)
        except ValueError as e:
            raise CheckoutError(ErrorCode.INVALID_FLOW_TYPE, {"flow_type": str(raw)}) from e
        if flow_type is not expected:
            raise CheckoutError(
                ErrorCode.INVALID_FLOW_TYPE,
                {"flow_type": flow_type.value, "expected": expected.value},
            )
        return flow_type

    @staticmethod
    def _parse_registration(
        flow_type: FlowType, data: dict[str, Any] | None
    ) -> CredentialsRegistration | None:
        if flow_type is not FlowType.CREDENTIALS or data is None:
            if data is not None:
                logger.info("Registration data ignored for %s flow", flow_type.value)
            return None

        values = {key: str(value) for key, value in data.items() if value is not None}
        try:
            return CredentialsRegistration.model_validate(values)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise CheckoutError(ErrorCode.INVALID_REGISTRATION_DATA, {"fields": fields}) from e

    def _new_order_id(self, now: datetime, user_id: str | None) -> str:
        """Reserve an order ID. Must run before the first await of a checkout."""
        base = generate_order_id(now, user_id)
        order_id = base
        suffix = 1
        while order_id in self._issued_order_ids or self._orders.contains(order_id):
            order_id = f"{base}-{suffix}"
            suffix += 1
        self._issued_order_ids.add(order_id)
        return order_id

    @staticmethod
    def _describe(service_name: str, billing_period: BillingPeriod) -> str:
        plan = "Monthly" if billing_period is BillingPeriod.MONTHLY else "Annual"
        return f"{service_name} - {plan} plan"
