"""Server-side price computation and verification for checkout.

The client-submitted amount is never trusted: the guard recomputes the
price from the catalog, applies the annual discount, converts it to the
checkout currency and compares.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

from paycore.models import BillingPeriod, CheckoutError, CurrencyConversionError, ErrorCode
from paycore.models.catalog import ServiceDefinition
from paycore.utils.logging import get_logger, log_alert

from .catalog import ServiceCatalog
from .currency import CurrencyConverter, to_positive_decimal

logger = get_logger(__name__)

ANNUAL_DISCOUNT = Decimal("0.10")
MONTHS_PER_YEAR = 12


class PriceQuote(BaseModel):
    """Authoritative price for one service and billing period."""

    model_config = ConfigDict(frozen=True)

    service_id: str
    billing_period: BillingPeriod
    base_amount: Decimal
    base_currency: str
    amount: int
    currency: str
    exchange_rate: Decimal | None = None


class PriceCheck(BaseModel):
    """Result of comparing a client amount with the authoritative price."""

    ok: bool
    correct_amount: int
    quote: PriceQuote


def period_price(monthly_price: Decimal, billing_period: BillingPeriod) -> Decimal:
    """Price for one billing period in the service currency.

    Annual is twelve months less a 10% discount, rounded half-up to a
    whole unit (20 -> 216, 15 -> 162).
    """
    if billing_period is BillingPeriod.MONTHLY:
        return monthly_price
    yearly = monthly_price * MONTHS_PER_YEAR
    return (yearly - yearly * ANNUAL_DISCOUNT).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def parse_billing_period(value: Any) -> BillingPeriod:
    """Parse a billing period or raise INVALID_BILLING_PERIOD."""
    if isinstance(value, BillingPeriod):
        return value
    try:
        return BillingPeriod(value)
    except ValueError as e:
        raise CheckoutError(
            ErrorCode.INVALID_BILLING_PERIOD, {"billing_period": str(value)}
        ) from e


class PriceGuard:
    """Computes and verifies checkout prices."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        converter: CurrencyConverter,
        *,
        checkout_currency: str = "COP",
    ) -> None:
        self._catalog = catalog
        self._converter = converter
        self._checkout_currency = checkout_currency

    def get_service(self, service_id: str) -> ServiceDefinition:
        """Return an active service or raise SERVICE_NOT_FOUND."""
        service = self._catalog.get(service_id)
        if service is None:
            raise CheckoutError(ErrorCode.SERVICE_NOT_FOUND, {"service_id": service_id})
        return service

    async def compute_authoritative_price(
        self, service_id: str, billing_period: BillingPeriod | str
    ) -> PriceQuote:
        """Compute the price the customer must pay.

        Args:
            service_id: Catalog ID
            billing_period: monthly or annual

        Returns:
            PriceQuote in the checkout currency, whole units

        Raises:
            CheckoutError: SERVICE_NOT_FOUND, INVALID_BILLING_PERIOD or
                CURRENCY_CONVERSION_ERROR
        """
        service = self.get_service(service_id)
        period = parse_billing_period(billing_period)
        base_amount = period_price(service.monthly_price, period)

        rate: Decimal | None = None
        if service.currency == self._checkout_currency:
            amount = base_amount
        elif service.currency == "USD" and self._checkout_currency == "COP":
            try:
                amount, rate = await self._converter.convert_with_rate(base_amount)
            except CurrencyConversionError as e:
                logger.error("Price conversion failed for %s: %s", service_id, e)
                raise CheckoutError(
                    ErrorCode.CURRENCY_CONVERSION_ERROR, {"service_id": service_id}
                ) from e
        else:
            raise CheckoutError(
                ErrorCode.CURRENCY_CONVERSION_ERROR,
                {"from": service.currency, "to": self._checkout_currency},
            )

        return PriceQuote(
            service_id=service_id,
            billing_period=period,
            base_amount=base_amount,
            base_currency=service.currency,
            amount=int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            currency=self._checkout_currency,
            exchange_rate=rate,
        )

    async def verify(
        self,
        service_id: str,
        billing_period: BillingPeriod | str,
        claimed_amount: Any,
        **context: Any,
    ) -> PriceCheck:
        """Compare a client-submitted amount with the authoritative price.

        Fails closed: anything other than an exact match is rejected and
        logged as a security event.

        Args:
            service_id: Catalog ID
            billing_period: monthly or annual
            claimed_amount: Amount sent by the client
            **context: Extra fields for the security log (masked email, ip)

        Returns:
            PriceCheck with the correct amount
        """
        quote = await self.compute_authoritative_price(service_id, billing_period)
        claimed = to_positive_decimal(claimed_amount)
        ok = claimed is not None and claimed == Decimal(quote.amount)

        if not ok:
            log_alert(
                logger,
                "PRICE_MISMATCH",
                "HIGH",
                "Checkout amount does not match computed price",
                service_id=service_id,
                billing_period=quote.billing_period.value,
                claimed_amount=claimed_amount,
                correct_amount=quote.amount,
                currency=quote.currency,
                **context,
            )

        return PriceCheck(ok=ok, correct_amount=quote.amount, quote=quote)
