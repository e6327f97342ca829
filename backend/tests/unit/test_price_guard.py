"""Unit tests for server-side price computation and verification.

Test categories:
- Billing period pricing (annual discount)
- Authoritative price in the checkout currency
- verify() fails closed with the correct amount
"""

import logging
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from paycore.models import (
    BillingPeriod,
    CheckoutError,
    CurrencyConversionError,
    ErrorCode,
    FlowType,
    ServiceDefinition,
)
from paycore.services.catalog import DEFAULT_SERVICES, ServiceCatalog
from paycore.services.price_guard import PriceGuard, parse_billing_period, period_price


def _converter(rate: Decimal = Decimal("4000")) -> MagicMock:
    converter = MagicMock()

    async def convert_with_rate(amount: Decimal) -> tuple[Decimal, Decimal]:
        return (Decimal(amount) * rate).quantize(Decimal("0.01")), rate

    converter.convert_with_rate = AsyncMock(side_effect=convert_with_rate)
    return converter


@pytest.fixture
def guard() -> PriceGuard:
    return PriceGuard(ServiceCatalog(), _converter())


# === Period pricing ===


class TestPeriodPrice:
    @pytest.mark.parametrize(
        "monthly,annual",
        [(Decimal("20"), Decimal("216")), (Decimal("15"), Decimal("162")), (Decimal("225"), Decimal("2430"))],
    )
    def test_annual_is_twelve_months_less_ten_percent(self, monthly: Decimal, annual: Decimal) -> None:
        assert period_price(monthly, BillingPeriod.ANNUAL) == annual

    def test_annual_rounds_half_up(self) -> None:
        # 3.75 * 12 * 0.9 = 40.5
        assert period_price(Decimal("3.75"), BillingPeriod.ANNUAL) == Decimal("41")

    def test_monthly_is_unchanged(self) -> None:
        assert period_price(Decimal("20"), BillingPeriod.MONTHLY) == Decimal("20")

    def test_parse_billing_period(self) -> None:
        assert parse_billing_period("annual") is BillingPeriod.ANNUAL
        with pytest.raises(CheckoutError) as exc_info:
            parse_billing_period("weekly")
        assert exc_info.value.code == ErrorCode.INVALID_BILLING_PERIOD


# === Authoritative price ===


class TestComputeAuthoritativePrice:
    @pytest.mark.asyncio
    async def test_monthly_usd_service_converted_to_cop(self, guard: PriceGuard) -> None:
        quote = await guard.compute_authoritative_price("rasi-assistant", "monthly")

        assert quote.amount == 80000
        assert quote.currency == "COP"
        assert quote.base_amount == Decimal("20")
        assert quote.base_currency == "USD"
        assert quote.exchange_rate == Decimal("4000")

    @pytest.mark.asyncio
    async def test_annual_discount_applied_before_conversion(self, guard: PriceGuard) -> None:
        quote = await guard.compute_authoritative_price("rasi-assistant", BillingPeriod.ANNUAL)

        assert quote.base_amount == Decimal("216")
        assert quote.amount == 864000

    @pytest.mark.asyncio
    async def test_converted_amount_rounds_to_whole_pesos(self) -> None:
        guard = PriceGuard(ServiceCatalog(), _converter(Decimal("4012.35")))

        quote = await guard.compute_authoritative_price("rasi-autocitas", "monthly")

        # 15 * 4012.35 = 60185.25
        assert quote.amount == 60185

    @pytest.mark.asyncio
    async def test_same_currency_skips_conversion(self) -> None:
        converter = _converter()
        catalog = ServiceCatalog(
            [
                ServiceDefinition(
                    service_id="local-plan",
                    name="Local Plan",
                    monthly_price=Decimal("50000"),
                    currency="COP",
                    flow_type=FlowType.CONTACT,
                )
            ]
        )
        guard = PriceGuard(catalog, converter)

        quote = await guard.compute_authoritative_price("local-plan", "monthly")

        assert quote.amount == 50000
        assert quote.exchange_rate is None
        converter.convert_with_rate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_service(self, guard: PriceGuard) -> None:
        with pytest.raises(CheckoutError) as exc_info:
            await guard.compute_authoritative_price("rasi-unknown", "monthly")

        assert exc_info.value.code == ErrorCode.SERVICE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_inactive_service_is_not_found(self) -> None:
        services = [s.model_copy(update={"active": False}) for s in DEFAULT_SERVICES]
        guard = PriceGuard(ServiceCatalog(services), _converter())

        with pytest.raises(CheckoutError) as exc_info:
            await guard.compute_authoritative_price("rasi-assistant", "monthly")

        assert exc_info.value.code == ErrorCode.SERVICE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_conversion_failure(self) -> None:
        converter = MagicMock()
        converter.convert_with_rate = AsyncMock(side_effect=CurrencyConversionError("no rate"))
        guard = PriceGuard(ServiceCatalog(), converter)

        with pytest.raises(CheckoutError) as exc_info:
            await guard.compute_authoritative_price("rasi-assistant", "monthly")

        assert exc_info.value.code == ErrorCode.CURRENCY_CONVERSION_ERROR


# === verify() ===


class TestVerify:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "service_id,period",
        [
            ("rasi-autocitas", "monthly"),
            ("rasi-autocitas", "annual"),
            ("rasi-assistant", "monthly"),
            ("rasi-assistant", "annual"),
            ("rasi-chatbot", "monthly"),
            ("rasi-chatbot", "annual"),
        ],
    )
    async def test_accepts_exactly_the_computed_price(
        self, guard: PriceGuard, service_id: str, period: str
    ) -> None:
        quote = await guard.compute_authoritative_price(service_id, period)

        accepted = await guard.verify(service_id, period, quote.amount)
        below = await guard.verify(service_id, period, quote.amount - 1)
        above = await guard.verify(service_id, period, quote.amount + 1)

        assert accepted.ok is True
        assert below.ok is False
        assert above.ok is False
        assert below.correct_amount == quote.amount

    @pytest.mark.asyncio
    async def test_float_with_same_value_is_accepted(self, guard: PriceGuard) -> None:
        assert (await guard.verify("rasi-assistant", "monthly", 80000.0)).ok is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("claimed", [None, "80000", 0, -80000])
    async def test_non_numeric_claims_fail_closed(self, guard: PriceGuard, claimed: object) -> None:
        check = await guard.verify("rasi-assistant", "monthly", claimed)

        assert check.ok is False
        assert check.correct_amount == 80000

    @pytest.mark.asyncio
    async def test_mismatch_logs_security_alert(
        self, guard: PriceGuard, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR, logger="paycore.services.price_guard"):
            await guard.verify("rasi-assistant", "monthly", 100, ip="203.0.113.9")

        alert = next(r.alert for r in caplog.records if getattr(r, "alert", None))
        assert alert["alert_type"] == "PRICE_MISMATCH"
        assert alert["severity"] == "HIGH"
        assert alert["claimed_amount"] == 100
        assert alert["correct_amount"] == 80000
        assert alert["ip"] == "203.0.113.9"
