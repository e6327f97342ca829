"""Unit tests for USD to COP conversion.

Outbound calls go through httpx.MockTransport; no network access.

Test categories:
- Rate fetching and caching (1 hour TTL)
- Fallback chain: last valid rate, then default
- Range and variation alerts
- Amount conversion
"""

import logging
from decimal import Decimal

import httpx
import pytest

from conftest import FakeMonotonic
from paycore.models import CurrencyConversionError
from paycore.services.currency import (
    CurrencyConverter,
    ExchangeRateClient,
    RateSourceError,
    to_positive_decimal,
)

RATE_URL = "https://rates.test/v4/latest/USD"


class RateSource:
    """Scripted MockTransport handler that records calls."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        response = self.responses[min(self.calls - 1, len(self.responses) - 1)]
        if isinstance(response, Exception):
            raise response
        return response


def _rate(value: object) -> httpx.Response:
    return httpx.Response(200, json={"base": "USD", "rates": {"COP": value, "EUR": 0.92}})


def _converter(
    source: RateSource, clock: FakeMonotonic, default_rate: Decimal | None = Decimal("4200")
) -> CurrencyConverter:
    client = ExchangeRateClient(RATE_URL, transport=httpx.MockTransport(source))
    return CurrencyConverter(client, default_rate=default_rate, clock=clock)


def _alerts(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [r.alert for r in caplog.records if getattr(r, "alert", None)]


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


# === Exchange rate client ===


class TestExchangeRateClient:
    @pytest.mark.asyncio
    async def test_reads_cop_rate(self) -> None:
        client = ExchangeRateClient(RATE_URL, transport=httpx.MockTransport(RateSource(_rate(4012.5))))

        assert await client.fetch_usd_cop() == Decimal("4012.5")

    @pytest.mark.asyncio
    async def test_missing_cop_rate_raises(self) -> None:
        source = RateSource(httpx.Response(200, json={"rates": {"EUR": 0.9}}))
        client = ExchangeRateClient(RATE_URL, transport=httpx.MockTransport(source))

        with pytest.raises(RateSourceError):
            await client.fetch_usd_cop()

    @pytest.mark.asyncio
    async def test_http_error_propagates(self) -> None:
        client = ExchangeRateClient(
            RATE_URL, transport=httpx.MockTransport(RateSource(httpx.Response(503)))
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_usd_cop()


# === Rate caching ===


class TestRateCache:
    @pytest.mark.asyncio
    async def test_rate_is_cached_for_an_hour(self, monotonic: FakeMonotonic) -> None:
        source = RateSource(_rate(4000), _rate(4100))
        converter = _converter(source, monotonic)

        assert await converter.get_rate() == Decimal("4000")
        monotonic.advance(3599)
        assert await converter.get_rate() == Decimal("4000")
        assert source.calls == 1

        monotonic.advance(2)
        assert await converter.get_rate() == Decimal("4100")
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, monotonic: FakeMonotonic) -> None:
        source = RateSource(_rate(4000), _rate(4050))
        converter = _converter(source, monotonic)
        await converter.get_rate()

        converter.invalidate()

        assert converter.is_cache_valid() is False
        assert await converter.get_rate() == Decimal("4050")
        assert converter.last_valid_rate == Decimal("4050")


# === Fallbacks and alerts ===


class TestFallbacks:
    @pytest.mark.asyncio
    async def test_source_down_uses_default_rate(
        self, monotonic: FakeMonotonic, caplog: pytest.LogCaptureFixture
    ) -> None:
        converter = _converter(RateSource(httpx.ConnectError("unreachable")), monotonic)

        with caplog.at_level(logging.WARNING):
            rate = await converter.get_rate()

        assert rate == Decimal("4200")
        alert = _alerts(caplog)[0]
        assert alert["alert_type"] == "API_DOWN"
        assert alert["severity"] == "HIGH"

    @pytest.mark.asyncio
    async def test_source_down_prefers_last_valid_rate(self, monotonic: FakeMonotonic) -> None:
        source = RateSource(_rate(3950), httpx.Response(500))
        converter = _converter(source, monotonic)
        await converter.get_rate()
        monotonic.advance(3601)

        assert await converter.get_rate() == Decimal("3950")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [3499, 5501, 1])
    async def test_out_of_range_rate_is_replaced(
        self, monotonic: FakeMonotonic, caplog: pytest.LogCaptureFixture, value: int
    ) -> None:
        converter = _converter(RateSource(_rate(value)), monotonic)

        with caplog.at_level(logging.WARNING):
            rate = await converter.get_rate()

        assert rate == Decimal("4200")
        assert converter.last_valid_rate is None
        assert _alerts(caplog)[0]["alert_type"] == "OUT_OF_RANGE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [3500, 5500])
    async def test_range_bounds_are_inclusive(self, monotonic: FakeMonotonic, value: int) -> None:
        converter = _converter(RateSource(_rate(value)), monotonic)

        assert await converter.get_rate() == Decimal(value)

    @pytest.mark.asyncio
    async def test_large_variation_is_flagged_but_used(
        self, monotonic: FakeMonotonic, caplog: pytest.LogCaptureFixture
    ) -> None:
        converter = _converter(RateSource(_rate(4000), _rate(4300)), monotonic)
        await converter.get_rate()
        monotonic.advance(3601)

        with caplog.at_level(logging.WARNING):
            rate = await converter.get_rate()

        assert rate == Decimal("4300")
        alert = _alerts(caplog)[0]
        assert alert["alert_type"] == "UNUSUAL_VARIATION"
        assert alert["severity"] == "MEDIUM"

    @pytest.mark.asyncio
    async def test_small_variation_is_not_flagged(
        self, monotonic: FakeMonotonic, caplog: pytest.LogCaptureFixture
    ) -> None:
        converter = _converter(RateSource(_rate(4000), _rate(4150)), monotonic)
        await converter.get_rate()
        monotonic.advance(3601)

        with caplog.at_level(logging.WARNING):
            await converter.get_rate()

        assert _alerts(caplog) == []

    @pytest.mark.asyncio
    async def test_no_rate_at_all_raises(self, monotonic: FakeMonotonic) -> None:
        converter = _converter(RateSource(httpx.Response(502)), monotonic, default_rate=None)

        with pytest.raises(CurrencyConversionError):
            await converter.get_rate()


# === Conversion ===


class TestConvert:
    @pytest.mark.asyncio
    async def test_convert_rounds_to_cents(self, monotonic: FakeMonotonic) -> None:
        converter = _converter(RateSource(_rate("4012.345")), monotonic)

        assert await converter.convert(Decimal("20")) == Decimal("80246.90")

    @pytest.mark.asyncio
    async def test_convert_with_rate_returns_rate(self, monotonic: FakeMonotonic) -> None:
        converter = _converter(RateSource(_rate(4000)), monotonic)

        converted, rate = await converter.convert_with_rate(216)

        assert converted == Decimal("864000.00")
        assert rate == Decimal("4000")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, "20", None, True])
    async def test_invalid_amount_raises(self, monotonic: FakeMonotonic, amount: object) -> None:
        converter = _converter(RateSource(_rate(4000)), monotonic)

        with pytest.raises(CurrencyConversionError):
            await converter.convert(amount)

    @pytest.mark.asyncio
    async def test_high_amount_is_flagged(
        self, monotonic: FakeMonotonic, caplog: pytest.LogCaptureFixture
    ) -> None:
        converter = _converter(RateSource(_rate(4000)), monotonic)

        with caplog.at_level(logging.WARNING):
            await converter.convert(10001)

        assert _alerts(caplog)[0]["alert_type"] == "HIGH_AMOUNT_CONVERSION"


class TestToPositiveDecimal:
    def test_accepts_numbers(self) -> None:
        assert to_positive_decimal(80000) == Decimal("80000")
        assert to_positive_decimal(12.5) == Decimal("12.5")

    @pytest.mark.parametrize("value", [0, -3, "80000", None, False, float("inf")])
    def test_rejects_non_positive_and_non_numbers(self, value: object) -> None:
        assert to_positive_decimal(value) is None
