"""USD to COP conversion with a cached, bounds-checked exchange rate.

The live rate comes from a public exchange-rate API. A fetched rate is
cached for one hour and also kept as the last known valid rate. When the
source is down or returns an implausible value the converter falls back
to the last valid rate, then to the configured default, raising an
operator alert each time. Only when no rate exists at all does conversion
fail.
"""

import time
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import httpx

from paycore.models import CurrencyConversionError
from paycore.utils.logging import get_logger, log_alert

logger = get_logger(__name__)

MIN_RATE = Decimal("3500")
MAX_RATE = Decimal("5500")
MAX_DAILY_VARIATION = Decimal("0.05")
HIGH_AMOUNT_THRESHOLD = Decimal("10000")
CACHE_TTL_SECONDS = 3600
RATE_SOURCE_TIMEOUT_SECONDS = 5.0


class RateSourceError(Exception):
    """Raised when the rate source answers without a usable COP rate."""


class ExchangeRateClient:
    """Fetches the USD->COP rate from the exchange-rate API."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = RATE_SOURCE_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def fetch_usd_cop(self) -> Decimal:
        """Fetch the current rate.

        Raises:
            httpx.HTTPError: On network errors, timeouts and non-2xx responses.
            RateSourceError: If the response has no parseable COP rate.
        """
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._url)
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError as e:
                raise RateSourceError("Rate source returned invalid JSON") from e

        rate = (data.get("rates") or {}).get("COP")
        if rate is None:
            raise RateSourceError("Rate source response has no COP rate")
        try:
            return Decimal(str(rate))
        except InvalidOperation as e:
            raise RateSourceError(f"Unparseable COP rate: {rate!r}") from e


def to_positive_decimal(value: object) -> Decimal | None:
    """Coerce a JSON number to Decimal; None for non-numbers and values <= 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


class CurrencyConverter:
    """Converts USD prices to COP using a cached exchange rate."""

    def __init__(
        self,
        source: ExchangeRateClient,
        *,
        default_rate: Decimal | None = Decimal("4200"),
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._default_rate = default_rate
        self._ttl = ttl_seconds
        self._clock = clock
        self._cached_rate: Decimal | None = None
        self._cached_at: float | None = None
        self._last_valid_rate: Decimal | None = None

    @property
    def last_valid_rate(self) -> Decimal | None:
        return self._last_valid_rate

    def is_cache_valid(self) -> bool:
        if self._cached_rate is None or self._cached_at is None:
            return False
        return self._clock() - self._cached_at < self._ttl

    def invalidate(self) -> None:
        """Drop the cached rate so the next lookup hits the source.

        The last valid rate is kept as a fallback.
        """
        self._cached_rate = None
        self._cached_at = None
        logger.info("Exchange rate cache cleared")

    async def get_rate(self) -> Decimal:
        """Return the USD->COP rate to use right now.

        Raises:
            CurrencyConversionError: If neither a live, last-valid nor
                default rate is available.
        """
        if self.is_cache_valid():
            return self._cached_rate  # type: ignore[return-value]

        try:
            rate = await self._source.fetch_usd_cop()
        except (httpx.HTTPError, RateSourceError) as e:
            fallback = self._fallback_rate()
            log_alert(
                logger,
                "API_DOWN",
                "HIGH",
                "Exchange rate source unavailable",
                error=str(e) or type(e).__name__,
                fallback_rate=fallback,
            )
            return self._require(fallback)

        if not MIN_RATE <= rate <= MAX_RATE:
            fallback = self._fallback_rate()
            log_alert(
                logger,
                "OUT_OF_RANGE",
                "HIGH",
                "Exchange rate outside plausible range",
                received_rate=rate,
                valid_range=f"{MIN_RATE}-{MAX_RATE}",
                fallback_rate=fallback,
            )
            return self._require(fallback)

        previous = self._last_valid_rate
        if previous is not None:
            variation = abs(rate - previous) / previous
            if variation > MAX_DAILY_VARIATION:
                log_alert(
                    logger,
                    "UNUSUAL_VARIATION",
                    "MEDIUM",
                    "Exchange rate moved more than expected",
                    previous_rate=previous,
                    new_rate=rate,
                    variation_pct=f"{variation * 100:.2f}",
                )

        self._cached_rate = rate
        self._cached_at = self._clock()
        self._last_valid_rate = rate
        logger.info("Exchange rate updated: 1 USD = %s COP", rate)
        return rate

    async def convert(self, amount_usd: object) -> Decimal:
        """Convert a USD amount to COP, rounded to cents.

        Args:
            amount_usd: Positive number

        Returns:
            COP amount with two decimal places

        Raises:
            CurrencyConversionError: On a non-positive amount or missing rate.
        """
        converted, _ = await self.convert_with_rate(amount_usd)
        return converted

    async def convert_with_rate(self, amount_usd: object) -> tuple[Decimal, Decimal]:
        """Like convert(), also returning the rate that was applied."""
        amount = to_positive_decimal(amount_usd)
        if amount is None:
            raise CurrencyConversionError(f"Invalid amount for conversion: {amount_usd!r}")

        if amount > HIGH_AMOUNT_THRESHOLD:
            log_alert(
                logger,
                "HIGH_AMOUNT_CONVERSION",
                "MEDIUM",
                "Unusually large conversion requested",
                amount_usd=amount,
            )

        rate = await self.get_rate()
        return (amount * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP), rate

    def _fallback_rate(self) -> Decimal | None:
        return self._last_valid_rate or self._default_rate

    @staticmethod
    def _require(rate: Decimal | None) -> Decimal:
        if rate is None:
            raise CurrencyConversionError("No exchange rate available")
        return rate
