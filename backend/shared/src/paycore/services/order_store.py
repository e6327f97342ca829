"""In-memory store of pending checkout orders with abandonment sweep."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from paycore.models import PendingOrder
from paycore.utils.logging import get_logger, mask_email

logger = get_logger(__name__)

ORDER_TIMEOUT = timedelta(minutes=30)
CLEANUP_INTERVAL = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class CleanedOrder(BaseModel):
    order_id: str
    service_id: str
    amount: int
    age_minutes: int | None
    created_at: datetime | None


class SweepResult(BaseModel):
    cleaned: int
    remaining: int
    cleaned_orders: list[CleanedOrder] = Field(default_factory=list)


class OrderStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    by_service: dict[str, int]
    by_age: dict[str, int]
    oldest: dict[str, Any] | None = None
    newest: dict[str, Any] | None = None


class OrderStore:
    """Keyed store of PendingOrder records.

    Orders are only put and deleted, never updated. Iteration always runs
    over a snapshot so that puts and deletes from other tasks are safe.
    """

    def __init__(
        self,
        *,
        timeout: timedelta = ORDER_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._orders: dict[str, PendingOrder] = {}
        self._timeout = timeout
        self._clock = clock

    def __len__(self) -> int:
        return len(self._orders)

    def contains(self, order_id: str) -> bool:
        return order_id in self._orders

    def put(self, order: PendingOrder) -> None:
        self._orders[order.order_id] = order
        logger.info(
            "Pending order stored: %s (service=%s, amount=%s %s)",
            order.order_id,
            order.service_id,
            order.validated_amount,
            order.currency,
        )

    def get(self, order_id: str | None) -> PendingOrder | None:
        if not order_id:
            return None
        return self._orders.get(order_id)

    def delete(self, order_id: str | None) -> PendingOrder | None:
        """Remove an order; returns it, or None if it was already gone."""
        if not order_id:
            return None
        return self._orders.pop(order_id, None)

    def sweep_expired(self, now: datetime | None = None) -> SweepResult:
        """Delete orders older than the timeout.

        Orders without a creation timestamp are deleted as well.

        Args:
            now: Reference time (defaults to the store clock)

        Returns:
            SweepResult with the removed orders
        """
        now = now or self._clock()
        cleaned: list[CleanedOrder] = []

        for order_id, order in list(self._orders.items()):
            if order.created_at is None:
                self._orders.pop(order_id, None)
                logger.warning("Order %s had no creation timestamp; deleted", order_id)
                cleaned.append(
                    CleanedOrder(
                        order_id=order_id,
                        service_id=order.service_id,
                        amount=order.validated_amount,
                        age_minutes=None,
                        created_at=None,
                    )
                )
                continue

            age = now - _aware(order.created_at)
            if age <= self._timeout:
                continue

            if self._orders.pop(order_id, None) is None:
                continue
            age_minutes = int(age.total_seconds() // 60)
            logger.info(
                "Abandoned order cleaned: %s | service=%s | age=%dmin | email=%s",
                order_id,
                order.service_id,
                age_minutes,
                mask_email(order.email),
            )
            cleaned.append(
                CleanedOrder(
                    order_id=order_id,
                    service_id=order.service_id,
                    amount=order.validated_amount,
                    age_minutes=age_minutes,
                    created_at=order.created_at,
                )
            )

        if cleaned:
            logger.info("Order sweep removed %d orders, %d remaining", len(cleaned), len(self._orders))

        return SweepResult(cleaned=len(cleaned), remaining=len(self._orders), cleaned_orders=cleaned)

    def stats(self, now: datetime | None = None) -> OrderStats:
        """Counts by service and by age bucket (minutes)."""
        now = now or self._clock()
        orders = list(self._orders.values())
        by_service: dict[str, int] = {}
        by_age = {"<5min": 0, "5-15min": 0, "15-30min": 0, ">30min": 0}
        dated: list[tuple[datetime, PendingOrder]] = []

        for order in orders:
            by_service[order.service_id] = by_service.get(order.service_id, 0) + 1
            if order.created_at is None:
                by_age[">30min"] += 1
                continue
            created = _aware(order.created_at)
            dated.append((created, order))
            minutes = (now - created).total_seconds() / 60
            if minutes < 5:
                by_age["<5min"] += 1
            elif minutes < 15:
                by_age["5-15min"] += 1
            elif minutes < 30:
                by_age["15-30min"] += 1
            else:
                by_age[">30min"] += 1

        oldest = newest = None
        if dated:
            dated.sort(key=lambda pair: pair[0])
            oldest = self._summary(dated[0][1], dated[0][0], now)
            newest = self._summary(dated[-1][1], dated[-1][0], now)

        return OrderStats(
            total=len(orders),
            by_service=by_service,
            by_age=by_age,
            oldest=oldest,
            newest=newest,
        )

    @staticmethod
    def _summary(order: PendingOrder, created: datetime, now: datetime) -> dict[str, Any]:
        return {
            "order_id": order.order_id,
            "service_id": order.service_id,
            "age_minutes": int((now - created).total_seconds() // 60),
        }
