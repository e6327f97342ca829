"""Bounded retry queue for webhooks that arrive before their order.

The processor may confirm a payment before the checkout request that
created the order has been stored. Such webhooks are parked here and
re-matched every tick until the order appears, MAX_WAIT elapses or
MAX_RETRIES attempts have failed.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from paycore.models import QueuedWebhook, WebhookEvent
from paycore.utils.ids import generate_record_id
from paycore.utils.logging import get_logger, log_alert

from .order_store import utc_now

logger = get_logger(__name__)

RETRY_INTERVAL = timedelta(seconds=30)
MAX_WAIT = timedelta(minutes=5)
MAX_RETRIES = 10

ORDER_NOT_FOUND_YET = "ORDER_NOT_FOUND_YET"

Resolver = Callable[[QueuedWebhook], Awaitable[bool]]


class ProcessResult(BaseModel):
    """Counts from one pass over the queue."""

    processed: int = 0
    retried: int = 0
    expired: int = 0
    skipped: int = 0
    remaining: int = 0


class QueueStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    by_retries: dict[str, int]
    by_age: dict[str, int]
    oldest: dict[str, Any] | None = None
    newest: dict[str, Any] | None = None


class WebhookRetryQueue:
    """Holds accepted webhooks whose order is not visible yet."""

    def __init__(
        self,
        *,
        retry_interval: timedelta = RETRY_INTERVAL,
        max_wait: timedelta = MAX_WAIT,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._items: list[QueuedWebhook] = []
        self._retry_interval = retry_interval
        self._max_wait = max_wait
        self._max_retries = max_retries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> list[QueuedWebhook]:
        return list(self._items)

    def enqueue(self, event: WebhookEvent, reason: str = ORDER_NOT_FOUND_YET) -> str:
        """Park a webhook for later matching.

        Returns:
            The queue ID
        """
        now = self._clock()
        item = QueuedWebhook(
            queue_id=generate_record_id("QUEUE", now),
            event=event,
            reason=reason,
            enqueued_at=now,
        )
        self._items.append(item)
        logger.warning(
            "Webhook queued: %s | order=%s | transaction=%s | reason=%s | queue_size=%d",
            item.queue_id,
            event.order_id,
            event.transaction_id,
            reason,
            len(self._items),
        )
        return item.queue_id

    async def process(self, resolve: Resolver) -> ProcessResult:
        """Run one pass over the queue.

        For each item, in order: expire if older than MAX_WAIT; skip if
        retried less than RETRY_INTERVAL ago; expire if MAX_RETRIES was
        reached; otherwise call resolve(). A True result removes the item,
        False or an exception counts as one more retry.

        Args:
            resolve: Coroutine that re-matches the webhook against the
                order store and fulfills it when found

        Returns:
            ProcessResult counts
        """
        result = ProcessResult()
        snapshot = list(self._items)

        for item in snapshot:
            now = self._clock()
            age = now - item.enqueued_at

            if age >= self._max_wait:
                self._expire(item, now, "MAX_WAIT_TIME_EXCEEDED")
                result.expired += 1
                continue

            if item.last_retry_at is not None and now - item.last_retry_at < self._retry_interval:
                result.skipped += 1
                continue

            if item.retries >= self._max_retries:
                self._expire(item, now, "MAX_RETRIES_EXCEEDED")
                result.expired += 1
                continue

            try:
                resolved = await resolve(item)
            except Exception:
                logger.exception("Retry of queued webhook %s failed", item.queue_id)
                resolved = False

            if resolved:
                self._remove(item)
                result.processed += 1
                logger.info(
                    "Queued webhook resolved: %s | order=%s | after %d retries",
                    item.queue_id,
                    item.order_id,
                    item.retries,
                )
            else:
                item.retries += 1
                item.last_retry_at = self._clock()
                result.retried += 1

        result.remaining = len(self._items)
        return result

    def stats(self) -> QueueStats:
        """Counts by retry and age buckets."""
        now = self._clock()
        items = list(self._items)
        by_retries = {"0-2": 0, "3-5": 0, "6-10": 0}
        by_age = {"<1min": 0, "1-3min": 0, "3-5min": 0, ">5min": 0}

        for item in items:
            if item.retries <= 2:
                by_retries["0-2"] += 1
            elif item.retries <= 5:
                by_retries["3-5"] += 1
            else:
                by_retries["6-10"] += 1

            minutes = (now - item.enqueued_at).total_seconds() / 60
            if minutes < 1:
                by_age["<1min"] += 1
            elif minutes < 3:
                by_age["1-3min"] += 1
            elif minutes < 5:
                by_age["3-5min"] += 1
            else:
                by_age[">5min"] += 1

        ordered = sorted(items, key=lambda item: item.enqueued_at)
        return QueueStats(
            total=len(items),
            by_retries=by_retries,
            by_age=by_age,
            oldest=self._summary(ordered[0], now) if ordered else None,
            newest=self._summary(ordered[-1], now) if ordered else None,
        )

    def clear(self) -> int:
        """Drop every queued webhook; returns how many were removed."""
        count = len(self._items)
        self._items.clear()
        if count:
            logger.warning("Webhook retry queue cleared: %d items dropped", count)
        return count

    def _remove(self, item: QueuedWebhook) -> None:
        self._items = [queued for queued in self._items if queued is not item]

    def _expire(self, item: QueuedWebhook, now: datetime, reason: str) -> None:
        self._remove(item)
        log_alert(
            logger,
            "WEBHOOK_EXPIRED",
            "HIGH",
            "Unprocessed webhook dropped from retry queue",
            order_id=item.order_id,
            transaction_id=item.transaction_id,
            reference_id=item.event.reference_id,
            retries=item.retries,
            age_minutes=round((now - item.enqueued_at).total_seconds() / 60, 1),
            reason=reason,
        )

    @staticmethod
    def _summary(item: QueuedWebhook, now: datetime) -> dict[str, Any]:
        return {
            "queue_id": item.queue_id,
            "order_id": item.order_id,
            "retries": item.retries,
            "age_seconds": int((now - item.enqueued_at).total_seconds()),
        }
