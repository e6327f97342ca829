"""Last-known payment status per processor transaction."""

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from paycore.models import PaymentStatus, PaymentStatusRecord, WebhookEvent
from paycore.utils.logging import get_logger

from .order_store import utc_now

logger = get_logger(__name__)


class PaymentStatusStore:
    """Status records keyed by transaction ID, with a reference-ID index.

    Later webhooks for the same transaction overwrite earlier ones.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._records: dict[str, PaymentStatusRecord] = {}
        self._reference_index: dict[str, str] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def record(
        self,
        event: WebhookEvent,
        status: PaymentStatus,
        *,
        reason: str | None = None,
        message: str | None = None,
        flow_type: str | None = None,
        email: str | None = None,
    ) -> PaymentStatusRecord | None:
        """Upsert the status for the event's transaction.

        Returns:
            The stored record, or None if the event has no transaction ID.
        """
        if not event.transaction_id:
            logger.warning("Status not recorded: webhook has no transaction ID")
            return None

        record = PaymentStatusRecord(
            transaction_id=event.transaction_id,
            reference_id=event.reference_id,
            status=status,
            reason=reason,
            message=message,
            email=email or event.customer_email,
            flow_type=flow_type,
            order_id=event.order_id,
            amount=event.amount,
            currency=event.currency_code,
            updated_at=self._clock(),
        )
        self._records[event.transaction_id] = record
        if event.reference_id:
            self._reference_index[event.reference_id] = event.transaction_id
        return record

    def get(self, identifier: str) -> PaymentStatusRecord | None:
        """Look up by transaction ID or processor reference ID."""
        record = self._records.get(identifier)
        if record is not None:
            return record
        transaction_id = self._reference_index.get(identifier)
        if transaction_id is None:
            return None
        return self._records.get(transaction_id)

    def from_processor(self, identifier: str, data: Mapping[str, Any]) -> PaymentStatusRecord:
        """Build an unstored record from a processor transaction lookup.

        Args:
            identifier: The ID the caller asked about, used when the
                processor data carries no transaction ID
            data: The ``data`` object of the processor's validation response
        """
        event = WebhookEvent.from_processor_payload(data)
        return PaymentStatusRecord(
            transaction_id=event.transaction_id or identifier,
            reference_id=event.reference_id,
            status=event.status,
            reason=event.reason,
            message=event.response,
            email=event.customer_email,
            order_id=event.order_id,
            amount=event.amount,
            currency=event.currency_code,
            updated_at=self._clock(),
        )
