"""Compensation ledger for fulfillment steps that failed after payment.

Every entry raises an operator alert when recorded. Entries are removed
when an operator resolves them or, for emails, when a retry succeeds.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from paycore.models import (
    CompensationKind,
    CompensationReport,
    CompensationStats,
    EmailRetryOutcome,
    EmailType,
    FailedEmail,
    FailedSheetWrite,
    PartialTransaction,
    ResolveResult,
)
from paycore.models.compensation import (
    CompensationDetails,
    FailedEmailStats,
    FailedSheetWriteStats,
    PartialTransactionStats,
)
from paycore.utils.ids import generate_record_id
from paycore.utils.logging import get_logger, log_alert, mask_email

from .order_store import utc_now

logger = get_logger(__name__)

EMAIL_MAX_RETRIES = 5

EmailSender = Callable[[FailedEmail], Awaitable[None]]


class CompensationLedger:
    """Append/remove store of FailedEmail, FailedSheetWrite and PartialTransaction."""

    def __init__(
        self,
        *,
        email_max_retries: int = EMAIL_MAX_RETRIES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._failed_emails: list[FailedEmail] = []
        self._failed_sheet_writes: list[FailedSheetWrite] = []
        self._partial_transactions: list[PartialTransaction] = []
        self._email_max_retries = email_max_retries
        self._clock = clock

    @property
    def failed_emails(self) -> list[FailedEmail]:
        return list(self._failed_emails)

    @property
    def failed_sheet_writes(self) -> list[FailedSheetWrite]:
        return list(self._failed_sheet_writes)

    @property
    def partial_transactions(self) -> list[PartialTransaction]:
        return list(self._partial_transactions)

    def record_failed_email(
        self,
        *,
        email_type: EmailType,
        email: str,
        error: str,
        full_name: str | None = None,
        payload: dict[str, Any] | None = None,
        service_id: str | None = None,
        billing_period: str | None = None,
    ) -> str:
        """Record an undelivered notification and alert operators.

        Returns:
            The ledger entry ID
        """
        now = self._clock()
        entry = FailedEmail(
            id=generate_record_id("EMAIL", now),
            created_at=now,
            type=email_type,
            email=email,
            full_name=full_name,
            payload=payload or {},
            service_id=service_id,
            billing_period=billing_period,
            error=error,
        )
        self._failed_emails.append(entry)
        log_alert(
            logger,
            "FAILED_EMAIL",
            "HIGH",
            f"{email_type.value} email could not be sent",
            id=entry.id,
            email=mask_email(email),
            service_id=service_id,
            error=error,
        )
        return entry.id

    def record_failed_sheet_write(
        self,
        *,
        sheet_name: str,
        operation: str,
        error: str,
        row_data: dict[str, Any] | None = None,
        email: str | None = None,
        service_id: str | None = None,
    ) -> str:
        """Record a failed registry write and alert operators."""
        now = self._clock()
        entry = FailedSheetWrite(
            id=generate_record_id("SHEET", now),
            created_at=now,
            sheet_name=sheet_name,
            operation=operation,
            row_data=row_data or {},
            email=email,
            service_id=service_id,
            error=error,
        )
        self._failed_sheet_writes.append(entry)
        log_alert(
            logger,
            "FAILED_SHEET_WRITE",
            "HIGH",
            f"{operation} on '{sheet_name}' failed",
            id=entry.id,
            email=mask_email(email),
            error=error,
        )
        return entry.id

    def record_partial_transaction(
        self,
        *,
        transaction_id: str | None,
        order_id: str | None,
        completed_steps: list[str],
        failed_step: str,
        error: str,
        needs_refund: bool = False,
        email: str | None = None,
        service_id: str | None = None,
        amount: int | None = None,
    ) -> str:
        """Record a paid transaction whose fulfillment stopped part-way."""
        now = self._clock()
        entry = PartialTransaction(
            id=generate_record_id("PARTIAL", now),
            created_at=now,
            transaction_id=transaction_id,
            order_id=order_id,
            email=email,
            service_id=service_id,
            amount=amount,
            completed_steps=list(completed_steps),
            failed_step=failed_step,
            error=error,
            needs_refund=needs_refund,
        )
        self._partial_transactions.append(entry)
        log_alert(
            logger,
            "PARTIAL_TRANSACTION",
            "CRITICAL",
            "Paid transaction needs manual review",
            id=entry.id,
            transaction_id=transaction_id,
            order_id=order_id,
            completed_steps=",".join(completed_steps),
            failed_step=failed_step,
            needs_refund=needs_refund,
            error=error,
        )
        return entry.id

    def stats(self) -> CompensationStats:
        emails = list(self._failed_emails)
        sheets = list(self._failed_sheet_writes)
        partials = list(self._partial_transactions)
        return CompensationStats(
            failed_emails=FailedEmailStats(
                total=len(emails),
                pending=sum(1 for e in emails if e.status == "pending"),
                retrying=sum(1 for e in emails if e.retries > 0),
            ),
            failed_sheet_writes=FailedSheetWriteStats(
                total=len(sheets),
                pending=sum(1 for s in sheets if s.status == "pending"),
            ),
            partial_transactions=PartialTransactionStats(
                total=len(partials),
                needs_refund=sum(1 for p in partials if p.needs_refund),
                pending_review=sum(1 for p in partials if p.status == "pending_review"),
            ),
        )

    def report(self) -> CompensationReport:
        return CompensationReport(
            timestamp=self._clock(),
            stats=self.stats(),
            details=CompensationDetails(
                failed_emails=list(self._failed_emails),
                failed_sheet_writes=list(self._failed_sheet_writes),
                partial_transactions=list(self._partial_transactions),
            ),
        )

    def resolve(self, kind: CompensationKind | str, record_id: str) -> ResolveResult:
        """Remove an entry after an operator has handled it.

        Args:
            kind: email, sheet or transaction
            record_id: Ledger entry ID

        Returns:
            ResolveResult; success is False for an unknown kind or ID and
            nothing is removed in that case.
        """
        try:
            kind = CompensationKind(kind)
        except ValueError:
            return ResolveResult(success=False, message="Invalid type")

        if kind is CompensationKind.EMAIL:
            item = self._pop(self._failed_emails, record_id)
        elif kind is CompensationKind.SHEET:
            item = self._pop(self._failed_sheet_writes, record_id)
        else:
            item = self._pop(self._partial_transactions, record_id)

        if item is None:
            return ResolveResult(success=False, message="Item not found")

        logger.info("Compensation entry resolved: %s (%s)", record_id, kind.value)
        return ResolveResult(success=True, message="Marked as resolved", item=item)

    async def retry_failed_emails(self, sender: EmailSender) -> EmailRetryOutcome:
        """Resend undelivered emails below the retry cap.

        A successful resend removes the entry. A failure increments
        retries and updates last_retry_at and error on the same entry.

        Args:
            sender: Coroutine that delivers the email described by an entry

        Returns:
            EmailRetryOutcome counts
        """
        outcome = EmailRetryOutcome()

        for entry in list(self._failed_emails):
            if entry.retries >= self._email_max_retries:
                outcome.skipped += 1
                continue

            outcome.attempted += 1
            try:
                await sender(entry)
            except Exception as e:
                entry.retries += 1
                entry.last_retry_at = self._clock()
                entry.error = str(e) or type(e).__name__
                outcome.failed += 1
                logger.warning(
                    "Email retry %d/%d failed for %s: %s",
                    entry.retries,
                    self._email_max_retries,
                    entry.id,
                    entry.error,
                )
                continue

            self._pop(self._failed_emails, entry.id)
            outcome.succeeded += 1
            logger.info("Failed email %s delivered on retry", entry.id)

        return outcome

    @staticmethod
    def _pop(items: list, record_id: str) -> Any:
        for index, item in enumerate(items):
            if item.id == record_id:
                return items.pop(index)
        return None
