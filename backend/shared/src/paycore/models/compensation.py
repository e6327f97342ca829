"""Compensation ledger records for partially-failed fulfillment."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import EmailType


class _LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FailedEmail(_LedgerModel):
    """A customer notification that could not be delivered."""

    id: str = Field(..., examples=["EMAIL-1767225600000-a1b2c3d4e"])
    created_at: datetime
    type: EmailType
    email: str
    full_name: str | None = None
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Data needed to resend; never contains passwords",
    )
    service_id: str | None = None
    billing_period: str | None = None
    error: str
    retries: int = 0
    last_retry_at: datetime | None = None
    status: Literal["pending"] = "pending"


class FailedSheetWrite(_LedgerModel):
    """A registry write (credential assignment or purchase row) that failed."""

    id: str = Field(..., examples=["SHEET-1767225600000-a1b2c3d4e"])
    created_at: datetime
    sheet_name: str
    operation: str
    row_data: dict[str, Any] = Field(default_factory=dict)
    email: str | None = None
    service_id: str | None = None
    error: str
    retries: int = 0
    status: Literal["pending"] = "pending"


class PartialTransaction(_LedgerModel):
    """A paid transaction whose fulfillment stopped part-way."""

    id: str = Field(..., examples=["PARTIAL-1767225600000-a1b2c3d4e"])
    created_at: datetime
    transaction_id: str | None
    order_id: str | None
    email: str | None = None
    service_id: str | None = None
    amount: int | None = None
    completed_steps: list[str]
    failed_step: str
    error: str
    needs_refund: bool = False
    status: Literal["pending_review"] = "pending_review"


CompensationRecord = FailedEmail | FailedSheetWrite | PartialTransaction


class FailedEmailStats(_LedgerModel):
    total: int = 0
    pending: int = 0
    retrying: int = 0


class FailedSheetWriteStats(_LedgerModel):
    total: int = 0
    pending: int = 0


class PartialTransactionStats(_LedgerModel):
    total: int = 0
    needs_refund: int = 0
    pending_review: int = 0


class CompensationStats(_LedgerModel):
    """Counts per ledger partition."""

    failed_emails: FailedEmailStats = Field(default_factory=FailedEmailStats)
    failed_sheet_writes: FailedSheetWriteStats = Field(default_factory=FailedSheetWriteStats)
    partial_transactions: PartialTransactionStats = Field(default_factory=PartialTransactionStats)


class CompensationDetails(_LedgerModel):
    failed_emails: list[FailedEmail] = Field(default_factory=list)
    failed_sheet_writes: list[FailedSheetWrite] = Field(default_factory=list)
    partial_transactions: list[PartialTransaction] = Field(default_factory=list)


class CompensationReport(_LedgerModel):
    """Full ledger snapshot for operators."""

    timestamp: datetime
    stats: CompensationStats
    details: CompensationDetails


class ResolveResult(_LedgerModel):
    """Outcome of removing a ledger entry after manual resolution."""

    success: bool
    message: str
    item: CompensationRecord | None = None


class EmailRetryOutcome(_LedgerModel):
    """Result of one pass of the failed-email retry processor."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
