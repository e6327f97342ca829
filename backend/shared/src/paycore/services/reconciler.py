"""Reconciles processor webhooks against pending orders.

Provides the business logic behind the webhook endpoint, separate from
HTTP routing:
- authenticates the notification (IP, integrity, signature)
- matches it to its PendingOrder, or parks it in the retry queue
- runs the flow-specific fulfillment exactly once per order
- records every partial failure in the compensation ledger
- keeps the last known status per transaction for /verify

handle_webhook() never raises. Whatever happens, the processor receives a
generic acknowledgement so that it neither retries endlessly nor learns
whether a forged notification was accepted.
"""

import calendar
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from paycore.models import (
    BillingPeriod,
    DownstreamFulfillmentError,
    EmailType,
    FailedEmail,
    FlowType,
    FulfillmentStep,
    PaymentStatus,
    PaymentStatusRecord,
    PendingOrder,
    QueuedWebhook,
    WebhookAck,
    WebhookEvent,
)
from paycore.models.compensation import EmailRetryOutcome
from paycore.utils.logging import get_logger, log_webhook_event, mask_email

from .collaborators import (
    CREDENTIALS_SHEET,
    PURCHASE_SHEETS,
    ConfirmationEmail,
    CredentialsEmail,
    FulfillmentRegistry,
    IssuedCredentials,
    Notifier,
    RegistryEntry,
    SaasRegistrar,
)
from .compensation import CompensationLedger
from .order_store import OrderStore, SweepResult, utc_now
from .payment_status import PaymentStatusStore
from .retry_queue import ORDER_NOT_FOUND_YET, ProcessResult, WebhookRetryQueue
from .signature import SignatureValidator

logger = get_logger(__name__)

ACK_MESSAGE = "Webhook processed"
QUEUED_MESSAGE = "Webhook queued for processing"
PENDING_MESSAGE = "Payment pending confirmation; it may take up to 20 minutes"


class RefundPolicy(BaseModel):
    """Operator decision on which failed fulfillment steps warrant a refund."""

    refund_on: frozenset[str] = frozenset()

    def needs_refund(self, failed_step: str) -> bool:
        return failed_step in self.refund_on


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_valid_until(sales_date: datetime, billing_period: BillingPeriod) -> date:
    months = 1 if billing_period is BillingPeriod.MONTHLY else 12
    return add_months(sales_date.date(), months)


class PaymentReconciler:
    """Applies processor webhooks to pending orders."""

    def __init__(
        self,
        *,
        validator: SignatureValidator,
        order_store: OrderStore,
        retry_queue: WebhookRetryQueue,
        ledger: CompensationLedger,
        status_store: PaymentStatusStore,
        registry: FulfillmentRegistry,
        notifier: Notifier,
        saas: SaasRegistrar | None = None,
        refund_policy: RefundPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._validator = validator
        self._orders = order_store
        self._queue = retry_queue
        self._ledger = ledger
        self._statuses = status_store
        self._registry = registry
        self._notifier = notifier
        self._saas = saas
        self._refund_policy = refund_policy or RefundPolicy()
        self._clock = clock
        self._in_flight: set[str] = set()

    # === Webhook entry point ===

    async def handle_webhook(
        self,
        payload: Mapping[str, Any],
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> WebhookAck:
        """Process one processor notification.

        Args:
            payload: Parsed form or JSON body
            client_ip: Resolved source IP of the request
            user_agent: Request User-Agent, for the security log

        Returns:
            WebhookAck; never raises
        """
        event = WebhookEvent.from_processor_payload(payload)
        try:
            return await self._handle(event, client_ip, user_agent)
        except Exception as e:
            logger.exception("Unexpected error processing webhook %s", event.transaction_id)
            log_webhook_event(
                logger,
                event.status.value,
                event.transaction_id,
                reference_id=event.reference_id,
                order_id=event.order_id,
                result="error",
                error=str(e),
            )
            return self._ack(event)

    async def _handle(
        self, event: WebhookEvent, client_ip: str | None, user_agent: str | None
    ) -> WebhookAck:
        auth = self._validator.authenticate(event, client_ip=client_ip, user_agent=user_agent)
        if not auth.ok:
            return self._ack(event)

        status = event.status
        log_webhook_event(
            logger,
            status.value,
            event.transaction_id,
            reference_id=event.reference_id,
            order_id=event.order_id,
            result="received",
            test=event.test_request,
        )

        if status is PaymentStatus.ACCEPTED:
            return await self._handle_accepted(event)

        if status is PaymentStatus.PENDING:
            # Order is kept; a later webhook settles it
            self._statuses.record(event, status, message=PENDING_MESSAGE)
        elif status in (PaymentStatus.REJECTED, PaymentStatus.FAILED):
            order = self._orders.delete(event.order_id)
            self._statuses.record(
                event,
                status,
                reason=event.reason or f"Payment {status.value}",
                flow_type=order.flow_type.value if order else None,
                email=order.email if order else None,
            )
            log_webhook_event(
                logger,
                status.value,
                event.transaction_id,
                order_id=event.order_id,
                result="rejected",
                reason=event.reason,
            )
        else:
            # validate_integrity rejects unknown words today; kept for a relaxed integrity mode
            self._statuses.record(event, status, message=event.response)
            logger.warning("Unknown payment status '%s' for %s", event.response, event.transaction_id)

        return self._ack(event)

    async def _handle_accepted(self, event: WebhookEvent) -> WebhookAck:
        order_id = event.order_id
        if order_id and order_id in self._in_flight:
            logger.info("Duplicate delivery for order %s ignored while in flight", order_id)
            return self._ack(event)

        order = self._orders.get(order_id)
        if order is None:
            self._queue.enqueue(event, ORDER_NOT_FOUND_YET)
            log_webhook_event(
                logger,
                event.status.value,
                event.transaction_id,
                order_id=order_id,
                result="queued",
            )
            return WebhookAck(message=QUEUED_MESSAGE, transaction_id=event.transaction_id)

        await self._complete(event, order)
        return self._ack(event)

    async def _resolve_queued(self, item: QueuedWebhook) -> bool:
        if item.order_id in self._in_flight:
            return False
        order = self._orders.get(item.order_id)
        if order is None:
            return False
        await self._complete(item.event, order)
        return True

    async def _complete(self, event: WebhookEvent, order: PendingOrder) -> bool:
        """Fulfill, then record the accepted status.

        The order is deleted only when fulfillment succeeded; after a
        registration failure it stays so that a redelivered webhook can
        try again.

        Returns:
            True if every required step succeeded
        """
        self._in_flight.add(order.order_id)
        try:
            await self._fulfill(event, order)
        except DownstreamFulfillmentError as e:
            log_webhook_event(
                logger,
                event.status.value,
                event.transaction_id,
                order_id=order.order_id,
                result="error",
                error=str(e),
            )
            fulfilled = False
        else:
            self._orders.delete(order.order_id)
            fulfilled = True
            log_webhook_event(
                logger,
                event.status.value,
                event.transaction_id,
                order_id=order.order_id,
                result="processed",
                flow_type=order.flow_type.value,
            )
        finally:
            self._in_flight.discard(order.order_id)

        self._statuses.record(
            event,
            PaymentStatus.ACCEPTED,
            flow_type=order.flow_type.value,
            email=order.email,
        )
        return fulfilled

    # === Fulfillment ===

    async def _fulfill(self, event: WebhookEvent, order: PendingOrder) -> None:
        sales_date = self._clock()
        valid_until = calculate_valid_until(sales_date, order.billing_period)
        entry = RegistryEntry(
            flow_type=order.flow_type,
            service_name=order.service_name,
            email=order.email,
            phone=order.phone,
            billing_period=order.billing_period,
            sales_date=sales_date,
            valid_until=valid_until,
        )

        if order.flow_type is FlowType.CREDENTIALS:
            credentials, step = await self._issue_credentials(event, order, entry)
            await self._notify(
                event,
                order,
                [FulfillmentStep.PAYMENT, step],
                EmailType.CREDENTIALS,
                CredentialsEmail(
                    email=order.email,
                    full_name=order.full_name,
                    service_name=order.service_name,
                    username=credentials.username,
                    password=credentials.password,
                    url=credentials.url,
                    billing_period=order.billing_period,
                    valid_until=valid_until,
                ),
            )
            return

        await self._register_purchase(event, order, entry)
        await self._notify(
            event,
            order,
            [FulfillmentStep.PAYMENT, FulfillmentStep.REGISTER_PURCHASE],
            EmailType.CONFIRMATION,
            ConfirmationEmail(
                email=order.email,
                full_name=order.full_name,
                service_name=order.service_name,
                flow_type=order.flow_type,
                phone=order.phone,
                billing_period=order.billing_period,
                valid_until=valid_until,
            ),
        )

    async def _issue_credentials(
        self, event: WebhookEvent, order: PendingOrder, entry: RegistryEntry
    ) -> tuple[IssuedCredentials, FulfillmentStep]:
        if order.registration is None:
            try:
                credentials = await self._registry.assign_credentials(entry)
            except Exception as e:
                self._ledger.record_failed_sheet_write(
                    sheet_name=CREDENTIALS_SHEET,
                    operation=FulfillmentStep.ASSIGN_CREDENTIALS.value,
                    row_data=entry.model_dump(mode="json"),
                    email=order.email,
                    service_id=order.service_id,
                    error=str(e),
                )
                self._record_partial(event, order, [FulfillmentStep.PAYMENT], FulfillmentStep.ASSIGN_CREDENTIALS, e)
                raise DownstreamFulfillmentError(FulfillmentStep.ASSIGN_CREDENTIALS.value, e) from e
            return credentials, FulfillmentStep.ASSIGN_CREDENTIALS

        try:
            if self._saas is None:
                raise RuntimeError("SaaS registration is not configured")
            credentials = await self._saas.register(order.registration)
        except Exception as e:
            self._record_partial(event, order, [FulfillmentStep.PAYMENT], FulfillmentStep.SAAS_REGISTRATION, e)
            raise DownstreamFulfillmentError(FulfillmentStep.SAAS_REGISTRATION.value, e) from e

        # Tracking row only; the account already exists
        tracking = entry.model_copy(update={"username": credentials.username, "url": credentials.url})
        try:
            await self._registry.assign_credentials(tracking)
        except Exception as e:
            logger.warning("SaaS account tracking row failed for %s: %s", mask_email(order.email), e)
            self._ledger.record_failed_sheet_write(
                sheet_name=CREDENTIALS_SHEET,
                operation="track_saas_registration",
                row_data=tracking.model_dump(mode="json"),
                email=order.email,
                service_id=order.service_id,
                error=str(e),
            )
        return credentials, FulfillmentStep.SAAS_REGISTRATION

    async def _register_purchase(
        self, event: WebhookEvent, order: PendingOrder, entry: RegistryEntry
    ) -> None:
        try:
            await self._registry.register_purchase(entry)
        except Exception as e:
            self._ledger.record_failed_sheet_write(
                sheet_name=PURCHASE_SHEETS.get(order.flow_type, order.service_name),
                operation=FulfillmentStep.REGISTER_PURCHASE.value,
                row_data=entry.model_dump(mode="json"),
                email=order.email,
                service_id=order.service_id,
                error=str(e),
            )
            self._record_partial(event, order, [FulfillmentStep.PAYMENT], FulfillmentStep.REGISTER_PURCHASE, e)
            raise DownstreamFulfillmentError(FulfillmentStep.REGISTER_PURCHASE.value, e) from e

    async def _notify(
        self,
        event: WebhookEvent,
        order: PendingOrder,
        completed_steps: list[FulfillmentStep],
        email_type: EmailType,
        message: CredentialsEmail | ConfirmationEmail,
    ) -> None:
        """Send the customer email; failures are recorded, not raised."""
        try:
            if isinstance(message, CredentialsEmail):
                await self._notifier.send_credentials(message)
            else:
                await self._notifier.send_purchase_confirmation(message)
        except Exception as e:
            # The ledger is shown in the admin report; passwords stay out of it
            self._ledger.record_failed_email(
                email_type=email_type,
                email=order.email,
                full_name=order.full_name,
                payload=message.model_dump(mode="json", exclude={"password"}),
                service_id=order.service_id,
                billing_period=order.billing_period.value,
                error=str(e),
            )
            self._record_partial(event, order, completed_steps, FulfillmentStep.SEND_EMAIL, e)

    def _record_partial(
        self,
        event: WebhookEvent,
        order: PendingOrder,
        completed_steps: list[FulfillmentStep],
        failed_step: FulfillmentStep,
        error: Exception,
    ) -> None:
        self._ledger.record_partial_transaction(
            transaction_id=event.transaction_id,
            order_id=order.order_id,
            email=order.email,
            service_id=order.service_id,
            amount=order.validated_amount,
            completed_steps=[step.value for step in completed_steps],
            failed_step=failed_step.value,
            error=str(error) or type(error).__name__,
            needs_refund=self._refund_policy.needs_refund(failed_step.value),
        )

    # === Periodic work ===

    async def process_retry_queue(self) -> ProcessResult:
        return await self._queue.process(self._resolve_queued)

    async def sweep_orders(self) -> SweepResult:
        return self._orders.sweep_expired()

    async def retry_failed_emails(self) -> EmailRetryOutcome:
        return await self._ledger.retry_failed_emails(self.resend_email)

    async def resend_email(self, entry: FailedEmail) -> None:
        """Rebuild and resend the email stored in a ledger entry."""
        if entry.type is EmailType.CREDENTIALS:
            await self._notifier.send_credentials(CredentialsEmail.model_validate(entry.payload))
        else:
            await self._notifier.send_purchase_confirmation(
                ConfirmationEmail.model_validate(entry.payload)
            )

    # === Queries ===

    def lookup_status(self, identifier: str) -> PaymentStatusRecord | None:
        return self._statuses.get(identifier)

    @staticmethod
    def _ack(event: WebhookEvent) -> WebhookAck:
        return WebhookAck(message=ACK_MESSAGE, transaction_id=event.transaction_id)
