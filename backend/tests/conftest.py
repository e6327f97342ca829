"""Pytest configuration and fixtures for the payment reconciliation tests.

This module provides reusable fixtures for testing:
- Environment defaults and AWS credentials for moto
- Controllable clocks for the time-based stores
- Signed processor webhook payloads
- A fully wired PaymentReconciler with in-memory collaborators
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Generator

import pytest

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("EPAYCO_PRIVATE_KEY", "test-private-key-123")
os.environ.setdefault("EPAYCO_PUBLIC_KEY", "test-public-key-456")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from paycore.models import BillingPeriod, CredentialsRegistration, FlowType, PendingOrder  # noqa: E402
from paycore.services.collaborators import (  # noqa: E402
    InMemoryFulfillmentRegistry,
    IssuedCredentials,
    LoggingNotifier,
)
from paycore.services.compensation import CompensationLedger  # noqa: E402
from paycore.services.order_store import OrderStore  # noqa: E402
from paycore.services.payment_status import PaymentStatusStore  # noqa: E402
from paycore.services.reconciler import PaymentReconciler  # noqa: E402
from paycore.services.retry_queue import WebhookRetryQueue  # noqa: E402
from paycore.services.signature import SignatureValidator, compute_signature  # noqa: E402

# === Test Configuration ===

TEST_PRIVATE_KEY = "test-private-key-123"
TEST_CUST_ID = "1556789"
PROCESSOR_IP = "181.49.176.18"
TEST_ORDER_ID = "ORD-1767225600000-user42"
TEST_EMAIL = "maria.gomez@example.com"
FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# === Helper Classes ===


class FakeClock:
    """Datetime clock that only moves when advanced."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeMonotonic:
    """Monotonic seconds clock for TTL caches."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> float:
        self.value += seconds
        return self.value


# === Helper Functions ===


def build_webhook_payload(
    order_id: str | None = TEST_ORDER_ID,
    *,
    response: str = "Aceptada",
    transaction_id: str = "3010001",
    reference_id: str = "90010001",
    amount: str = "80000",
    currency: str = "COP",
    private_key: str = TEST_PRIVATE_KEY,
    **overrides: Any,
) -> dict[str, Any]:
    """Build a processor confirmation body with a valid x_signature."""
    payload: dict[str, Any] = {
        "x_cust_id_cliente": TEST_CUST_ID,
        "x_ref_payco": reference_id,
        "x_transaction_id": transaction_id,
        "x_amount": amount,
        "x_currency_code": currency,
        "x_response": response,
        "x_response_reason_text": f"{response} por el banco",
        "x_customer_email": TEST_EMAIL,
        "x_test_request": "TRUE",
        "x_signature": compute_signature(
            TEST_CUST_ID, private_key, reference_id, transaction_id, amount, currency
        ),
    }
    if order_id is not None:
        payload["x_extra1"] = order_id
    payload.update(overrides)
    return payload


def build_order(
    order_id: str = TEST_ORDER_ID,
    *,
    service_id: str = "rasi-autocitas",
    service_name: str = "Rasi Autocitas",
    flow_type: FlowType = FlowType.CONTACT,
    billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    amount: int = 60000,
    registration: CredentialsRegistration | None = None,
    created_at: datetime | None = FIXED_NOW,
) -> PendingOrder:
    return PendingOrder(
        order_id=order_id,
        service_id=service_id,
        service_name=service_name,
        validated_amount=amount,
        billing_period=billing_period,
        email=TEST_EMAIL,
        full_name="Maria Gomez",
        phone="3001234567",
        flow_type=flow_type,
        registration=registration,
        created_at=created_at,
    )


def build_registration(**overrides: str) -> CredentialsRegistration:
    values = {
        "company_name": "Clinica Norte SAS",
        "tax_id": "900123456",
        "legal_representative": "Maria Gomez",
        "user_email": "admin@clinicanorte.co",
        "user_name": "Maria Gomez",
        "user_document": "52123456",
        "password": "S3cret!pass",
    }
    values.update(overrides)
    return CredentialsRegistration(**values)


# === Service Fixtures ===


@pytest.fixture(autouse=True)
def reset_cached_services() -> Generator[None, None, None]:
    """Reset cached providers and settings before and after each test."""
    from paycore_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def validator() -> SignatureValidator:
    return SignatureValidator(
        lambda: TEST_PRIVATE_KEY,
        authorized_networks=["181.49.176.18/32", "181.49.50.0/24"],
    )


@pytest.fixture
def order_store(clock: FakeClock) -> OrderStore:
    return OrderStore(clock=clock)


@pytest.fixture
def retry_queue(clock: FakeClock) -> WebhookRetryQueue:
    return WebhookRetryQueue(clock=clock)


@pytest.fixture
def ledger(clock: FakeClock) -> CompensationLedger:
    return CompensationLedger(clock=clock)


@pytest.fixture
def status_store(clock: FakeClock) -> PaymentStatusStore:
    return PaymentStatusStore(clock=clock)


@pytest.fixture
def registry() -> InMemoryFulfillmentRegistry:
    return InMemoryFulfillmentRegistry(
        [IssuedCredentials(username="rasi-user-01", password="pool-pass-01", url="https://app.rasi.co")]
    )


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def reconciler(
    validator: SignatureValidator,
    order_store: OrderStore,
    retry_queue: WebhookRetryQueue,
    ledger: CompensationLedger,
    status_store: PaymentStatusStore,
    registry: InMemoryFulfillmentRegistry,
    notifier: LoggingNotifier,
    clock: FakeClock,
) -> PaymentReconciler:
    """PaymentReconciler wired to in-memory collaborators and the fake clock."""
    return PaymentReconciler(
        validator=validator,
        order_store=order_store,
        retry_queue=retry_queue,
        ledger=ledger,
        status_store=status_store,
        registry=registry,
        notifier=notifier,
        clock=clock,
    )
