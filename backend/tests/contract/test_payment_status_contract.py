"""Contract tests for GET /api/payment/verify/{payment_id}.

Test categories:
- Status recorded from webhooks (by transaction or reference ID)
- Fallback to the processor validation API
- 404 when neither knows the payment
- 502 when the processor lookup fails
"""

from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.status import HTTP_200_OK, HTTP_404_NOT_FOUND, HTTP_502_BAD_GATEWAY

from conftest import build_webhook_payload
from paycore.models import GatewayError, PaymentStatus, WebhookEvent
from paycore.services.payment_status import PaymentStatusStore
from paycore_api.dependencies import get_epayco_client, get_status_store
from paycore_api.main import app


# === Test Fixtures ===


@pytest.fixture
def epayco() -> MagicMock:
    client = MagicMock()
    client.get_transaction = AsyncMock(return_value=None)
    return client


@pytest.fixture
def client(
    status_store: PaymentStatusStore, epayco: MagicMock
) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_status_store] = lambda: status_store
    app.dependency_overrides[get_epayco_client] = lambda: epayco
    yield TestClient(app)
    app.dependency_overrides.clear()


# === Recorded status ===


class TestRecordedStatus:
    @pytest.mark.parametrize("payment_id", ["3010001", "90010001"])
    def test_lookup_by_either_id(
        self,
        client: TestClient,
        status_store: PaymentStatusStore,
        epayco: MagicMock,
        payment_id: str,
    ) -> None:
        event = WebhookEvent.from_processor_payload(build_webhook_payload())
        status_store.record(event, PaymentStatus.ACCEPTED, flow_type="contact")

        response = client.get(f"/api/payment/verify/{payment_id}")

        assert response.status_code == HTTP_200_OK
        data = response.json()
        assert data["transactionId"] == "3010001"
        assert data["referenceId"] == "90010001"
        assert data["status"] == "accepted"
        assert data["flowType"] == "contact"
        assert "updatedAt" in data
        epayco.get_transaction.assert_not_awaited()

    def test_rejected_includes_reason(
        self, client: TestClient, status_store: PaymentStatusStore
    ) -> None:
        event = WebhookEvent.from_processor_payload(build_webhook_payload(response="Rechazada"))
        status_store.record(event, PaymentStatus.REJECTED, reason="Fondos insuficientes")

        data = client.get("/api/payment/verify/3010001").json()

        assert data["status"] == "rejected"
        assert data["reason"] == "Fondos insuficientes"


# === Processor fallback ===


class TestProcessorFallback:
    def test_processor_data_is_mapped(self, client: TestClient, epayco: MagicMock) -> None:
        epayco.get_transaction.return_value = {
            "x_ref_payco": "90019999",
            "x_transaction_id": "3019999",
            "x_response": "Pendiente",
            "x_amount": "80000",
            "x_currency_code": "COP",
        }

        response = client.get("/api/payment/verify/90019999")

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "pending"
        assert response.json()["transactionId"] == "3019999"
        epayco.get_transaction.assert_awaited_once_with("90019999")

    def test_not_found(self, client: TestClient) -> None:
        response = client.get("/api/payment/verify/404404")

        assert response.status_code == HTTP_404_NOT_FOUND
        data = response.json()
        assert data["code"] == "PAYMENT_NOT_FOUND"
        assert data["details"] == {"payment_id": "404404"}

    def test_processor_failure(self, client: TestClient, epayco: MagicMock) -> None:
        epayco.get_transaction.side_effect = GatewayError("ePayco transaction lookup failed: 503", 503)

        response = client.get("/api/payment/verify/90019999")

        assert response.status_code == HTTP_502_BAD_GATEWAY
        assert response.json()["code"] == "GATEWAY_ERROR"
