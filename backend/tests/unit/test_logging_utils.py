"""Unit tests for logging helpers and PII masking.

Test categories:
- Masking helpers
- Operator alerts
- Correlation ID context and formatting
"""

import logging

import pytest

from paycore.utils.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_alert,
    log_webhook_event,
    mask_email,
    mask_name,
    mask_phone,
    mask_secret,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def clean_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


# === Masking ===


class TestMasking:
    @pytest.mark.parametrize(
        "email,masked",
        [
            ("juan.perez@example.com", "***xample.com"),
            ("a@b.co", "***.co"),
            (None, "N/A"),
            ("", "N/A"),
        ],
    )
    def test_mask_email(self, email, masked) -> None:
        assert mask_email(email) == masked

    def test_mask_phone(self) -> None:
        assert mask_phone("+57 300 123 4567") == "***4567"
        assert mask_phone("n/a") == "N/A"
        assert mask_phone(None) == "N/A"

    def test_mask_name(self) -> None:
        assert mask_name("juan diaz") == "J.D."
        assert mask_name("   ") == "N/A"

    def test_mask_secret(self) -> None:
        assert mask_secret("sk_live_abcdef123456") == "sk_l...3456"
        assert mask_secret("short") == "***"
        assert mask_secret(None) == "N/A"


# === Alerts ===


class TestLogAlert:
    @pytest.mark.parametrize(
        "severity,level",
        [
            ("LOW", logging.INFO),
            ("MEDIUM", logging.WARNING),
            ("HIGH", logging.ERROR),
            ("CRITICAL", logging.CRITICAL),
            ("BOGUS", logging.WARNING),
        ],
    )
    def test_severity_sets_level(
        self, severity: str, level: int, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("tests.alerts")

        with caplog.at_level(logging.DEBUG, logger="tests.alerts"):
            log_alert(logger, "OUT_OF_RANGE", severity, rate=9000)

        assert caplog.records[0].levelno == level

    def test_payload_and_message(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("tests.alerts")

        with caplog.at_level(logging.INFO, logger="tests.alerts"):
            alert = log_alert(logger, "API_DOWN", "HIGH", "Rate source down", fallback_rate=4200)

        assert alert == {"alert_type": "API_DOWN", "severity": "HIGH", "fallback_rate": 4200}
        assert caplog.records[0].alert == alert
        assert caplog.records[0].getMessage() == (
            "ALERT API_DOWN [HIGH] | Rate source down | fallback_rate=4200"
        )


class TestLogWebhookEvent:
    @pytest.mark.parametrize(
        "result,level",
        [("processed", logging.INFO), ("queued", logging.WARNING), ("error", logging.ERROR)],
    )
    def test_level_follows_result(
        self, result: str, level: int, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("tests.webhooks")

        with caplog.at_level(logging.INFO, logger="tests.webhooks"):
            log_webhook_event(logger, "accepted", "3010001", order_id="ORD-1", result=result)

        record = caplog.records[0]
        assert record.levelno == level
        assert record.transaction_id == "3010001"
        assert record.payment_status == "accepted"
        assert f"result={result}" in record.getMessage()


# === Correlation ID ===


class TestCorrelationId:
    def test_set_and_clear(self) -> None:
        assert get_correlation_id() is None

        cid = set_correlation_id()

        assert get_correlation_id() == cid
        assert set_correlation_id("req-123") == "req-123"
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_filter_and_formatter(self) -> None:
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)

        CorrelationIdFilter().filter(record)
        assert record.correlation_id == "no-correlation-id"

        set_correlation_id("req-9")
        fresh = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
        line = StructuredFormatter("%(message)s").format(fresh)

        assert line == "[req-9] hello"

    def test_get_logger_adds_filter_once(self) -> None:
        logger = get_logger("tests.filters")
        get_logger("tests.filters")

        assert sum(isinstance(f, CorrelationIdFilter) for f in logger.filters) == 1
