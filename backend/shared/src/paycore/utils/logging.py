"""Structured logging for the payment API.

Every line carries the request correlation ID so a checkout, its webhook
and any compensation entry can be followed through the logs. Alerts use
``log_alert`` with a severity that maps onto the log level, and customer
data goes through the ``mask_*`` helpers before it is logged.

Usage:
    from paycore.utils.logging import get_logger, log_alert

    logger = get_logger(__name__)
    log_alert(logger, "OUT_OF_RANGE", "HIGH", rate=9000)
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Alert severities mapped to log levels
SEVERITY_LEVELS: dict[str, int] = {
    "LOW": logging.INFO,
    "MEDIUM": logging.WARNING,
    "HIGH": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current request, generating one if needed.

    Returns:
        The ID now in effect
    """
    bound = correlation_id or generate_correlation_id()
    _correlation_id.set(bound)
    return bound


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def _current_correlation_id() -> str:
    return get_correlation_id() or NO_CORRELATION_ID


class CorrelationIdFilter(logging.Filter):
    """Stamps ``record.correlation_id`` on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _current_correlation_id()
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes each line with ``[correlation-id]``."""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = getattr(record, "correlation_id", None) or _current_correlation_id()
        record.correlation_id = correlation_id
        return f"[{correlation_id}] {super().format(record)}"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; existing handlers get the formatter
    instead of new handlers being stacked.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter(LOG_FORMAT))
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


# === PII masking ===


def mask_email(email: str | None) -> str:
    """Mask an email address, keeping only its tail.

    Args:
        email: Email address

    Returns:
        '***' followed by the last 10 characters (last 3 for short
        addresses), or 'N/A' when no email is given.
    """
    if not email:
        return "N/A"
    if len(email) <= 10:
        return f"***{email[-3:]}"
    return f"***{email[-10:]}"


def mask_phone(phone: str | None) -> str:
    """Mask a phone number, keeping the last four digits."""
    if not phone:
        return "N/A"
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"***{digits[-4:]}" if digits else "N/A"


def mask_name(name: str | None) -> str:
    """Reduce a full name to its initials, e.g. 'Juan Diaz' -> 'J.D.'."""
    if not name or not name.strip():
        return "N/A"
    return "".join(f"{part[0].upper()}." for part in name.split())


def mask_secret(value: str | None) -> str:
    """Mask a token or key, keeping the first and last four characters."""
    if not value:
        return "N/A"
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


# === Structured helpers ===


def log_alert(
    logger: logging.Logger,
    alert_type: str,
    severity: str,
    message: str | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Log an operator alert with a severity-derived level.

    Args:
        logger: Logger instance
        alert_type: Alert identifier (e.g., "OUT_OF_RANGE", "WEBHOOK_EXPIRED")
        severity: One of LOW, MEDIUM, HIGH, CRITICAL
        message: Optional human-readable summary
        **fields: Additional context fields

    Returns:
        The alert payload that was logged
    """
    alert: dict[str, Any] = {"alert_type": alert_type, "severity": severity}
    alert.update(fields)

    msg_parts = [f"ALERT {alert_type} [{severity}]"]
    if message:
        msg_parts.append(message)
    for key, value in fields.items():
        msg_parts.append(f"{key}={value}")

    logger.log(
        SEVERITY_LEVELS.get(severity, logging.WARNING),
        " | ".join(msg_parts),
        extra={"alert": alert},
    )
    return alert


def log_webhook_event(
    logger: logging.Logger,
    status: str,
    transaction_id: str | None,
    *,
    reference_id: str | None = None,
    order_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a processor webhook with structured context.

    Args:
        logger: Logger instance
        status: Normalized payment status (accepted, pending, ...)
        transaction_id: Processor transaction ID
        reference_id: Processor reference ID if available
        order_id: Correlated order ID if available
        result: Processing result (processed, queued, rejected, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "payment_status": status,
        "transaction_id": transaction_id,
    }

    if reference_id:
        context["reference_id"] = reference_id
    if order_id:
        context["order_id"] = order_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {status} ({transaction_id or 'no-transaction'})"]
    if result:
        msg_parts.append(f"result={result}")
    if order_id:
        msg_parts.append(f"order={order_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("queued", "rejected"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)
