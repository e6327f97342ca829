"""Authenticity and integrity checks for processor webhooks.

A webhook is processed only if it passes, in order:
1. the source-IP allow-list (when enabled)
2. the structural integrity check
3. the SHA-256 signature check (unless explicitly disabled in sandbox mode)

Every rejection is logged at HIGH severity. Callers still acknowledge the
webhook so that a probing sender cannot tell rejected from accepted.
"""

import hashlib
import hmac
import ipaddress
import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from paycore.models import WebhookEvent
from paycore.models.enums import PROCESSOR_STATUS_WORDS
from paycore.utils.logging import get_logger, log_alert

logger = get_logger(__name__)

INVALID_WEBHOOK_INTEGRITY = "INVALID_WEBHOOK_INTEGRITY"
INVALID_SIGNATURE = "INVALID_SIGNATURE"
UNAUTHORIZED_IP = "UNAUTHORIZED_IP"

_NUMERIC_ID = re.compile(r"^\d+$")

LOCAL_ADDRESSES = frozenset({"127.0.0.1", "::1", "localhost"})


def compute_signature(
    customer_id: str,
    private_key: str,
    reference_id: str,
    transaction_id: str,
    amount: str,
    currency_code: str,
) -> str:
    """SHA-256 hex digest over the caret-joined signed fields."""
    message = "^".join(
        [customer_id, private_key, reference_id, transaction_id, amount, currency_code]
    )
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def normalize_ip(ip: str | None) -> str | None:
    """Strip whitespace and the IPv4-mapped IPv6 prefix."""
    if not ip:
        return None
    ip = ip.strip()
    if ip.lower().startswith("::ffff:"):
        ip = ip[7:]
    return ip or None


class AuthenticationResult(BaseModel):
    """Outcome of authenticating one webhook."""

    ok: bool
    reason: str | None = None


class SignatureValidator:
    """Validates processor webhooks before any side effect is applied."""

    def __init__(
        self,
        private_key_provider: Callable[[], str | None],
        *,
        signature_validation_enabled: bool = True,
        validate_ip: bool = True,
        authorized_networks: Iterable[str] = (),
        allow_unlisted_ips: bool = False,
    ) -> None:
        """Initialize the validator.

        Args:
            private_key_provider: Returns the processor private key
            signature_validation_enabled: False only in explicit sandbox mode
            validate_ip: Whether to check the source IP at all
            authorized_networks: Processor CIDR blocks
            allow_unlisted_ips: Log unlisted IPs instead of rejecting them
                (non-production environments)
        """
        self._private_key_provider = private_key_provider
        self._signature_validation_enabled = signature_validation_enabled
        self._validate_ip = validate_ip
        self._networks = [ipaddress.ip_network(net, strict=False) for net in authorized_networks]
        self._allow_unlisted_ips = allow_unlisted_ips

        if not signature_validation_enabled:
            logger.warning("Webhook signature validation is DISABLED (sandbox mode)")

    @property
    def signature_validation_enabled(self) -> bool:
        return self._signature_validation_enabled

    def validate_integrity(self, event: WebhookEvent) -> bool:
        """Check required fields and their shapes.

        Requires transaction ID, amount, response status and reference ID;
        the transaction ID must be numeric, the amount positive and the
        status one of the known processor words.
        """
        if not all([event.transaction_id, event.amount, event.response, event.reference_id]):
            logger.warning("Webhook missing required fields")
            return False

        if not _NUMERIC_ID.match(event.transaction_id or ""):
            logger.warning("Webhook transaction ID is not numeric: %s", event.transaction_id)
            return False

        amount = event.amount_value
        if amount is None or amount <= 0:
            logger.warning("Webhook amount is not a positive number: %s", event.amount)
            return False

        if (event.response or "").strip().lower() not in PROCESSOR_STATUS_WORDS:
            logger.warning("Webhook has unknown response status: %s", event.response)
            return False

        return True

    def validate_signature(self, event: WebhookEvent, private_key: str | None = None) -> bool:
        """Verify the processor signature.

        Args:
            event: Parsed webhook
            private_key: Processor private key; defaults to the configured provider

        Returns:
            True when every signed field is present and the digest matches
            (case-insensitive).
        """
        key = private_key if private_key is not None else self._private_key_provider()
        fields = [
            event.customer_id,
            event.reference_id,
            event.transaction_id,
            event.amount,
            event.currency_code,
        ]
        if not key or not all(fields) or not event.signature:
            logger.warning("Signature check impossible: signed fields or key missing")
            return False

        expected = compute_signature(
            event.customer_id,  # type: ignore[arg-type]
            key,
            event.reference_id,  # type: ignore[arg-type]
            event.transaction_id,  # type: ignore[arg-type]
            event.amount,  # type: ignore[arg-type]
            event.currency_code,  # type: ignore[arg-type]
        )
        return hmac.compare_digest(expected.lower(), event.signature.strip().lower())

    def is_ip_authorized(self, ip: str | None) -> bool:
        """Whether a source IP may deliver webhooks.

        Local addresses pass outside production; unlisted addresses pass
        (with a warning) when allow_unlisted_ips is set.
        """
        if not self._validate_ip:
            return True

        normalized = normalize_ip(ip)
        if normalized is None:
            logger.warning("Webhook source IP could not be determined")
            return self._allow_unlisted_ips

        if self._allow_unlisted_ips and normalized in LOCAL_ADDRESSES:
            return True

        try:
            address = ipaddress.ip_address(normalized)
        except ValueError:
            logger.warning("Webhook source IP is malformed: %s", normalized)
            return self._allow_unlisted_ips

        if any(address in network for network in self._networks):
            return True

        if self._allow_unlisted_ips:
            logger.warning("Webhook from unlisted IP %s allowed outside production", normalized)
            return True
        return False

    def authenticate(
        self,
        event: WebhookEvent,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticationResult:
        """Run every check and log the first failure."""
        if not self.is_ip_authorized(client_ip):
            self.log_invalid_attempt(event, UNAUTHORIZED_IP, client_ip, user_agent)
            return AuthenticationResult(ok=False, reason=UNAUTHORIZED_IP)

        if not self.validate_integrity(event):
            self.log_invalid_attempt(event, INVALID_WEBHOOK_INTEGRITY, client_ip, user_agent)
            return AuthenticationResult(ok=False, reason=INVALID_WEBHOOK_INTEGRITY)

        if self._signature_validation_enabled and not self.validate_signature(event):
            self.log_invalid_attempt(event, INVALID_SIGNATURE, client_ip, user_agent)
            return AuthenticationResult(ok=False, reason=INVALID_SIGNATURE)

        return AuthenticationResult(ok=True)

    def log_invalid_attempt(
        self,
        event: WebhookEvent,
        reason: str,
        client_ip: str | None,
        user_agent: str | None,
    ) -> dict[str, Any]:
        """Record a rejected webhook as a HIGH-severity security event."""
        return log_alert(
            logger,
            "INVALID_WEBHOOK_ATTEMPT",
            "HIGH",
            "Rejected processor webhook",
            timestamp=datetime.now(UTC).isoformat(),
            reason=reason,
            transaction_id=event.transaction_id,
            reference_id=event.reference_id,
            amount=event.amount,
            signature=event.signature,
            ip=normalize_ip(client_ip),
            user_agent=user_agent,
        )
