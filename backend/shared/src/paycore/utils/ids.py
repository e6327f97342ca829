"""Identifier helpers."""

import random
import string
from datetime import datetime


def epoch_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def generate_record_id(prefix: str, now: datetime) -> str:
    """Build IDs like QUEUE-1767225600000-k3j9x0a1b."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}-{epoch_millis(now)}-{suffix}"


def generate_order_id(now: datetime, user_id: str | None) -> str:
    """Order correlation ID, e.g. ORD-1767225600000-user42."""
    return f"ORD-{epoch_millis(now)}-{user_id or 'guest'}"
