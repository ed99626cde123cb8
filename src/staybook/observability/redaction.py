"""Redaction for log context.

Gateway payloads, guest contact details, payout destinations and credentials
never reach the logs verbatim; every ``extra_fields`` dict is built with
``safe_log_context``.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

_REDACTED = "[REDACTED]"

# Order matters: credentials, then emails, before the looser UPI/phone shapes.
_PATTERNS = (
    # sk_live_..., rk_test_..., whsec_..., rzp_live_...
    re.compile(r"\b(?:sk|rk|whsec|rzp)_[A-Za-z0-9_]{6,}\b"),
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    # UPI payout address, e.g. host.name@okaxis
    re.compile(r"\b[\w.-]{2,}@[a-zA-Z]{3,}\b"),
    # phone numbers and card/account numbers
    re.compile(r"(?!\d{4}-\d{2}-\d{2})\+?\d[\d\s\-()]{8,}\d"),
)


def redact_string(value: str) -> str:
    """Mask credentials, emails, UPI ids and long digit runs."""
    for pattern in _PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def redact_value(value: Any) -> str:
    """String form of ``value`` that is safe to log."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float, Decimal, UUID)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(value.keys())})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    return {k: redact_value(v) for k, v in kwargs.items()}


def id_prefix(value: str | None, length: int = 8) -> str:
    """First ``length`` chars of a gateway id (event, order, payout)."""
    if not value:
        return ""
    return value[:length]
