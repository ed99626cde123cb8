"""HMAC helpers for sealing pricing snapshots and checking gateway signatures.

A quote hands the client a pricing snapshot that must come back unchanged at
checkout. The snapshot is sealed with HMAC-SHA256 over its canonical JSON so
the amount charged is the amount quoted.
"""

import hashlib
import hmac
import json
import os
from typing import Any


def _get_quote_signing_secret() -> bytes:
    """Get HMAC secret for pricing snapshots.

    Raises:
        RuntimeError: If QUOTE_SIGNING_SECRET is not configured.
    """
    secret = os.environ.get("QUOTE_SIGNING_SECRET")
    if not secret:
        raise RuntimeError(
            "QUOTE_SIGNING_SECRET not configured. "
            "Generate with: openssl rand -hex 32"
        )
    return secret.encode()


def canonical_json(data: Any) -> bytes:
    """Serialize with sorted keys and no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str).encode()


def hmac_sha256_hex(secret: bytes, message: bytes) -> str:
    """Hex HMAC-SHA256 digest."""
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def sign_snapshot(snapshot: dict[str, Any]) -> str:
    """Return the hex seal for a pricing snapshot."""
    return hmac_sha256_hex(_get_quote_signing_secret(), canonical_json(snapshot))


def verify_snapshot(snapshot: dict[str, Any], signature: str | None) -> bool:
    """Check a pricing snapshot against its seal in constant time."""
    if not signature:
        return False
    return hmac.compare_digest(sign_snapshot(snapshot), signature)
