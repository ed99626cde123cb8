"""OIDC bearer-token authentication for marketplace users.

Provides:
- verify_token(): validates a JWT against the issuer's JWKS, returns ``sub``
- get_current_user(): FastAPI dependency resolving the staybook user
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

from staybook.infra.db import txn

_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()
_JWKS_CACHE_TTL = 600  # seconds


@dataclass
class CurrentUser:
    """Authenticated user context."""

    id: str
    external_subject: str
    email: str | None
    name: str | None
    is_admin: bool = False


def _get_settings() -> dict[str, Any]:
    """OIDC settings from environment."""
    raw_parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
    parties = [p.strip() for p in raw_parties.split(",") if p.strip()] or None
    return {
        "issuer": os.environ.get("OIDC_ISSUER"),
        "audience": os.environ.get("OIDC_AUDIENCE"),
        "jwks_url": os.environ.get("OIDC_JWKS_URL"),
        "authorized_parties": parties,
    }


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _get_jwks(jwks_url: str, force_refresh: bool = False) -> dict[str, Any]:
    """JWKS with a TTL cache; a forced refresh handles key rotation."""
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        now = time.time()
        fresh = _jwks_cache is not None and (now - _jwks_cache_time) < _JWKS_CACHE_TTL
        if fresh and not force_refresh:
            return _jwks_cache

        try:
            _jwks_cache = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        _jwks_cache_time = now
        return _jwks_cache


def reset_jwks_cache() -> None:
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        _jwks_cache = None
        _jwks_cache_time = 0


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _decode(token: str, jwk_data: dict[str, Any], settings: dict[str, Any]) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(jwk_data)
    except (ValueError, TypeError, jwt.InvalidKeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=settings["issuer"],
        audience=settings["audience"],
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> str:
    """Verify a JWT and return its subject.

    Raises:
        HTTPException: 401 if the token is invalid or OIDC is not configured,
            503 if the JWKS cannot be fetched.
    """
    settings = _get_settings()
    jwks_url = settings["jwks_url"]
    if not settings["issuer"] or not settings["audience"] or not jwks_url:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    key_data = _find_key(_get_jwks(jwks_url), kid)
    if key_data is None:
        key_data = _find_key(_get_jwks(jwks_url, force_refresh=True), kid)
    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        payload = _decode(token, key_data, settings)
    except jwt.InvalidSignatureError:
        # Key may have rotated under the same kid
        key_data = _find_key(_get_jwks(jwks_url, force_refresh=True), kid)
        if key_data is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            payload = _decode(token, key_data, settings)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    parties = settings["authorized_parties"]
    if parties and "azp" in payload and payload["azp"] not in parties:
        raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return parts[1]


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    with txn() as cur:
        cur.execute(
            """
            SELECT id, external_subject, email, name, is_admin
            FROM users
            WHERE external_subject = %s
            """,
            (external_subject,),
        )
        row = cur.fetchone()
    if row is None:
        return None
    return CurrentUser(
        id=str(row[0]),
        external_subject=row[1],
        email=row[2],
        name=row[3],
        is_admin=bool(row[4]),
    )


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticated user.

    Raises:
        HTTPException: 401 if the token is missing or invalid, 403 if no
            user is registered for its subject.
    """
    sub = verify_token(_extract_bearer_token(request))
    user = _get_user_from_db(sub)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


CurrentUserDep = Depends(get_current_user)
