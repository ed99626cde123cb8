"""Authentication for worker task endpoints.

Production tasks carry a Cloud Tasks OIDC token. In local dev
(TASKS_OIDC_AUDIENCE == LOCAL_DEV_AUDIENCE) a shared secret header is
accepted instead.
"""

from __future__ import annotations

import base64
import hmac
import json
import os

from fastapi import HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

LOCAL_DEV_AUDIENCE = "staybook-tasks-local"


def _unverified_claim(token: str, claim: str) -> str | None:
    """Read a claim without verifying the token. For failure logs only."""
    try:
        segment = token.split(".")[1]
        segment += "=" * (-len(segment) % 4)
        value = json.loads(base64.urlsafe_b64decode(segment)).get(claim)
    except (IndexError, ValueError):
        return None
    return str(value) if value is not None else None


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def verify_task_oidc(token: str) -> bool:
    """Verify a Cloud Tasks OIDC token.

    Fails closed when TASKS_OIDC_AUDIENCE is not set. When
    TASKS_OIDC_SERVICE_ACCOUNT is set the token's email must match it.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        logger.warning(
            "OIDC token verification failed",
            extra={
                "extra_fields": safe_log_context(
                    error=str(e),
                    expected_audience=audience,
                    received_audience=_unverified_claim(token, "aud"),
                )
            },
        )
        return False

    expected_email = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(expected_email=expected_email)},
        )
        return False
    return True


def verify_task_auth(request: Request) -> bool:
    """True if the request carries valid task credentials."""
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        given = request.headers.get("X-Internal-Task-Secret", "")
        if secret and hmac.compare_digest(given, secret):
            return True

    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(reason="missing_bearer_token")},
        )
        return False
    return verify_task_oidc(token)


def require_task_auth(request: Request) -> None:
    """FastAPI dependency for worker routes.

    Raises:
        HTTPException: 401 if task authentication fails.
    """
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
