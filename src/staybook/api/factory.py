"""Builds the ASGI app for one deployment role.

public: guest/host API and gateway webhooks.
worker: everything public serves plus the /tasks endpoints that Cloud Tasks
(or the http task backend) call.
"""

from __future__ import annotations

import os
from typing import Literal

from fastapi import FastAPI, Request, Response

from staybook.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

from .routers import public, worker

logger = get_logger(__name__)

AppRole = Literal["public", "worker"]
ROLES = ("public", "worker")


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create the app for ``role`` (APP_ROLE when None, default "public").

    Raises:
        ValueError: Unknown role.
    """
    role = role or os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]
    if role not in ROLES:
        raise ValueError(f"Unknown APP_ROLE: {role}")

    app = FastAPI(title="Staybook", docs_url=None, redoc_url=None)
    app.state.role = role

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)
    if role == "worker":
        app.include_router(worker.router)

    logger.info("app created", extra={"extra_fields": safe_log_context(role=role)})
    return app
