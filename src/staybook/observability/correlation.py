"""Correlation IDs tying a request, its webhook processing and its tasks together.

Inbound HTTP requests bind one in the app middleware; task backends forward
it as the X-Correlation-ID header so worker logs line up with the request
that enqueued the work.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str] = ContextVar("staybook_correlation_id", default="")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Correlation ID bound to the current context, or "" outside one."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> Token[str]:
    return _correlation_id.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind ``cid`` (or a fresh ID) for the duration of the block."""
    cid = cid or generate_correlation_id()
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
