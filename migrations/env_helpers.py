"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

_SQLALCHEMY_SCHEME = "postgresql+psycopg2://"


def normalize_database_url(url: str, db_password: str | None = None) -> str:
    """Turn a psycopg2-style URL into a SQLAlchemy URL.

    ``postgres://`` and ``postgresql://`` become ``postgresql+psycopg2://``.
    When the URL carries no password and ``db_password`` is given, it is
    injected (secret-manager deployments keep the password out of the URL).
    """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = _SQLALCHEMY_SCHEME + url[len(prefix):]
            break

    if db_password:
        parsed = urlparse(url)
        if parsed.username and not parsed.password:
            netloc = f"{quote_plus(parsed.username)}:{quote_plus(db_password)}@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            url = urlunparse(parsed._replace(netloc=netloc))

    return url


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return normalize_database_url(url, os.environ.get("DB_PASSWORD"))
