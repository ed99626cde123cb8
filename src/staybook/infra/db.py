"""Postgres access through psycopg2, raw SQL only.

One ``txn()`` per operation. Everything a booking settlement, cancellation or
withdrawal writes (nights, booking row, wallets, outbox) shares its cursor,
so the operation lands completely or not at all.
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

DEFAULT_APPLICATION_NAME = "staybook"


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(
        dsn,
        application_name=os.environ.get("DB_APPLICATION_NAME", DEFAULT_APPLICATION_NAME),
    )


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Yield a cursor; commit on clean exit, roll back on any exception.

    A connection opened here is closed on exit; one passed in is left open.

    Example:
        with txn() as cur:
            cur.execute("UPDATE wallets SET balance = balance + %s WHERE id = %s", (10, wid))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


@contextmanager
def savepoint(cur: PgCursor, name: str) -> Iterator[None]:
    """Undo only the statements issued inside the block when it raises.

    The exception propagates after ROLLBACK TO SAVEPOINT and the enclosing
    transaction stays usable, so the caller can record what went wrong.
    """
    cur.execute(f"SAVEPOINT {name}")
    try:
        yield
    except Exception:
        cur.execute(f"ROLLBACK TO SAVEPOINT {name}")
        raise
    cur.execute(f"RELEASE SAVEPOINT {name}")
