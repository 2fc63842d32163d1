"""SQLAlchemy engine and unit-of-work helpers.

The service targets PostgreSQL in production but supports SQLite for local
development and CI. No declarative models are defined here; this module only
manages connection lifecycle and the transaction boundary that every write
of the answer engine runs inside.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from herdbook.config import load_config
from herdbook.logic.errors import HerdbookError

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return load_config().database.dsn


# Module-level cached Engine to ensure a single shared connection pool
_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None


def get_engine(url: str | None = None) -> Engine:
    """Return a singleton SQLAlchemy Engine for the given URL.

    Reuses a module-level Engine so repositories share the same pool.
    For SQLite in-memory URLs, use a StaticPool to keep a single connection
    alive across sessions and threads during tests.
    """
    global _ENGINE, _ENGINE_URL
    resolved_url = url or _db_url()

    if _ENGINE is None or _ENGINE_URL != resolved_url:
        kwargs: dict = {"future": True, "pool_pre_ping": True}
        if resolved_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in resolved_url:
                kwargs["poolclass"] = StaticPool
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(resolved_url, **kwargs)
        _ENGINE_URL = resolved_url

    return _ENGINE


def is_sqlite(conn: Connection) -> bool:
    return (getattr(conn.dialect, "name", "") or "").lower() == "sqlite"


def for_update(conn: Connection) -> str:
    """Row-lock suffix for SELECTs on rows about to be replaced.

    SQLite has no row locks; its writer lock is taken by the instance lock
    upsert that opens every unit of work.
    """
    return "" if is_sqlite(conn) else " FOR UPDATE"


@contextmanager
def unit_of_work() -> Iterator[Connection]:
    """Yield a connection inside one transaction.

    Commits when the block exits normally; any exception rolls back every
    statement issued through the connection and is re-raised.
    """
    eng = get_engine()
    with eng.connect() as conn:
        trans = conn.begin()
        try:
            yield conn
            trans.commit()
        except HerdbookError as exc:
            trans.rollback()
            logger.warning("unit_of_work rolled back kind=%s detail=%s", exc.kind, exc.detail)
            raise
        except Exception:
            trans.rollback()
            logger.error("unit_of_work error; transaction rolled back", exc_info=True)
            raise


@contextmanager
def read_connection(conn: Connection | None = None) -> Iterator[Connection]:
    """Reuse the caller's connection, or open a short-lived one for reads."""
    if conn is not None:
        yield conn
        return
    with get_engine().connect() as own:
        yield own


__all__ = ["get_engine", "is_sqlite", "for_update", "unit_of_work", "read_connection"]
