"""Database bootstrap utilities for the Herdbook service.

Exposes engine construction, the unit-of-work transaction boundary and a
migrations runner that applies SQL files from the local migrations
directory. The DB layer does not leak ORM models into route handlers.
"""

from herdbook.db.base import get_engine, read_connection, unit_of_work
from herdbook.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "unit_of_work",
    "read_connection",
    "apply_migrations",
]
