"""Single source of the current time for the answer engine.

Timestamps are naive UTC. Tests monkeypatch `now` to pin the clock.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return now().date()


def isoformat(value: datetime) -> str:
    """Render a timestamp the way session and audit columns store it."""
    return value.isoformat(timespec="microseconds")


__all__ = ["now", "today", "isoformat"]
