"""Yield History data access.

Rows are written only by the projector and the one-time backfill, always
through the caller's connection.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import bindparam
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from herdbook.models.answers import AnimalInstance
from herdbook.models.views import YieldHistoryRecord

logger = logging.getLogger(__name__)

_COLUMNS = "id, date, pregnancy_status, lactating_status, source_session_id, created_at"
_INSTANCE_WHERE = "user_id = :uid AND animal_id = :aid AND animal_number = :num"


def _record(row) -> YieldHistoryRecord:  # type: ignore[no-untyped-def]
    return YieldHistoryRecord(
        id=int(row[0]),
        date=row[1],
        pregnancy_status=row[2],
        lactating_status=row[3],
        source_session_id=row[4],
        created_at=str(row[5]),
    )


def insert_record(
    conn: Connection,
    inst: AnimalInstance,
    *,
    date: str,
    pregnancy_status: Optional[str],
    lactating_status: Optional[str],
    source_session_id: str,
    created_at: str,
) -> int:
    row = conn.execute(
        sql_text(
            """
            INSERT INTO animal_lactation_yield_history (user_id, animal_id, animal_number, date,
                pregnancy_status, lactating_status, source_session_id, created_at)
            VALUES (:uid, :aid, :num, :date, :preg, :lact, :sid, :created)
            RETURNING id
            """
        ),
        {
            **inst.params(),
            "date": date,
            "preg": pregnancy_status,
            "lact": lactating_status,
            "sid": source_session_id,
            "created": created_at,
        },
    ).fetchone()
    return int(row[0])


def delete_by_sources(conn: Connection, session_ids: Iterable[str]) -> int:
    ids = sorted(set(session_ids))
    if not ids:
        return 0
    result = conn.execute(
        sql_text(
            "DELETE FROM animal_lactation_yield_history WHERE source_session_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    )
    return int(result.rowcount or 0)


def delete_for_instance(conn: Connection, inst: AnimalInstance) -> int:
    result = conn.execute(
        sql_text(f"DELETE FROM animal_lactation_yield_history WHERE {_INSTANCE_WHERE}"),
        inst.params(),
    )
    return int(result.rowcount or 0)


def repoint_sources(conn: Connection, old_session_ids: Iterable[str], new_session_id: str) -> int:
    """Move rows derived from superseded sessions onto their replacement."""
    ids = sorted(set(old_session_ids))
    if not ids:
        return 0
    result = conn.execute(
        sql_text(
            "UPDATE animal_lactation_yield_history SET source_session_id = :new"
            " WHERE source_session_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids, "new": new_session_id},
    )
    return int(result.rowcount or 0)


def records_for_source(conn: Connection, session_id: str) -> List[YieldHistoryRecord]:
    rows = conn.execute(
        sql_text(
            f"SELECT {_COLUMNS} FROM animal_lactation_yield_history"
            " WHERE source_session_id = :sid ORDER BY id"
        ),
        {"sid": session_id},
    ).fetchall()
    return [_record(r) for r in rows]


def records_on_date(conn: Connection, inst: AnimalInstance, date: str) -> List[YieldHistoryRecord]:
    rows = conn.execute(
        sql_text(
            f"SELECT {_COLUMNS} FROM animal_lactation_yield_history"
            f" WHERE {_INSTANCE_WHERE} AND date = :date ORDER BY id"
        ),
        {**inst.params(), "date": date},
    ).fetchall()
    return [_record(r) for r in rows]


def list_records(conn: Connection, inst: AnimalInstance) -> List[YieldHistoryRecord]:
    """The instance timeline in event-date order."""
    rows = conn.execute(
        sql_text(
            f"SELECT {_COLUMNS} FROM animal_lactation_yield_history"
            f" WHERE {_INSTANCE_WHERE} ORDER BY date, id"
        ),
        inst.params(),
    ).fetchall()
    return [_record(r) for r in rows]


def projected_sources(conn: Connection, user_id: int) -> set[str]:
    rows = conn.execute(
        sql_text(
            "SELECT DISTINCT source_session_id FROM animal_lactation_yield_history"
            " WHERE user_id = :uid AND source_session_id IS NOT NULL"
        ),
        {"uid": int(user_id)},
    ).fetchall()
    return {str(r[0]) for r in rows}


def claim_backfill(conn: Connection, user_id: int, claimed_at: str) -> bool:
    """Atomically claim the one-time backfill; True only for the first claimant."""
    result = conn.execute(
        sql_text(
            """
            INSERT INTO yield_history_backfill (user_id, claimed_at, rows_written)
            VALUES (:uid, :at, 0)
            ON CONFLICT (user_id) DO NOTHING
            """
        ),
        {"uid": int(user_id), "at": claimed_at},
    )
    return int(result.rowcount or 0) == 1


def record_backfill_rows(conn: Connection, user_id: int, rows_written: int) -> None:
    conn.execute(
        sql_text("UPDATE yield_history_backfill SET rows_written = :n WHERE user_id = :uid"),
        {"uid": int(user_id), "n": int(rows_written)},
    )


__all__ = [
    "insert_record",
    "delete_by_sources",
    "delete_for_instance",
    "repoint_sources",
    "records_for_source",
    "records_on_date",
    "list_records",
    "projected_sources",
    "claim_backfill",
    "record_backfill_rows",
]
