"""Answer Store data access.

Sessions and their answer rows live in two tables. Every function takes the
caller's connection so writes participate in the unit of work opened by the
answer service; nothing here commits.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import bindparam
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from herdbook.db.base import for_update
from herdbook.logic.errors import ConcurrentWriteError
from herdbook.models.answers import AnimalInstance
from herdbook.models.session import AnswerRow, SessionRow

logger = logging.getLogger(__name__)

_INSTANCE_WHERE = "s.user_id = :uid AND s.animal_id = :aid AND s.animal_number = :num"
_SESSION_COLUMNS = (
    "s.session_id, s.category_id, s.session_timestamp, s.session_day, s.replace_key, s.status"
)


def _session(row) -> SessionRow:  # type: ignore[no-untyped-def]
    return SessionRow(
        session_id=str(row[0]),
        category_id=int(row[1]),
        session_timestamp=str(row[2]),
        session_day=str(row[3]),
        replace_key=str(row[4]),
        status=int(row[5]),
    )


def lock_instance(conn: Connection, inst: AnimalInstance, touched_at: str) -> None:
    """Serialize writers on one AnimalInstance for the rest of the transaction."""
    conn.execute(
        sql_text(
            """
            INSERT INTO animal_instance_locks (user_id, animal_id, animal_number, touched_at)
            VALUES (:uid, :aid, :num, :at)
            ON CONFLICT (user_id, animal_id, animal_number)
            DO UPDATE SET touched_at = excluded.touched_at
            """
        ),
        {**inst.params(), "at": touched_at},
    )


def has_active_answers(conn: Connection, inst: AnimalInstance) -> bool:
    row = conn.execute(
        sql_text(
            """
            SELECT 1 FROM animal_question_answers
             WHERE user_id = :uid AND animal_id = :aid AND animal_number = :num
               AND status <> 1 AND deleted_at IS NULL
             LIMIT 1
            """
        ),
        inst.params(),
    ).fetchone()
    return row is not None


def insert_session(
    conn: Connection,
    inst: AnimalInstance,
    session_id: str,
    category_id: int,
    session_timestamp: str,
    replace_key: str,
    created_at: str,
    origin: str = "user",
    derived_from: Optional[str] = None,
) -> None:
    try:
        conn.execute(
            sql_text(
                """
                INSERT INTO answer_sessions (session_id, user_id, animal_id, animal_number,
                    category_id, session_timestamp, session_day, replace_key, status, origin,
                    derived_from_session_id, created_at)
                VALUES (:sid, :uid, :aid, :num, :cid, :ts, :day, :rkey, 0, :origin,
                    :derived, :created)
                """
            ),
            {
                **inst.params(),
                "sid": session_id,
                "cid": int(category_id),
                "ts": session_timestamp,
                "day": session_timestamp[:10],
                "rkey": replace_key,
                "origin": origin,
                "derived": derived_from,
                "created": created_at,
            },
        )
    except IntegrityError as exc:
        logger.warning(
            "session_insert_conflict category=%s replace_key=%s animal_number=%s",
            category_id,
            replace_key,
            inst.animal_number,
        )
        raise ConcurrentWriteError(
            "another write already holds this replace key",
            category_id=category_id,
            replace_key=replace_key,
        ) from exc


def insert_answers(
    conn: Connection,
    inst: AnimalInstance,
    session_id: str,
    session_timestamp: str,
    rows: Sequence[AnswerRow],
) -> None:
    if not rows:
        return
    conn.execute(
        sql_text(
            """
            INSERT INTO animal_question_answers (session_id, user_id, animal_id, animal_number,
                question_id, answer, canonical_value, logic_value, session_timestamp, status)
            VALUES (:sid, :uid, :aid, :num, :qid, :answer, :canonical, :logic, :ts, 0)
            """
        ),
        [
            {
                **inst.params(),
                "sid": session_id,
                "qid": r.question_id,
                "answer": r.answer,
                "canonical": r.canonical_value,
                "logic": r.logic_value,
                "ts": session_timestamp,
            }
            for r in rows
        ],
    )


def delete_sessions(conn: Connection, session_ids: Iterable[str]) -> int:
    """Hard-delete whole sessions; returns the number of answer rows removed."""
    ids = sorted(set(session_ids))
    if not ids:
        return 0
    answers = conn.execute(
        sql_text("DELETE FROM animal_question_answers WHERE session_id IN :ids").bindparams(
            bindparam("ids", expanding=True)
        ),
        {"ids": ids},
    )
    conn.execute(
        sql_text("DELETE FROM answer_sessions WHERE session_id IN :ids").bindparams(
            bindparam("ids", expanding=True)
        ),
        {"ids": ids},
    )
    return int(answers.rowcount or 0)


def active_sessions(
    conn: Connection,
    inst: AnimalInstance,
    category_id: int,
    *,
    replace_key: str | None = None,
    session_timestamp: str | None = None,
    lock: bool = False,
) -> List[SessionRow]:
    """Active sessions of a category, newest first, optionally filtered."""
    clauses = [_INSTANCE_WHERE, "s.category_id = :cid", "s.status = 0"]
    params = {**inst.params(), "cid": int(category_id)}
    if replace_key is not None:
        clauses.append("s.replace_key = :rkey")
        params["rkey"] = replace_key
    if session_timestamp is not None:
        clauses.append("s.session_timestamp = :ts")
        params["ts"] = session_timestamp
    sql = (
        f"SELECT {_SESSION_COLUMNS} FROM answer_sessions s WHERE {' AND '.join(clauses)}"
        " ORDER BY s.session_timestamp DESC, s.created_at DESC"
    )
    if lock:
        sql += for_update(conn)
    return [_session(r) for r in conn.execute(sql_text(sql), params).fetchall()]


def latest_session(
    conn: Connection, inst: AnimalInstance, category_id: int, *, by_replace_key: bool = False
) -> Optional[SessionRow]:
    """The active session readers treat as current for a category."""
    order = "s.session_timestamp DESC, s.created_at DESC"
    if by_replace_key:
        order = "s.replace_key DESC, " + order
    row = conn.execute(
        sql_text(
            f"SELECT {_SESSION_COLUMNS} FROM answer_sessions s"
            f" WHERE {_INSTANCE_WHERE} AND s.category_id = :cid AND s.status = 0"
            f" ORDER BY {order} LIMIT 1"
        ),
        {**inst.params(), "cid": int(category_id)},
    ).fetchone()
    return _session(row) if row else None


def get_session(conn: Connection, session_id: str) -> Optional[SessionRow]:
    row = conn.execute(
        sql_text(f"SELECT {_SESSION_COLUMNS} FROM answer_sessions s WHERE s.session_id = :sid"),
        {"sid": session_id},
    ).fetchone()
    return _session(row) if row else None


def latest_tagged_answer(
    conn: Connection,
    inst: AnimalInstance,
    tags: Sequence[int],
    *,
    category_id: int | None = None,
) -> Optional[tuple[str, AnswerRow]]:
    """Most recent active answer to a question carrying one of `tags`.

    Looks across every category unless `category_id` is given. Returns the
    owning session id and the row.
    """
    sql = (
        "SELECT a.session_id, a.question_id, a.answer, a.canonical_value, a.logic_value, cq.question_tag"
        " FROM animal_question_answers a"
        " JOIN answer_sessions s ON s.session_id = a.session_id"
        " JOIN common_questions cq ON cq.id = a.question_id"
        f" WHERE {_INSTANCE_WHERE} AND s.status = 0 AND a.status = 0 AND a.deleted_at IS NULL"
        " AND cq.question_tag IN :tags"
    )
    params = {**inst.params(), "tags": [int(t) for t in tags]}
    if category_id is not None:
        sql += " AND s.category_id = :cid"
        params["cid"] = int(category_id)
    sql += " ORDER BY s.session_timestamp DESC, s.created_at DESC, a.id DESC LIMIT 1"
    row = conn.execute(
        sql_text(sql).bindparams(bindparam("tags", expanding=True)), params
    ).fetchone()
    if row is None:
        return None
    return str(row[0]), AnswerRow(
        question_id=int(row[1]),
        answer=str(row[2]),
        canonical_value=row[3],
        logic_value=row[4],
        question_tag=row[5],
    )


def sessions_with_tagged_value(
    conn: Connection, inst: AnimalInstance, category_id: int, tag: int, canonical_value: str
) -> List[str]:
    """Active sessions of a category holding `canonical_value` for a tagged question."""
    rows = conn.execute(
        sql_text(
            "SELECT DISTINCT s.session_id FROM answer_sessions s"
            " JOIN animal_question_answers a ON a.session_id = s.session_id"
            " JOIN common_questions cq ON cq.id = a.question_id"
            f" WHERE {_INSTANCE_WHERE} AND s.category_id = :cid AND s.status = 0"
            " AND cq.question_tag = :tag AND a.canonical_value = :val"
        ),
        {**inst.params(), "cid": int(category_id), "tag": int(tag), "val": canonical_value},
    ).fetchall()
    return [str(r[0]) for r in rows]


def sessions_derived_from(conn: Connection, session_ids: Iterable[str]) -> List[str]:
    """Active sessions the engine derived from any of `session_ids`."""
    ids = sorted(set(session_ids))
    if not ids:
        return []
    rows = conn.execute(
        sql_text(
            "SELECT session_id FROM answer_sessions"
            " WHERE derived_from_session_id IN :ids AND status = 0"
            " ORDER BY session_timestamp, created_at"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    ).fetchall()
    return [str(r[0]) for r in rows]


def session_answers(conn: Connection, session_id: str) -> List[AnswerRow]:
    rows = conn.execute(
        sql_text(
            """
            SELECT a.question_id, a.answer, a.canonical_value, a.logic_value, cq.question_tag
              FROM animal_question_answers a
              LEFT JOIN common_questions cq ON cq.id = a.question_id
             WHERE a.session_id = :sid AND a.deleted_at IS NULL
             ORDER BY a.id
            """
        ),
        {"sid": session_id},
    ).fetchall()
    return [
        AnswerRow(
            question_id=int(r[0]),
            answer=str(r[1]),
            canonical_value=r[2],
            logic_value=r[3],
            question_tag=r[4],
        )
        for r in rows
    ]


def list_user_sessions(conn: Connection, user_id: int) -> List[tuple[AnimalInstance, SessionRow]]:
    """Every active session a user wrote, oldest first.

    Sessions the engine derived on its own (carried-forward basic details)
    are excluded.
    """
    rows = conn.execute(
        sql_text(
            f"SELECT s.animal_id, s.animal_number, {_SESSION_COLUMNS} FROM answer_sessions s"
            " WHERE s.user_id = :uid AND s.status = 0 AND s.origin = 'user'"
            " ORDER BY s.session_timestamp, s.created_at"
        ),
        {"uid": int(user_id)},
    ).fetchall()
    return [
        (AnimalInstance(int(user_id), int(r[0]), str(r[1])), _session(tuple(r)[2:]))
        for r in rows
    ]


def retire_instance(conn: Connection, inst: AnimalInstance, retired_at: str) -> int:
    """Mark every active session and answer of an instance as retired."""
    result = conn.execute(
        sql_text(
            """
            UPDATE animal_question_answers SET status = 1, deleted_at = :at
             WHERE user_id = :uid AND animal_id = :aid AND animal_number = :num AND status = 0
            """
        ),
        {**inst.params(), "at": retired_at},
    )
    conn.execute(
        sql_text(
            """
            UPDATE answer_sessions SET status = 1
             WHERE user_id = :uid AND animal_id = :aid AND animal_number = :num AND status = 0
            """
        ),
        inst.params(),
    )
    return int(result.rowcount or 0)


def list_animal_numbers(
    conn: Connection, user_id: int, search: str | None = None
) -> List[tuple[int, str, str]]:
    """(animal_id, animal_number, last session timestamp) of active instances."""
    sql = (
        "SELECT s.animal_id, s.animal_number, MAX(s.session_timestamp) FROM answer_sessions s"
        " WHERE s.user_id = :uid AND s.status = 0"
    )
    params: dict = {"uid": int(user_id)}
    if search:
        sql += " AND LOWER(s.animal_number) LIKE :pattern"
        params["pattern"] = f"%{search.lower()}%"
    sql += " GROUP BY s.animal_id, s.animal_number ORDER BY s.animal_number, s.animal_id"
    return [(int(r[0]), str(r[1]), str(r[2])) for r in conn.execute(sql_text(sql), params).fetchall()]


__all__ = [
    "lock_instance",
    "has_active_answers",
    "insert_session",
    "insert_answers",
    "delete_sessions",
    "active_sessions",
    "latest_session",
    "get_session",
    "latest_tagged_answer",
    "sessions_with_tagged_value",
    "sessions_derived_from",
    "session_answers",
    "list_user_sessions",
    "retire_instance",
    "list_animal_numbers",
]
