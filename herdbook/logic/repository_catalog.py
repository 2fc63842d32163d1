"""Question catalog repository.

Read-only access to the questionnaire catalog: which questions apply to an
animal type, their localized text and display metadata. The engine never
writes these tables.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import bindparam
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from herdbook.db.base import read_connection
from herdbook.logic.errors import InvalidReferenceError
from herdbook.models.catalog import QuestionCatalogEntry

logger = logging.getLogger(__name__)

_ENTRY_SQL = """
    SELECT cq.id, cq.category_id, cq.subcategory_id, cq.validation_rule_id,
           cq.form_type_id, cq.question_tag, cq.question_unit, cq.sequence_number,
           cq.question, cq.hint, cq.form_type_value, cq.is_date,
           ql.question AS l_question, ql.hint AS l_hint, ql.form_type_value AS l_form_type_value,
           c.name AS category_name, cl.category_language_name,
           s.name AS subcategory_name, sl.subcategory_language_name,
           vr.name AS validation_rule, vr.constant_value,
           ft.name AS form_type, qt.name AS tag_name, qu.name AS unit_name
      FROM animal_questions aq
      JOIN common_questions cq ON cq.id = aq.question_id AND cq.deleted_at IS NULL
      JOIN categories c ON c.id = cq.category_id
      LEFT JOIN category_language cl
             ON cl.category_id = c.id AND cl.language_id = :lang AND cl.deleted_at IS NULL
      LEFT JOIN subcategories s ON s.id = cq.subcategory_id AND s.deleted_at IS NULL
      LEFT JOIN subcategory_language sl
             ON sl.subcategory_id = s.id AND sl.language_id = :lang AND sl.deleted_at IS NULL
      LEFT JOIN question_language ql
             ON ql.question_id = cq.id AND ql.language_id = :lang AND ql.deleted_at IS NULL
      LEFT JOIN validation_rules vr ON vr.id = cq.validation_rule_id
      LEFT JOIN form_types ft ON ft.id = cq.form_type_id
      LEFT JOIN question_tags qt ON qt.id = cq.question_tag
      LEFT JOIN question_units qu ON qu.id = cq.question_unit
     WHERE aq.animal_id = :aid AND aq.deleted_at IS NULL
"""


def _entry_from_row(row) -> QuestionCatalogEntry:  # type: ignore[no-untyped-def]
    m = row._mapping
    return QuestionCatalogEntry(
        id=int(m["id"]),
        category_id=int(m["category_id"]),
        subcategory_id=m["subcategory_id"],
        validation_rule_id=m["validation_rule_id"],
        form_type_id=m["form_type_id"],
        question_tag=m["question_tag"],
        question_unit=m["question_unit"],
        sequence_number=int(m["sequence_number"] or 0),
        master_question=str(m["question"]),
        master_hint=m["hint"],
        master_form_type_value=m["form_type_value"],
        is_date=bool(m["is_date"]),
        localized_question=m["l_question"],
        localized_hint=m["l_hint"],
        localized_form_type_value=m["l_form_type_value"],
        category_name=m["category_language_name"] or m["category_name"],
        subcategory_name=m["subcategory_language_name"] or m["subcategory_name"] or "",
        validation_rule=m["validation_rule"],
        constant_value=m["constant_value"],
        form_type=m["form_type"],
        question_tag_name=m["tag_name"],
        question_unit_name=m["unit_name"],
    )


def _unique(entries: Iterable[QuestionCatalogEntry]) -> List[QuestionCatalogEntry]:
    # Guard against duplicate localized rows multiplying a question.
    seen: set[int] = set()
    out: List[QuestionCatalogEntry] = []
    for e in entries:
        if e.id in seen:
            continue
        seen.add(e.id)
        out.append(e)
    return out


def lookup_applicable_questions(
    animal_id: int,
    category_id: int,
    language_id: int,
    conn: Connection | None = None,
) -> List[QuestionCatalogEntry]:
    """Return every catalog question of a category that applies to an animal type.

    Ordered by catalog sequence number, localized to `language_id` with master
    text as fallback.
    """
    with read_connection(conn) as c:
        rows = c.execute(
            sql_text(_ENTRY_SQL + " AND cq.category_id = :cid ORDER BY cq.sequence_number, cq.id"),
            {"aid": int(animal_id), "cid": int(category_id), "lang": int(language_id)},
        ).fetchall()
    return _unique(_entry_from_row(r) for r in rows)


def lookup_localized_text(
    question_id: int, language_id: int, conn: Connection | None = None
) -> Dict[str, Optional[str]]:
    """Return {question, hint, form_type_value} for one question in one language."""
    with read_connection(conn) as c:
        row = c.execute(
            sql_text(
                """
                SELECT cq.question, cq.hint, cq.form_type_value,
                       ql.question, ql.hint, ql.form_type_value
                  FROM common_questions cq
                  LEFT JOIN question_language ql
                         ON ql.question_id = cq.id AND ql.language_id = :lang AND ql.deleted_at IS NULL
                 WHERE cq.id = :qid AND cq.deleted_at IS NULL
                """
            ),
            {"qid": int(question_id), "lang": int(language_id)},
        ).fetchone()
    if row is None:
        raise InvalidReferenceError(f"unknown question {question_id}", question_id=question_id)
    return {
        "question": row[3] or row[0],
        "hint": row[4] if row[4] is not None else row[1],
        "form_type_value": row[5] if row[5] is not None else row[2],
    }


def animal_exists(conn: Connection, animal_id: int) -> bool:
    row = conn.execute(
        sql_text("SELECT 1 FROM animals WHERE id = :aid AND deleted_at IS NULL"),
        {"aid": int(animal_id)},
    ).fetchone()
    return row is not None


def applicable_category_ids(animal_id: int, conn: Connection | None = None) -> List[int]:
    with read_connection(conn) as c:
        rows = c.execute(
            sql_text(
                """
                SELECT DISTINCT cq.category_id
                  FROM animal_questions aq
                  JOIN common_questions cq ON cq.id = aq.question_id AND cq.deleted_at IS NULL
                 WHERE aq.animal_id = :aid AND aq.deleted_at IS NULL
                 ORDER BY cq.category_id
                """
            ),
            {"aid": int(animal_id)},
        ).fetchall()
    return [int(r[0]) for r in rows]


def questions_by_id(
    conn: Connection, animal_id: int, question_ids: Iterable[int]
) -> Dict[int, QuestionCatalogEntry]:
    """Return the applicable catalog entries for the given ids, keyed by id.

    Ids unknown to the catalog or not applicable to the animal type are
    absent from the result.
    """
    ids = sorted({int(q) for q in question_ids})
    if not ids:
        return {}
    stmt = sql_text(_ENTRY_SQL + " AND cq.id IN :ids").bindparams(bindparam("ids", expanding=True))
    rows = conn.execute(stmt, {"aid": int(animal_id), "lang": 0, "ids": ids}).fetchall()
    return {e.id: e for e in _unique(_entry_from_row(r) for r in rows)}


def question_ids_by_tag(conn: Connection, animal_id: int, tags: Iterable[int]) -> Dict[int, int]:
    """Map each tag to the first applicable question carrying it."""
    wanted = sorted({int(t) for t in tags})
    if not wanted:
        return {}
    stmt = sql_text(
        """
        SELECT cq.question_tag, cq.id
          FROM animal_questions aq
          JOIN common_questions cq ON cq.id = aq.question_id AND cq.deleted_at IS NULL
         WHERE aq.animal_id = :aid AND aq.deleted_at IS NULL AND cq.question_tag IN :tags
         ORDER BY cq.category_id, cq.sequence_number, cq.id
        """
    ).bindparams(bindparam("tags", expanding=True))
    out: Dict[int, int] = {}
    for tag, qid in conn.execute(stmt, {"aid": int(animal_id), "tags": wanted}).fetchall():
        out.setdefault(int(tag), int(qid))
    return out


def catalog_tag_ids(conn: Connection | None = None) -> set[int]:
    with read_connection(conn) as c:
        rows = c.execute(sql_text("SELECT id FROM question_tags WHERE deleted_at IS NULL")).fetchall()
    return {int(r[0]) for r in rows}


__all__ = [
    "lookup_applicable_questions",
    "lookup_localized_text",
    "animal_exists",
    "applicable_category_ids",
    "questions_by_id",
    "question_ids_by_tag",
    "catalog_tag_ids",
]
