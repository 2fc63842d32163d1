"""Category View Builder.

Assemble the nested `category -> subcategory -> question[]` view for one
AnimalInstance in one language. Every applicable catalog question appears;
questions the active session does not answer carry `answer = None`. The
builder only reads.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.engine import Connection

from herdbook.logic import repository_answers as answers_repo
from herdbook.logic import repository_catalog as catalog_repo
from herdbook.models.answers import AnimalInstance
from herdbook.models.catalog import QuestionCatalogEntry
from herdbook.models.question_tag import Category
from herdbook.models.session import AnswerRow, SessionRow
from herdbook.models.views import QuestionView

GroupedView = Dict[str, Dict[str, List[Dict[str, Any]]]]


def active_session(
    conn: Connection, inst: AnimalInstance, category_id: int
) -> Optional[SessionRow]:
    """Latest session of a category; heat events order by heat date first."""
    return answers_repo.latest_session(
        conn, inst, category_id, by_replace_key=category_id == Category.HEAT_EVENT
    )


def question_view(
    entry: QuestionCatalogEntry, row: Optional[AnswerRow], session: Optional[SessionRow]
) -> QuestionView:
    return QuestionView(
        question_id=entry.id,
        question=entry.question,
        hint=entry.hint,
        form_type=entry.form_type,
        form_type_value=entry.form_type_value,
        master_question=entry.master_question,
        master_hint=entry.master_hint,
        master_form_type_value=entry.master_form_type_value,
        validation_rule=entry.validation_rule,
        constant_value=entry.constant_value,
        question_tag=entry.question_tag,
        question_tag_name=entry.question_tag_name,
        question_unit=entry.question_unit_name,
        sequence_number=entry.sequence_number,
        is_date=entry.is_date,
        answer=row.answer if row is not None else None,
        answer_date=session.session_day if row is not None and session is not None else None,
    )


def build_grouped_view(
    conn: Connection,
    inst: AnimalInstance,
    language_id: int,
    category_ids: Iterable[int],
) -> GroupedView:
    view: GroupedView = {}
    for category_id in category_ids:
        entries = catalog_repo.lookup_applicable_questions(
            inst.animal_id, category_id, language_id, conn
        )
        if not entries:
            continue
        session = active_session(conn, inst, category_id)
        answers = (
            {r.question_id: r for r in answers_repo.session_answers(conn, session.session_id)}
            if session is not None
            else {}
        )
        for entry in entries:
            group = view.setdefault(entry.category_name, {}).setdefault(entry.subcategory_name, [])
            group.append(question_view(entry, answers.get(entry.id), session).model_dump())
    return view


__all__ = ["GroupedView", "active_session", "question_view", "build_grouped_view"]
