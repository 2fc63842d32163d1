"""Answer service: the operations the HTTP layer calls.

Every write opens one unit of work, validates catalog references before
touching anything, takes the AnimalInstance lock, runs the Session Resolver
and the Derived State Projector, and publishes domain events only after the
transaction commits. Reads never mutate answers; reading the milk category
may claim the one-time Yield History backfill.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.engine import Connection

from herdbook.config import load_config
from herdbook.db.base import read_connection, unit_of_work
from herdbook.logic import clock
from herdbook.logic import repository_answers as answers_repo
from herdbook.logic import repository_catalog as catalog_repo
from herdbook.logic import repository_yield_history as yield_repo
from herdbook.logic import projector, session_resolver
from herdbook.logic.answer_canonical import YES
from herdbook.logic.backfill import ensure_yield_history_backfill
from herdbook.logic.category_view import GroupedView, build_grouped_view
from herdbook.logic.errors import (
    DuplicateActiveRecordError,
    InvalidReferenceError,
    NotFoundError,
)
from herdbook.logic.events import (
    ANIMAL_INSTANCE_RETIRED,
    ANSWERS_SAVED,
    YIELD_HISTORY_APPENDED,
    publish,
)
from herdbook.logic.lactation import days_in_milk, lactation_periods
from herdbook.logic.session_resolver import ReplacePolicy, WriteOutcome
from herdbook.logic.tagged_batch import TaggedBatch
from herdbook.models.answers import (
    AnimalInstance,
    AnswerInput,
    CategoryWritePayload,
    CreateAnimalPayload,
)
from herdbook.models.catalog import QuestionCatalogEntry
from herdbook.models.question_tag import Category, QuestionTag, category_of
from herdbook.models.session import SessionRow
from herdbook.models.views import (
    AnimalNumberEntry,
    BreedingEvent,
    BreedingHistory,
    LactationSummary,
    SessionAnswer,
    SessionHistoryEntry,
    YieldHistoryRecord,
)

logger = logging.getLogger(__name__)


def _validated_entries(
    conn: Connection,
    animal_id: int,
    answers: Sequence[AnswerInput],
    category: Optional[Category] = None,
) -> Dict[int, QuestionCatalogEntry]:
    if not catalog_repo.animal_exists(conn, animal_id):
        raise InvalidReferenceError(f"unknown animal {animal_id}", animal_id=animal_id)
    entries = catalog_repo.questions_by_id(conn, animal_id, [a.question_id for a in answers])
    unknown = sorted({a.question_id for a in answers} - set(entries))
    if unknown:
        raise InvalidReferenceError(
            f"questions not applicable to animal {animal_id}: {unknown}",
            question_ids=unknown,
        )
    if category is not None:
        foreign = sorted(qid for qid, e in entries.items() if e.category_id != int(category))
        if foreign:
            raise InvalidReferenceError(
                f"questions outside category {category.slug}: {foreign}",
                question_ids=foreign,
            )
    return entries


def _publish_write(outcome: WriteOutcome, record: Optional[YieldHistoryRecord]) -> None:
    inst = outcome.instance
    publish(
        ANSWERS_SAVED,
        {
            "user_id": inst.user_id,
            "animal_id": inst.animal_id,
            "animal_number": inst.animal_number,
            "category_id": outcome.category_id,
            "session_id": outcome.session.session_id,
            "superseded": list(outcome.superseded),
        },
    )
    if record is not None:
        publish(
            YIELD_HISTORY_APPENDED,
            {
                "record_id": record.id,
                "date": record.date,
                "source_session_id": record.source_session_id,
            },
        )


def create_animal_instance(payload: CreateAnimalPayload, actor: int) -> List[str]:
    """Register a new AnimalInstance with its first answers.

    Answers are grouped by the catalog category of their question; each
    group becomes one session, all at the same timestamp. Returns the new
    session ids.
    """
    inst = AnimalInstance(int(actor), payload.animal_id, payload.animal_number)
    moment = clock.now()
    results: List[tuple[WriteOutcome, Optional[YieldHistoryRecord]]] = []
    with unit_of_work() as conn:
        entries = _validated_entries(conn, inst.animal_id, payload.answers)
        answers_repo.lock_instance(conn, inst, clock.isoformat(moment))
        if answers_repo.has_active_answers(conn, inst):
            raise DuplicateActiveRecordError(
                f"animal number {inst.animal_number} is already taken",
                animal_id=inst.animal_id,
                animal_number=inst.animal_number,
            )
        grouped: Dict[int, List[AnswerInput]] = {}
        for a in payload.answers:
            grouped.setdefault(entries[a.question_id].category_id, []).append(a)
        for category_id, answers in grouped.items():
            rows = session_resolver.build_rows(answers, entries)
            outcome = session_resolver.write_session(
                conn, inst, category_id, rows, moment, require_date=False
            )
            results.append((outcome, projector.project(conn, outcome, moment)))
    logger.info(
        "animal_instance_created user_id=%s animal_id=%s animal_number=%s sessions=%s",
        inst.user_id,
        inst.animal_id,
        inst.animal_number,
        len(results),
    )
    for outcome, record in results:
        _publish_write(outcome, record)
    return [o.session.session_id for o, _ in results]


def write_category_answers(
    category: Category, params: CategoryWritePayload, actor: int
) -> str:
    """Apply one category write under that category's replace policy.

    Returns the id of the session written.
    """
    inst = AnimalInstance(int(actor), params.animal_id, params.animal_number)
    moment = clock.now()
    with unit_of_work() as conn:
        entries = _validated_entries(conn, inst.animal_id, params.answers, category)
        if session_resolver.policy_for(category) is ReplacePolicy.SUPPLIED_DATE and params.date is None:
            raise InvalidReferenceError(
                f"date is required for category {category.slug}", category_id=int(category)
            )
        rows = session_resolver.build_rows(params.answers, entries)
        answers_repo.lock_instance(conn, inst, clock.isoformat(moment))
        outcome = session_resolver.write_session(
            conn, inst, int(category), rows, moment, params.date
        )
        record = projector.project(conn, outcome, moment)
    _publish_write(outcome, record)
    return outcome.session.session_id


def query_grouped_view(
    actor: int,
    animal_id: int,
    animal_number: str,
    language_id: int,
    category: Optional[Category] = None,
) -> GroupedView:
    """Nested category/subcategory/question view; a scaffold when nothing is answered."""
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    if category is Category.MILK and load_config().backfill.enabled:
        ensure_yield_history_backfill(inst.user_id)
    with read_connection() as conn:
        if not catalog_repo.animal_exists(conn, inst.animal_id):
            raise InvalidReferenceError(f"unknown animal {animal_id}", animal_id=animal_id)
        if category is not None:
            category_ids: List[int] = [int(category)]
        else:
            category_ids = catalog_repo.applicable_category_ids(inst.animal_id, conn)
        return build_grouped_view(conn, inst, language_id, category_ids)


def _require_instance(conn: Connection, inst: AnimalInstance) -> None:
    if not answers_repo.has_active_answers(conn, inst):
        raise NotFoundError(
            f"no records for animal number {inst.animal_number}",
            animal_id=inst.animal_id,
            animal_number=inst.animal_number,
        )


def query_yield_history(animal_id: int, animal_number: str, actor: int) -> List[YieldHistoryRecord]:
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    with read_connection() as conn:
        _require_instance(conn, inst)
        return yield_repo.list_records(conn, inst)


def _session_entry(conn: Connection, session: SessionRow) -> SessionHistoryEntry:
    category = category_of(session.category_id)
    return SessionHistoryEntry(
        session_id=session.session_id,
        category=category.slug if category else str(session.category_id),
        session_timestamp=session.session_timestamp,
        replace_key=session.replace_key,
        answers=[
            SessionAnswer(
                question_id=r.question_id,
                question_tag=r.question_tag,
                answer=r.answer,
                canonical_value=r.canonical_value,
                logic_value=r.logic_value,
            )
            for r in answers_repo.session_answers(conn, session.session_id)
        ],
    )


def query_session_history(
    actor: int, animal_id: int, animal_number: str, category: Category
) -> List[SessionHistoryEntry]:
    """Every active session of one category, newest first."""
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    with read_connection() as conn:
        _require_instance(conn, inst)
        sessions = answers_repo.active_sessions(conn, inst, int(category))
        return [_session_entry(conn, s) for s in sessions]


def _events(
    conn: Connection,
    inst: AnimalInstance,
    category: Category,
    value_tag: Optional[QuestionTag],
    date_tags: Sequence[QuestionTag],
) -> List[BreedingEvent]:
    out: List[BreedingEvent] = []
    for session in answers_repo.active_sessions(conn, inst, int(category)):
        batch = TaggedBatch(answers_repo.session_answers(conn, session.session_id))
        event_date = next((d for d in (batch.date_of(t) for t in date_tags) if d), None)
        value_row = batch.get(value_tag) if value_tag is not None else None
        out.append(
            BreedingEvent(
                session_id=session.session_id,
                date=event_date or session.session_day,
                value=value_row.answer if value_row is not None else None,
            )
        )
    out.sort(key=lambda e: e.date or "", reverse=True)
    return out


def query_breeding_history(actor: int, animal_id: int, animal_number: str) -> BreedingHistory:
    """Heat events, deliveries and pregnancy detections, newest first."""
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    with read_connection() as conn:
        _require_instance(conn, inst)
        return BreedingHistory(
            heat_events=_events(conn, inst, Category.HEAT_EVENT, None, [QuestionTag.HEAT_DATE]),
            deliveries=_events(
                conn,
                inst,
                Category.DELIVERY,
                QuestionTag.DELIVERY_TYPE,
                [QuestionTag.DELIVERY_EVENT_DATE, QuestionTag.DELIVERY_DATE],
            ),
            pregnancy_detections=_events(
                conn,
                inst,
                Category.PREGNANCY_DETECTION,
                QuestionTag.PREGNANCY_DETECTED,
                [QuestionTag.PREGNANCY_DETECTION_DATE],
            ),
        )


def query_lactation_summary(actor: int, animal_id: int, animal_number: str) -> LactationSummary:
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    with read_connection() as conn:
        _require_instance(conn, inst)
        records = yield_repo.list_records(conn, inst)
        deliveries = answers_repo.active_sessions(conn, inst, int(Category.DELIVERY))
        positives = len(
            answers_repo.sessions_with_tagged_value(
                conn,
                inst,
                Category.PREGNANCY_DETECTION,
                QuestionTag.PREGNANCY_DETECTED,
                YES,
            )
        )
    periods = lactation_periods(records)
    return LactationSummary(
        periods=periods,
        is_lactating=bool(periods) and periods[-1].end is None,
        days_in_milk=days_in_milk(periods, clock.today()),
        lactation_count=len(periods),
        delivery_count=len(deliveries),
        positive_detection_count=positives,
    )


def list_animal_numbers(actor: int, search: Optional[str] = None) -> List[AnimalNumberEntry]:
    with read_connection() as conn:
        rows = answers_repo.list_animal_numbers(conn, int(actor), search)
    return [
        AnimalNumberEntry(animal_id=aid, animal_number=num, last_recorded_at=ts)
        for aid, num, ts in rows
    ]


def retire_animal_instance(actor: int, animal_id: int, animal_number: str) -> int:
    """Retire every active session of an instance so its number can be reused.

    The instance's Yield History goes with it. Returns the number of answer
    rows retired.
    """
    inst = AnimalInstance(int(actor), int(animal_id), animal_number)
    moment = clock.now()
    with unit_of_work() as conn:
        answers_repo.lock_instance(conn, inst, clock.isoformat(moment))
        _require_instance(conn, inst)
        retired = answers_repo.retire_instance(conn, inst, clock.isoformat(moment))
        dropped = yield_repo.delete_for_instance(conn, inst)
    logger.info(
        "animal_instance_retired animal_id=%s animal_number=%s answers=%s yield_rows=%s",
        inst.animal_id,
        inst.animal_number,
        retired,
        dropped,
    )
    publish(
        ANIMAL_INSTANCE_RETIRED,
        {"user_id": inst.user_id, "animal_id": inst.animal_id, "animal_number": inst.animal_number},
    )
    return retired


__all__ = [
    "create_animal_instance",
    "write_category_answers",
    "query_grouped_view",
    "query_yield_history",
    "query_session_history",
    "query_breeding_history",
    "query_lactation_summary",
    "list_animal_numbers",
    "retire_animal_instance",
    "ensure_yield_history_backfill",
]
