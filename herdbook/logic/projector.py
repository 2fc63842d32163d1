"""Derived State Projector.

Keeps the Yield History timeline aligned with the latest reproductive and
lactation answers. Runs inside the unit of work of the write it projects:

1. rows derived from sessions the resolver superseded are deleted,
2. a positive pregnancy detection carries the latest basic details forward
   to now() with the confirmed sex, pregnancy and lactation values; a
   detection that replaces one which had carried basic details forward
   re-derives them from its own result,
3. one row is appended for the written session when it answers any
   projected tag, dated by the first event-date tag it carries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.engine import Connection

from herdbook.logic import clock
from herdbook.logic import repository_answers as answers_repo
from herdbook.logic import repository_yield_history as yield_repo
from herdbook.logic import session_resolver
from herdbook.logic.answer_canonical import DISPLAY
from herdbook.logic.errors import InconsistentStateError
from herdbook.logic.session_resolver import WriteOutcome
from herdbook.logic.tagged_batch import TaggedBatch
from herdbook.models.question_tag import Category, QuestionTag
from herdbook.models.session import AnswerRow
from herdbook.models.views import YieldHistoryRecord

logger = logging.getLogger(__name__)

_CARRIED_TAGS = (QuestionTag.SEX, QuestionTag.PREGNANCY_STATE, QuestionTag.LACTATING)


def _check_detection_date(
    conn: Connection, outcome: WriteOutcome, event_date: str
) -> None:
    for record in yield_repo.records_on_date(conn, outcome.instance, event_date):
        if not record.source_session_id or record.source_session_id == outcome.session.session_id:
            continue
        source = answers_repo.get_session(conn, record.source_session_id)
        if (
            source is not None
            and source.status == 0
            and source.category_id == Category.PREGNANCY_DETECTION
        ):
            raise InconsistentStateError(
                "another active pregnancy detection already owns this event date",
                event_date=event_date,
                record_id=record.id,
            )


def append_record(
    conn: Connection, outcome: WriteOutcome, moment: datetime
) -> Optional[YieldHistoryRecord]:
    """Append the timeline row for one session; None when it carries no projected tag."""
    batch = TaggedBatch(outcome.rows)
    if not batch.is_projected:
        return None
    event_date = batch.event_date(outcome.session.session_day)
    if outcome.category_id == Category.PREGNANCY_DETECTION:
        _check_detection_date(conn, outcome, event_date)
    if yield_repo.records_for_source(conn, outcome.session.session_id):
        raise InconsistentStateError(
            "session already projected",
            session_id=outcome.session.session_id,
        )
    created_at = clock.isoformat(moment)
    record_id = yield_repo.insert_record(
        conn,
        outcome.instance,
        date=event_date,
        pregnancy_status=batch.pregnancy_status,
        lactating_status=batch.lactating_status,
        source_session_id=outcome.session.session_id,
        created_at=created_at,
    )
    logger.info(
        "yield_history_appended record_id=%s date=%s session_id=%s",
        record_id,
        event_date,
        outcome.session.session_id,
    )
    return YieldHistoryRecord(
        id=record_id,
        date=event_date,
        pregnancy_status=batch.pregnancy_status,
        lactating_status=batch.lactating_status,
        source_session_id=outcome.session.session_id,
        created_at=created_at,
    )


def _pregnancy_overrides(batch: TaggedBatch) -> Dict[QuestionTag, AnswerRow]:
    """Basic-detail values a detection implies; empty when it carries no result."""
    if batch.is_positive_detection:
        return {t: batch.get(t) for t in _CARRIED_TAGS if batch.get(t) is not None}
    detected = batch.get(QuestionTag.PREGNANCY_DETECTED)
    if detected is None:
        return {}
    return {
        QuestionTag.PREGNANCY_STATE: AnswerRow(
            question_id=detected.question_id,
            answer=DISPLAY.get(detected.canonical_value or "", detected.answer),
            canonical_value=detected.canonical_value,
            question_tag=int(QuestionTag.PREGNANCY_STATE),
        )
    }


def project(
    conn: Connection, outcome: WriteOutcome, moment: datetime
) -> Optional[YieldHistoryRecord]:
    """Reconcile the Yield History with one resolved write."""
    removed = yield_repo.delete_by_sources(conn, outcome.superseded)
    if removed:
        logger.info(
            "yield_history_superseded rows=%s session_id=%s", removed, outcome.session.session_id
        )

    if outcome.category_id == Category.PREGNANCY_DETECTION:
        batch = TaggedBatch(outcome.rows)
        # Basic details carried from a detection this write replaces are re-derived.
        stale = answers_repo.sessions_derived_from(conn, outcome.superseded)
        overrides = _pregnancy_overrides(batch)
        if batch.is_positive_detection or (stale and overrides):
            carried = session_resolver.carry_forward(
                conn,
                outcome.instance,
                Category.BASIC,
                overrides,
                moment,
                derived_from=outcome.session.session_id,
                replaces=stale,
            )
            if carried is not None and carried.superseded:
                yield_repo.repoint_sources(conn, carried.superseded, carried.session.session_id)

    return append_record(conn, outcome, moment)


__all__ = ["project", "append_record"]
