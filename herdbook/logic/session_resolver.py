"""Session Resolver.

Decides, for an incoming write to one category of one AnimalInstance,
which active sessions it supersedes, then deletes those and inserts the new
session. Each category has a replace-key policy:

- calendar day of now() for basic, birth, delivery and pregnancy detection,
- the caller-supplied date for breeding, milk and health,
- the heat-date answer value for heat events.

Callers must hold the instance lock (see `repository_answers.lock_instance`)
and run everything inside one unit of work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection

from herdbook.logic import clock
from herdbook.logic import repository_answers as answers_repo
from herdbook.logic import repository_catalog as catalog_repo
from herdbook.logic import repository_yield_history as yield_repo
from herdbook.logic.answer_canonical import (
    DISPLAY,
    FEMALE,
    NO,
    YES,
    canonicalize_answer,
    logic_value_for,
)
from herdbook.logic.errors import InvalidReferenceError
from herdbook.logic.tagged_batch import TaggedBatch
from herdbook.models.answers import AnimalInstance, AnswerInput
from herdbook.models.catalog import QuestionCatalogEntry
from herdbook.models.question_tag import LACTATION_TAGS, Category, QuestionTag, category_of
from herdbook.models.session import AnswerRow, SessionRow

logger = logging.getLogger(__name__)


class ReplacePolicy(str, Enum):
    CALENDAR_DAY = "calendar_day"
    SUPPLIED_DATE = "supplied_date"
    HEAT_DATE = "heat_date"


_POLICIES: Dict[Category, ReplacePolicy] = {
    Category.BASIC: ReplacePolicy.CALENDAR_DAY,
    Category.BIRTH: ReplacePolicy.CALENDAR_DAY,
    Category.BREEDING: ReplacePolicy.SUPPLIED_DATE,
    Category.MILK: ReplacePolicy.SUPPLIED_DATE,
    Category.HEALTH: ReplacePolicy.SUPPLIED_DATE,
    Category.HEAT_EVENT: ReplacePolicy.HEAT_DATE,
    Category.DELIVERY: ReplacePolicy.CALENDAR_DAY,
    Category.PREGNANCY_DETECTION: ReplacePolicy.CALENDAR_DAY,
}


def policy_for(category_id: int) -> ReplacePolicy:
    category = category_of(category_id)
    if category is None:
        return ReplacePolicy.CALENDAR_DAY
    return _POLICIES[category]


@dataclass
class WriteOutcome:
    instance: AnimalInstance
    category_id: int
    session: SessionRow
    rows: List[AnswerRow]
    superseded: List[str] = field(default_factory=list)
    companions: List[AnswerRow] = field(default_factory=list)


def build_rows(
    answers: Sequence[AnswerInput], entries: Mapping[int, QuestionCatalogEntry]
) -> List[AnswerRow]:
    """Normalize submitted answers; a repeated question keeps its last answer."""
    by_question: Dict[int, AnswerRow] = {}
    for a in answers:
        entry = entries[a.question_id]
        by_question[a.question_id] = AnswerRow(
            question_id=a.question_id,
            answer=a.answer,
            canonical_value=canonicalize_answer(a.answer),
            logic_value=logic_value_for(a.answer),
            question_tag=entry.question_tag,
        )
    return list(by_question.values())


def session_key(
    category_id: int,
    batch: TaggedBatch,
    moment: datetime,
    supplied_date: Optional[date] = None,
    *,
    require_date: bool = True,
) -> Tuple[datetime, str]:
    """Return (session timestamp, replace key) for a write."""
    policy = policy_for(category_id)
    if policy is ReplacePolicy.SUPPLIED_DATE:
        if supplied_date is not None:
            return datetime.combine(supplied_date, time.min), supplied_date.isoformat()
        if require_date:
            raise InvalidReferenceError(
                f"date is required for category {category_id}", category_id=category_id
            )
    if policy is ReplacePolicy.HEAT_DATE:
        heat = batch.get(QuestionTag.HEAT_DATE)
        if heat is not None and heat.canonical_value:
            return moment, heat.canonical_value
        # No heat date: the write is its own event.
        return moment, clock.isoformat(moment)
    return moment, moment.date().isoformat()


def _detections_on_event_date(
    conn: Connection, inst: AnimalInstance, batch: TaggedBatch, fallback_day: str
) -> List[str]:
    found: List[str] = []
    detection_date = batch.date_of(QuestionTag.PREGNANCY_DETECTION_DATE)
    if detection_date:
        found += answers_repo.sessions_with_tagged_value(
            conn,
            inst,
            Category.PREGNANCY_DETECTION,
            QuestionTag.PREGNANCY_DETECTION_DATE,
            detection_date,
        )
    for record in yield_repo.records_on_date(conn, inst, batch.event_date(fallback_day)):
        if not record.source_session_id:
            continue
        source = answers_repo.get_session(conn, record.source_session_id)
        if (
            source is not None
            and source.status == 0
            and source.category_id == Category.PREGNANCY_DETECTION
        ):
            found.append(source.session_id)
    return found


def superseded_sessions(
    conn: Connection,
    inst: AnimalInstance,
    category_id: int,
    batch: TaggedBatch,
    session_timestamp: str,
    replace_key: str,
) -> List[str]:
    """Active sessions the incoming write replaces, in discovery order."""
    found: List[str] = []
    if policy_for(category_id) is ReplacePolicy.HEAT_DATE:
        same_instant = answers_repo.active_sessions(
            conn, inst, category_id, session_timestamp=session_timestamp, lock=True
        )
        if same_instant:
            found += [s.session_id for s in same_instant]
        else:
            incoming = batch.get(QuestionTag.HEAT_DATE)
            latest = answers_repo.latest_tagged_answer(conn, inst, [QuestionTag.HEAT_DATE])
            if (
                incoming is not None
                and latest is not None
                and latest[1].canonical_value == incoming.canonical_value
            ):
                found.append(latest[0])
    found += [
        s.session_id
        for s in answers_repo.active_sessions(conn, inst, category_id, replace_key=replace_key, lock=True)
    ]
    if category_id == Category.PREGNANCY_DETECTION:
        found += _detections_on_event_date(conn, inst, batch, session_timestamp[:10])
    return list(dict.fromkeys(found))


def companion_rows(
    conn: Connection, inst: AnimalInstance, category_id: int, batch: TaggedBatch
) -> List[AnswerRow]:
    """Rows implied by a positive detection or a delivery.

    Only tags that have a catalog question for the animal type, and that the
    batch does not already answer, fan out.
    """
    wanted: Dict[QuestionTag, Tuple[str, Optional[str]]] = {}
    if category_id == Category.PREGNANCY_DETECTION and batch.is_positive_detection:
        wanted[QuestionTag.SEX] = (DISPLAY[FEMALE], FEMALE)
        wanted[QuestionTag.PREGNANCY_STATE] = (DISPLAY[YES], YES)
        last = answers_repo.latest_tagged_answer(conn, inst, LACTATION_TAGS)
        if last is not None:
            wanted[QuestionTag.LACTATING] = (last[1].answer, last[1].canonical_value)
    elif category_id == Category.DELIVERY:
        wanted[QuestionTag.LACTATING] = (DISPLAY[YES], YES)
        wanted[QuestionTag.PREGNANCY_STATE] = (DISPLAY[NO], NO)
    if not wanted:
        return []

    question_ids = catalog_repo.question_ids_by_tag(conn, inst.animal_id, wanted)
    answered = {r.question_id for r in batch.rows}
    out: List[AnswerRow] = []
    for tag, (answer, canonical) in wanted.items():
        qid = question_ids.get(int(tag))
        if qid is None or qid in answered or batch.get(tag) is not None:
            continue
        out.append(
            AnswerRow(
                question_id=qid,
                answer=answer,
                canonical_value=canonical,
                question_tag=int(tag),
            )
        )
    return out


def _insert(
    conn: Connection,
    inst: AnimalInstance,
    category_id: int,
    session_ts: datetime,
    replace_key: str,
    rows: Sequence[AnswerRow],
    moment: datetime,
    origin: str = "user",
    derived_from: Optional[str] = None,
) -> SessionRow:
    ts_iso = clock.isoformat(session_ts)
    session_id = str(uuid.uuid4())
    answers_repo.insert_session(
        conn,
        inst,
        session_id,
        category_id,
        ts_iso,
        replace_key,
        clock.isoformat(moment),
        origin,
        derived_from,
    )
    answers_repo.insert_answers(conn, inst, session_id, ts_iso, rows)
    return SessionRow(
        session_id=session_id,
        category_id=int(category_id),
        session_timestamp=ts_iso,
        session_day=ts_iso[:10],
        replace_key=replace_key,
    )


def write_session(
    conn: Connection,
    inst: AnimalInstance,
    category_id: int,
    rows: Sequence[AnswerRow],
    moment: datetime,
    supplied_date: Optional[date] = None,
    *,
    require_date: bool = True,
) -> WriteOutcome:
    """Replace or append one session according to the category policy."""
    batch = TaggedBatch(rows)
    session_ts, replace_key = session_key(
        category_id, batch, moment, supplied_date, require_date=require_date
    )
    companions = companion_rows(conn, inst, category_id, batch)
    superseded = superseded_sessions(
        conn, inst, category_id, batch, clock.isoformat(session_ts), replace_key
    )
    removed = answers_repo.delete_sessions(conn, superseded)
    all_rows = list(rows) + companions
    session = _insert(conn, inst, category_id, session_ts, replace_key, all_rows, moment)
    logger.info(
        "session_written category=%s session_id=%s replace_key=%s superseded=%s removed_rows=%s rows=%s",
        category_id,
        session.session_id,
        replace_key,
        len(superseded),
        removed,
        len(all_rows),
    )
    return WriteOutcome(
        instance=inst,
        category_id=int(category_id),
        session=session,
        rows=all_rows,
        superseded=superseded,
        companions=companions,
    )


def carry_forward(
    conn: Connection,
    inst: AnimalInstance,
    category_id: int,
    overrides: Mapping[QuestionTag, AnswerRow],
    moment: datetime,
    *,
    derived_from: Optional[str] = None,
    replaces: Sequence[str] = (),
) -> Optional[WriteOutcome]:
    """Copy the latest session of a category to now(), with tagged values replaced.

    Overrides for tags the copied session does not answer are added when the
    catalog question carrying the tag belongs to the same category. Sessions
    of the same day are superseded, together with any listed in `replaces`.
    The new session records `derived_from` as its source. Returns None when
    the category has no active session to carry.
    """
    latest = answers_repo.latest_session(conn, inst, category_id)
    if latest is None:
        return None
    carried: List[AnswerRow] = []
    applied: set[QuestionTag] = set()
    for row in answers_repo.session_answers(conn, latest.session_id):
        tag = next((t for t in overrides if row.question_tag == int(t)), None)
        if tag is None:
            carried.append(row)
            continue
        value = overrides[tag]
        carried.append(replace(row, answer=value.answer, canonical_value=value.canonical_value))
        applied.add(tag)

    missing = {t: v for t, v in overrides.items() if t not in applied}
    if missing:
        question_ids = catalog_repo.question_ids_by_tag(conn, inst.animal_id, missing)
        entries = catalog_repo.questions_by_id(conn, inst.animal_id, question_ids.values())
        for tag, value in missing.items():
            entry = entries.get(question_ids.get(int(tag), -1))
            if entry is None or entry.category_id != category_id:
                continue
            carried.append(
                AnswerRow(
                    question_id=entry.id,
                    answer=value.answer,
                    canonical_value=value.canonical_value,
                    question_tag=int(tag),
                )
            )

    replace_key = moment.date().isoformat()
    same_day = answers_repo.active_sessions(
        conn, inst, category_id, replace_key=replace_key, lock=True
    )
    superseded = list(dict.fromkeys([*replaces, *(s.session_id for s in same_day)]))
    answers_repo.delete_sessions(conn, superseded)
    session = _insert(
        conn,
        inst,
        category_id,
        moment,
        replace_key,
        carried,
        moment,
        origin="carry_forward",
        derived_from=derived_from,
    )
    logger.info(
        "session_carried_forward category=%s from_session=%s derived_from=%s session_id=%s superseded=%s",
        category_id,
        latest.session_id,
        derived_from,
        session.session_id,
        len(superseded),
    )
    return WriteOutcome(
        instance=inst,
        category_id=int(category_id),
        session=session,
        rows=carried,
        superseded=superseded,
    )


__all__ = [
    "ReplacePolicy",
    "WriteOutcome",
    "policy_for",
    "build_rows",
    "session_key",
    "superseded_sessions",
    "companion_rows",
    "write_session",
    "carry_forward",
]
