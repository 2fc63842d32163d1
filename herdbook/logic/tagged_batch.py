"""Tag-indexed view over the answer rows of one session."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

from herdbook.logic.answer_canonical import YES, parse_answer_date, status_label
from herdbook.models.question_tag import (
    EVENT_DATE_TAGS,
    LACTATION_TAGS,
    PREGNANCY_TAGS,
    PROJECTED_TAGS,
    QuestionTag,
    tag_of,
)
from herdbook.models.session import AnswerRow


class TaggedBatch:
    def __init__(self, rows: Sequence[AnswerRow]) -> None:
        self.rows = list(rows)
        self._by_tag: Dict[QuestionTag, AnswerRow] = {}
        for row in self.rows:
            tag = tag_of(row.question_tag)
            if tag is not None:
                self._by_tag.setdefault(tag, row)

    def get(self, tag: QuestionTag) -> Optional[AnswerRow]:
        return self._by_tag.get(tag)

    def first(self, tags: Iterable[QuestionTag]) -> Optional[AnswerRow]:
        for tag in tags:
            row = self._by_tag.get(tag)
            if row is not None:
                return row
        return None

    def has_any(self, tags: Iterable[QuestionTag]) -> bool:
        return any(t in self._by_tag for t in tags)

    @property
    def is_projected(self) -> bool:
        return self.has_any(PROJECTED_TAGS)

    @property
    def is_positive_detection(self) -> bool:
        row = self.get(QuestionTag.PREGNANCY_DETECTED)
        return row is not None and row.canonical_value == YES

    def date_of(self, tag: QuestionTag) -> Optional[str]:
        row = self.get(tag)
        parsed = parse_answer_date(row.answer) if row is not None else None
        return parsed.isoformat() if parsed else None

    def event_date(self, fallback_day: str) -> str:
        """First parseable event date in preference order, else the fallback."""
        for tag in EVENT_DATE_TAGS:
            value = self.date_of(tag)
            if value:
                return value
        return fallback_day

    def status(self, tags: Sequence[QuestionTag]) -> Optional[str]:
        row = self.first(tags)
        if row is None:
            return None
        return status_label(row.canonical_value, row.answer)

    @property
    def pregnancy_status(self) -> Optional[str]:
        return self.status(PREGNANCY_TAGS)

    @property
    def lactating_status(self) -> Optional[str]:
        return self.status(LACTATION_TAGS)


__all__ = ["TaggedBatch"]
