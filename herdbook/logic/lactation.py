"""Lactation periods derived from the Yield History timeline."""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

from herdbook.logic.answer_canonical import YES, canonicalize_answer
from herdbook.models.views import LactationPeriod, YieldHistoryRecord


def _is_lactating(status: Optional[str]) -> Optional[bool]:
    if status is None:
        return None
    return canonicalize_answer(status) == YES


def lactation_periods(records: Sequence[YieldHistoryRecord]) -> List[LactationPeriod]:
    """Group consecutive lactating rows into periods.

    A period starts at the first lactating row and ends at the first later
    row that reports not lactating. Rows without a lactation status neither
    open nor close a period. The last period stays open (`end=None`) while
    the animal is still in milk.
    """
    periods: List[LactationPeriod] = []
    start: Optional[str] = None
    for record in sorted((r for r in records if r.date), key=lambda r: (r.date, r.id)):
        lactating = _is_lactating(record.lactating_status)
        if lactating is None:
            continue
        if lactating and start is None:
            start = record.date
        elif not lactating and start is not None:
            periods.append(LactationPeriod(start=start, end=record.date))
            start = None
    if start is not None:
        periods.append(LactationPeriod(start=start, end=None))
    return periods


def days_in_milk(periods: Sequence[LactationPeriod], today: date) -> int:
    if not periods or periods[-1].end is not None:
        return 0
    started = date.fromisoformat(periods[-1].start)
    return max((today - started).days, 0)


__all__ = ["lactation_periods", "days_in_milk"]
