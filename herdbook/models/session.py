"""Value types for sessions and the answer rows they group."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AnswerRow:
    question_id: int
    answer: str
    canonical_value: Optional[str]
    logic_value: Optional[str] = None
    question_tag: Optional[int] = None


@dataclass(frozen=True)
class SessionRow:
    session_id: str
    category_id: int
    session_timestamp: str
    session_day: str
    replace_key: str
    status: int = 0


__all__ = ["AnswerRow", "SessionRow"]
