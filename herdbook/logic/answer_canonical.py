"""Canonicalization helpers for stored answer values.

Answers are stored as the display text the user picked, in their language.
Business rules compare the locale-independent `canonical_value` written next
to it, never the display text.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

YES = "yes"
NO = "no"
FEMALE = "female"
MALE = "male"

_VOCABULARY = {
    YES: ("yes", "होय", "हाँ", "हां", "అవును"),
    NO: ("no", "नाही", "नहीं", "లేదు", "కాదు"),
    FEMALE: ("female", "मादी", "मादा", "ఆడ"),
    MALE: ("male", "नर", "మగ"),
}

_LOGIC_VALUES = {
    "cow": ("cow", "गाय", "ఆవు"),
    "calf": ("calf", "कालवड", "बछड़ा", "దూడ", "रेडी"),
    "buffalo": ("buffalo", "म्हैस", "भैंस", "గేదె"),
}

_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d")

# Display text written into companion rows and yield history statuses.
DISPLAY = {YES: "Yes", NO: "No", FEMALE: "Female", MALE: "Male"}


def _lookup(table: dict, text: str) -> Optional[str]:
    folded = text.strip().casefold()
    for token, spellings in table.items():
        if folded in spellings:
            return token
    return None


def parse_answer_date(text: str | None) -> Optional[date]:
    """Parse a date-typed answer; returns None when the text is not a date."""
    if text is None:
        return None
    raw = text.strip()
    if not raw:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def canonicalize_answer(text: str | None) -> Optional[str]:
    """Return a stable, locale-independent form of an answer.

    - Known yes/no and sex words in any supported language -> token
    - Dates in any accepted format -> ISO date
    - Anything else -> stripped text
    """
    if text is None:
        return None
    token = _lookup(_VOCABULARY, text)
    if token is not None:
        return token
    parsed = parse_answer_date(text)
    if parsed is not None:
        return parsed.isoformat()
    return text.strip()


def logic_value_for(text: str | None) -> Optional[str]:
    """Classify an animal-type answer as cow, calf or buffalo."""
    if text is None:
        return None
    return _lookup(_LOGIC_VALUES, text)


def status_label(canonical: str | None, answer: str | None) -> Optional[str]:
    """Render a pregnancy/lactation status for the yield history."""
    if canonical in DISPLAY:
        return DISPLAY[canonical]
    return answer


__all__ = [
    "YES",
    "NO",
    "FEMALE",
    "MALE",
    "DISPLAY",
    "parse_answer_date",
    "canonicalize_answer",
    "logic_value_for",
    "status_label",
]
