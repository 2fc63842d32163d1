"""Read-only view of one catalog question as the engine consumes it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class QuestionCatalogEntry:
    id: int
    category_id: int
    subcategory_id: Optional[int]
    validation_rule_id: Optional[int]
    form_type_id: Optional[int]
    question_tag: Optional[int]
    question_unit: Optional[int]
    sequence_number: int
    master_question: str
    master_hint: Optional[str]
    master_form_type_value: Optional[str]
    is_date: bool
    localized_question: Optional[str] = None
    localized_hint: Optional[str] = None
    localized_form_type_value: Optional[str] = None
    category_name: str = ""
    subcategory_name: str = ""
    validation_rule: Optional[str] = None
    constant_value: Optional[str] = None
    form_type: Optional[str] = None
    question_tag_name: Optional[str] = None
    question_unit_name: Optional[str] = None

    @property
    def question(self) -> str:
        return self.localized_question or self.master_question

    @property
    def hint(self) -> Optional[str]:
        return self.localized_hint if self.localized_hint is not None else self.master_hint

    @property
    def form_type_value(self) -> Optional[str]:
        if self.localized_form_type_value is not None:
            return self.localized_form_type_value
        return self.master_form_type_value


__all__ = ["QuestionCatalogEntry"]
