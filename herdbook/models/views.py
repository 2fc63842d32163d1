"""Pydantic models for read-side responses."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class QuestionView(BaseModel):
    question_id: int
    question: str
    hint: Optional[str] = None
    form_type: Optional[str] = None
    form_type_value: Optional[str] = None
    master_question: str
    master_hint: Optional[str] = None
    master_form_type_value: Optional[str] = None
    validation_rule: Optional[str] = None
    constant_value: Optional[str] = None
    question_tag: Optional[int] = None
    question_tag_name: Optional[str] = None
    question_unit: Optional[str] = None
    sequence_number: int = 0
    is_date: bool = False
    answer: Optional[str] = None
    answer_date: Optional[str] = None


class YieldHistoryRecord(BaseModel):
    id: int
    date: Optional[str] = None
    pregnancy_status: Optional[str] = None
    lactating_status: Optional[str] = None
    source_session_id: Optional[str] = None
    created_at: str


class SessionAnswer(BaseModel):
    question_id: int
    question_tag: Optional[int] = None
    answer: str
    canonical_value: Optional[str] = None
    logic_value: Optional[str] = None


class SessionHistoryEntry(BaseModel):
    session_id: str
    category: str
    session_timestamp: str
    replace_key: str
    answers: List[SessionAnswer]


class BreedingEvent(BaseModel):
    session_id: str
    date: Optional[str] = None
    value: Optional[str] = None


class BreedingHistory(BaseModel):
    heat_events: List[BreedingEvent]
    deliveries: List[BreedingEvent]
    pregnancy_detections: List[BreedingEvent]


class LactationPeriod(BaseModel):
    start: str
    end: Optional[str] = None


class LactationSummary(BaseModel):
    periods: List[LactationPeriod]
    is_lactating: bool
    days_in_milk: int
    lactation_count: int
    delivery_count: int
    positive_detection_count: int


class AnimalNumberEntry(BaseModel):
    animal_id: int
    animal_number: str
    last_recorded_at: str


__all__ = [
    "QuestionView",
    "YieldHistoryRecord",
    "SessionAnswer",
    "SessionHistoryEntry",
    "BreedingEvent",
    "BreedingHistory",
    "LactationPeriod",
    "LactationSummary",
    "AnimalNumberEntry",
]
