"""Request models for answer writes and the AnimalInstance key."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date as Date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


@dataclass(frozen=True)
class AnimalInstance:
    """One physical animal as tracked by one user.

    Not a stored row: every answer, session and yield history row is
    partitioned by this key.
    """

    user_id: int
    animal_id: int
    animal_number: str

    def params(self) -> dict:
        return {"uid": self.user_id, "aid": self.animal_id, "num": self.animal_number}


class AnswerInput(BaseModel):
    question_id: int = Field(gt=0)
    # Stored in VARCHAR(191) columns, and heat dates double as the replace key.
    answer: str = Field(max_length=191)

    @field_validator("answer")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class CategoryAnswersBody(BaseModel):
    """Body of a category write; the instance comes from the URL."""

    answers: List[AnswerInput] = Field(min_length=1)
    date: Optional[Date] = None


class CreateAnimalPayload(BaseModel):
    animal_id: int = Field(gt=0)
    animal_number: str = Field(min_length=1, max_length=191)
    answers: List[AnswerInput] = Field(min_length=1)

    @field_validator("animal_number")
    @classmethod
    def _number_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("animal_number must not be blank")
        return v


class CategoryWritePayload(CreateAnimalPayload):
    # Required by the date-keyed categories (breeding, milk, health).
    date: Optional[Date] = None


__all__ = [
    "AnimalInstance",
    "AnswerInput",
    "CategoryAnswersBody",
    "CreateAnimalPayload",
    "CategoryWritePayload",
]
