"""Animal record routes.

Thin HTTP surface over `herdbook.logic.answer_service`: parse the request,
resolve the acting user from `X-User-Id`, call one service operation and
return its result. Domain errors propagate to the problem+json handlers.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Path, Query, Response

from herdbook.logic import answer_service
from herdbook.logic.errors import InvalidReferenceError
from herdbook.models.answers import CategoryAnswersBody, CategoryWritePayload, CreateAnimalPayload
from herdbook.models.question_tag import Category
from herdbook.models.views import (
    AnimalNumberEntry,
    BreedingHistory,
    LactationSummary,
    SessionHistoryEntry,
    YieldHistoryRecord,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_INSTANCE = "/animals/{animal_id}/instances/{animal_number}"


def current_actor(x_user_id: int = Header(alias="X-User-Id", gt=0)) -> int:
    return x_user_id


def _category(slug: str) -> Category:
    try:
        return Category.from_slug(slug)
    except ValueError as exc:
        raise InvalidReferenceError(f"unknown category {slug}", category=slug) from exc


@router.post("/animals/instances", status_code=201, summary="Register an animal instance")
def create_animal_instance(payload: CreateAnimalPayload, actor: int = Depends(current_actor)):
    session_ids = answer_service.create_animal_instance(payload, actor)
    return {
        "animal_id": payload.animal_id,
        "animal_number": payload.animal_number,
        "session_ids": session_ids,
    }


@router.put(_INSTANCE + "/categories/{category}", summary="Write one category of answers")
def write_category_answers(
    category: str,
    body: CategoryAnswersBody,
    animal_id: int = Path(gt=0),
    animal_number: str = Path(min_length=1, max_length=191),
    actor: int = Depends(current_actor),
):
    params = CategoryWritePayload(
        animal_id=animal_id,
        animal_number=animal_number,
        answers=body.answers,
        date=body.date,
    )
    session_id = answer_service.write_category_answers(_category(category), params, actor)
    return {"session_id": session_id}


@router.get(_INSTANCE + "/view", summary="Grouped category view")
def get_grouped_view(
    animal_id: int,
    animal_number: str,
    language_id: int = Query(default=1, gt=0),
    category: Optional[str] = None,
    actor: int = Depends(current_actor),
):
    return answer_service.query_grouped_view(
        actor,
        animal_id,
        animal_number,
        language_id,
        _category(category) if category else None,
    )


@router.get(_INSTANCE + "/yield-history", response_model=List[YieldHistoryRecord])
def get_yield_history(animal_id: int, animal_number: str, actor: int = Depends(current_actor)):
    return answer_service.query_yield_history(animal_id, animal_number, actor)


@router.get(_INSTANCE + "/history/{category}", response_model=List[SessionHistoryEntry])
def get_session_history(
    animal_id: int, animal_number: str, category: str, actor: int = Depends(current_actor)
):
    return answer_service.query_session_history(actor, animal_id, animal_number, _category(category))


@router.get(_INSTANCE + "/breeding-history", response_model=BreedingHistory)
def get_breeding_history(animal_id: int, animal_number: str, actor: int = Depends(current_actor)):
    return answer_service.query_breeding_history(actor, animal_id, animal_number)


@router.get(_INSTANCE + "/lactation", response_model=LactationSummary)
def get_lactation_summary(animal_id: int, animal_number: str, actor: int = Depends(current_actor)):
    return answer_service.query_lactation_summary(actor, animal_id, animal_number)


@router.delete(_INSTANCE, status_code=204, summary="Retire an animal instance")
def retire_animal_instance(animal_id: int, animal_number: str, actor: int = Depends(current_actor)):
    answer_service.retire_animal_instance(actor, animal_id, animal_number)
    return Response(status_code=204)


@router.get("/animal-numbers", response_model=List[AnimalNumberEntry])
def list_animal_numbers(search: Optional[str] = None, actor: int = Depends(current_actor)):
    return answer_service.list_animal_numbers(actor, search)


__all__ = ["router", "current_actor"]
