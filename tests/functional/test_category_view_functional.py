"""Functional tests for the grouped category/subcategory/question view."""

from __future__ import annotations

import pytest

from herdbook.logic.errors import InvalidReferenceError
from herdbook.models.question_tag import Category

from conftest import BUFFALO, CATEGORY_NAMES, MARATHI, Herd


def _by_id(view: dict) -> dict:
    return {
        q["question_id"]: q
        for groups in view.values()
        for questions in groups.values()
        for q in questions
    }


def test_unanswered_instance_gets_the_full_scaffold(herd):
    view = herd.view("A100", Category.BASIC)

    assert list(view) == ["Basic details"]
    groups = view["Basic details"]
    assert [q["question_id"] for q in groups["General"]] == [101, 102, 103]
    assert [q["question_id"] for q in groups["Reproduction"]] == [104, 105]
    assert [q["question_id"] for q in groups[""]] == [106]
    assert all(q["answer"] is None and q["answer_date"] is None for q in _by_id(view).values())


def test_view_without_category_covers_every_applicable_category(herd):
    assert set(herd.view("A100")) == set(CATEGORY_NAMES.values())
    assert list(Herd(animal_id=BUFFALO).view("B1")) == ["Basic details"]


def test_answers_are_placed_with_their_session_date(herd, frozen_clock):
    herd.create("A100", {101: "Cow", 102: "Female"})
    frozen_clock.advance(days=1)

    questions = _by_id(herd.view("A100", Category.BASIC))

    assert questions[102]["answer"] == "Female"
    assert questions[102]["answer_date"] == "2024-05-10"
    assert questions[103]["answer"] is None
    assert questions[103]["answer_date"] is None


def test_view_shows_only_the_latest_session(herd, frozen_clock):
    herd.create("A100", {101: "Cow", 106: "first"})
    frozen_clock.advance(days=2)
    herd.write(Category.BASIC, "A100", {106: "second"})

    questions = _by_id(herd.view("A100", Category.BASIC))
    assert questions[106]["answer"] == "second"
    assert questions[106]["answer_date"] == "2024-05-12"
    assert questions[101]["answer"] is None


def test_catalog_metadata_is_exposed(herd):
    basic = _by_id(herd.view("A100", Category.BASIC))
    milk = _by_id(herd.view("A100", Category.MILK))

    assert basic[101]["validation_rule"] == "required"
    assert basic[102]["question_tag"] == 8
    assert basic[102]["question_tag_name"] == "sex"
    assert basic[103]["is_date"] is True
    assert basic[103]["form_type"] == "date"
    assert basic[104]["form_type_value"] == '["Yes", "No"]'
    assert milk[301]["constant_value"] == "100"
    assert milk[301]["question_unit"] == "litre"


def test_view_is_localized_with_master_fallback(herd):
    view = herd.view("A100", Category.BASIC, language_id=MARATHI)

    assert list(view) == ["मूलभूत माहिती"]
    assert set(view["मूलभूत माहिती"]) == {"सामान्य", "Reproduction", ""}
    questions = _by_id(view)
    assert questions[102]["question"] == "लिंग"
    assert questions[102]["master_question"] == "Sex"
    assert questions[102]["hint"] == "Sex hint"
    assert questions[104]["hint"] == "दूध"
    assert questions[104]["form_type_value"] == '["होय", "नाही"]'
    assert questions[104]["master_form_type_value"] == '["Yes", "No"]'
    assert questions[101]["question"] == "Animal type"


def test_heat_view_shows_the_latest_heat_date(herd, frozen_clock):
    herd.write(Category.HEAT_EVENT, "A100", {901: "2024-04-21"})
    frozen_clock.advance(days=1)
    herd.write(Category.HEAT_EVENT, "A100", {901: "2024-04-01"})

    questions = _by_id(herd.view("A100", Category.HEAT_EVENT))
    assert questions[901]["answer"] == "2024-04-21"


def test_milk_view_dates_answers_by_supplied_date(herd):
    herd.write(Category.MILK, "A100", {301: "10"}, date="2024-05-01")

    questions = _by_id(herd.view("A100", Category.MILK))
    assert questions[301]["answer"] == "10"
    assert questions[301]["answer_date"] == "2024-05-01"
    assert questions[302]["answer"] is None


def test_unknown_animal_is_rejected():
    with pytest.raises(InvalidReferenceError):
        Herd(animal_id=42).view("A100")


def test_localized_text_lookup_falls_back_per_field():
    from herdbook.logic.repository_catalog import lookup_localized_text

    assert lookup_localized_text(104, MARATHI) == {
        "question": "दुधात आहे",
        "hint": "दूध",
        "form_type_value": '["होय", "नाही"]',
    }
    assert lookup_localized_text(102, MARATHI) == {
        "question": "लिंग",
        "hint": "Sex hint",
        "form_type_value": None,
    }
    with pytest.raises(InvalidReferenceError):
        lookup_localized_text(9999, MARATHI)
