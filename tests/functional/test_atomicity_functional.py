"""A failure at any step of a write leaves the previous state untouched."""

from __future__ import annotations

import logging

import pytest

from herdbook.logic import repository_answers, repository_yield_history
from herdbook.logic.errors import DuplicateActiveRecordError
from herdbook.logic.events import ANSWERS_SAVED, get_buffered_events
from herdbook.models.question_tag import Category


class _Boom(RuntimeError):
    pass


def _explode(*_args, **_kwargs):  # type: ignore[no-untyped-def]
    raise _Boom("injected failure")


def test_failed_answer_insert_keeps_superseded_session(herd, frozen_clock, monkeypatch):
    (original,) = herd.create("A100", {102: "Female", 104: "No"})
    frozen_clock.advance(hours=1)
    get_buffered_events()
    monkeypatch.setattr(repository_answers, "insert_answers", _explode)

    with pytest.raises(_Boom):
        herd.write(Category.BASIC, "A100", {102: "Female", 104: "Yes"})

    sessions = herd.history(Category.BASIC, "A100")
    assert [s.session_id for s in sessions] == [original]
    records = herd.yields("A100")
    assert [(r.lactating_status, r.source_session_id) for r in records] == [("No", original)]
    assert get_buffered_events() == []


def test_failed_projection_rolls_back_the_session_write(herd, frozen_clock, monkeypatch):
    (original,) = herd.create("A100", {102: "Female", 104: "No"})
    frozen_clock.advance(hours=1)
    monkeypatch.setattr(repository_yield_history, "insert_record", _explode)

    with pytest.raises(_Boom):
        herd.write(Category.BASIC, "A100", {102: "Female", 104: "Yes"})

    sessions = herd.history(Category.BASIC, "A100")
    assert [s.session_id for s in sessions] == [original]
    assert [r.lactating_status for r in herd.yields("A100")] == ["No"]


def test_failed_carry_forward_rolls_back_detection(herd, frozen_clock, monkeypatch):
    herd.create("A100", {101: "Cow", 102: "Female", 104: "No"})
    frozen_clock.advance(days=1)
    real_insert_session = repository_answers.insert_session
    calls = []

    def insert_session_then_fail_on_carry(*args, **kwargs):  # type: ignore[no-untyped-def]
        calls.append(args[3])
        if args[3] == Category.BASIC:
            raise _Boom("carry forward failed")
        return real_insert_session(*args, **kwargs)

    monkeypatch.setattr(repository_answers, "insert_session", insert_session_then_fail_on_carry)

    with pytest.raises(_Boom):
        herd.write(Category.PREGNANCY_DETECTION, "A100", {1021: "Yes", 1022: "2024-05-08"})

    assert calls == [Category.PREGNANCY_DETECTION, Category.BASIC]
    assert herd.history(Category.PREGNANCY_DETECTION, "A100") == []
    assert len(herd.history(Category.BASIC, "A100")) == 1
    assert len(herd.yields("A100")) == 1


def test_successful_write_publishes_after_commit(herd):
    herd.create("A100", {102: "Female"})

    types = [e["type"] for e in get_buffered_events()]
    assert ANSWERS_SAVED in types


def test_domain_rollbacks_log_a_warning_and_failures_an_error(herd, monkeypatch, caplog):
    herd.create("A100", {102: "Female"})

    with caplog.at_level(logging.INFO, logger="herdbook.db.base"):
        with pytest.raises(DuplicateActiveRecordError):
            herd.create("A100", {102: "Female"})
    (record,) = [r for r in caplog.records if r.name == "herdbook.db.base"]
    assert record.levelno == logging.WARNING
    assert record.exc_info is None
    assert "duplicate_active_record" in record.getMessage()

    caplog.clear()
    monkeypatch.setattr(repository_answers, "insert_answers", _explode)
    with caplog.at_level(logging.INFO, logger="herdbook.db.base"):
        with pytest.raises(_Boom):
            herd.write(Category.BASIC, "A100", {104: "Yes"})
    (record,) = [r for r in caplog.records if r.name == "herdbook.db.base"]
    assert record.levelno == logging.ERROR
    assert record.exc_info is not None
