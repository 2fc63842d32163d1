"""Functional test bootstrap for the Herdbook answer engine.

Points the service at a file-backed SQLite database, applies the SQLite
migrations once per session and seeds a small question catalog. Every test
starts from empty answer tables with the clock frozen at 2024-05-10 09:00.
"""

from __future__ import annotations

import os
import pathlib
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# Must be set before any herdbook module builds the engine
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"
os.environ["YIELD_HISTORY_BACKFILL"] = "1"

USER = 1
OTHER_USER = 2
COW = 1
BUFFALO = 2
ENGLISH = 1
MARATHI = 2

# question id -> (category, subcategory, tag, sequence, text, is_date)
QUESTIONS: Dict[int, tuple] = {
    101: (1, 1, None, 1, "Animal type", 0),
    102: (1, 1, 8, 2, "Sex", 0),
    103: (1, 1, 10, 3, "Birth date", 1),
    104: (1, 2, 9, 4, "Lactating", 0),
    105: (1, 2, 15, 5, "Pregnant", 0),
    106: (1, None, None, 6, "Notes", 0),
    201: (2, None, None, 1, "Bull number", 0),
    202: (2, None, 16, 2, "Lactating state", 0),
    301: (3, None, None, 1, "Morning milk", 0),
    302: (3, None, None, 2, "Evening milk", 0),
    401: (4, None, None, 1, "Calf count", 0),
    501: (5, None, None, 1, "Vaccination", 0),
    901: (99, None, 64, 1, "Heat date", 1),
    902: (99, None, None, 2, "Heat intensity", 0),
    1001: (100, None, 65, 1, "Delivery type", 0),
    1002: (100, None, 66, 2, "Delivery date", 1),
    1021: (102, None, 56, 1, "Pregnancy detected", 0),
    1022: (102, None, 57, 2, "Detection date", 1),
}
BUFFALO_QUESTIONS = (101, 102, 103, 104, 105)

CATEGORY_NAMES = {
    1: "Basic details",
    2: "Breeding details",
    3: "Milk details",
    4: "Birth details",
    5: "Health details",
    99: "Heat event",
    100: "Delivery",
    102: "Pregnancy detection",
}
TAG_NAMES = {
    8: "sex",
    9: "lactating",
    10: "event date",
    15: "pregnancy state",
    16: "lactating state",
    17: "morning fat",
    53: "delivery date",
    56: "pregnancy detected",
    57: "pregnancy detection date",
    64: "heat date",
    65: "delivery type",
    66: "delivery event date",
}

_ENGINE_TABLES = (
    "animal_question_answers",
    "answer_sessions",
    "animal_lactation_yield_history",
    "animal_instance_locks",
    "yield_history_backfill",
)


def _seed_catalog(conn) -> None:  # type: ignore[no-untyped-def]
    from sqlalchemy import text as sql_text

    def run(sql: str, rows: List[dict]) -> None:
        conn.execute(sql_text(sql), rows)

    run(
        "INSERT INTO languages (id, code, name) VALUES (:id, :code, :name)",
        [{"id": ENGLISH, "code": "en", "name": "English"}, {"id": MARATHI, "code": "mr", "name": "Marathi"}],
    )
    run(
        "INSERT INTO animals (id, name) VALUES (:id, :name)",
        [{"id": COW, "name": "Cow"}, {"id": BUFFALO, "name": "Buffalo"}],
    )
    run(
        "INSERT INTO categories (id, name) VALUES (:id, :name)",
        [{"id": cid, "name": name} for cid, name in CATEGORY_NAMES.items()],
    )
    run(
        "INSERT INTO category_language (category_id, language_id, category_language_name)"
        " VALUES (:cid, :lang, :name)",
        [{"cid": cid, "lang": ENGLISH, "name": name} for cid, name in CATEGORY_NAMES.items()]
        + [{"cid": 1, "lang": MARATHI, "name": "मूलभूत माहिती"}],
    )
    run(
        "INSERT INTO subcategories (id, category_id, name) VALUES (:id, :cid, :name)",
        [{"id": 1, "cid": 1, "name": "General"}, {"id": 2, "cid": 1, "name": "Reproduction"}],
    )
    run(
        "INSERT INTO subcategory_language (subcategory_id, language_id, subcategory_language_name)"
        " VALUES (:sid, :lang, :name)",
        [{"sid": 1, "lang": MARATHI, "name": "सामान्य"}],
    )
    run(
        "INSERT INTO validation_rules (id, name, constant_value) VALUES (:id, :name, :val)",
        [{"id": 1, "name": "required", "val": None}, {"id": 2, "name": "max", "val": "100"}],
    )
    run(
        "INSERT INTO form_types (id, name) VALUES (:id, :name)",
        [{"id": 1, "name": "text"}, {"id": 2, "name": "date"}, {"id": 3, "name": "radio"}],
    )
    run(
        "INSERT INTO question_tags (id, name) VALUES (:id, :name)",
        [{"id": tid, "name": name} for tid, name in TAG_NAMES.items()],
    )
    run("INSERT INTO question_units (id, name) VALUES (:id, :name)", [{"id": 1, "name": "litre"}])
    run(
        "INSERT INTO common_questions (id, category_id, subcategory_id, validation_rule_id, form_type_id,"
        " question, hint, form_type_value, question_tag, question_unit, sequence_number, is_date)"
        " VALUES (:id, :cid, :sid, :rule, :ft, :q, :hint, :ftv, :tag, :unit, :seq, :is_date)",
        [
            {
                "id": qid,
                "cid": cid,
                "sid": sid,
                "rule": 1 if qid in (101, 102) else (2 if qid == 301 else None),
                "ft": 2 if is_date else (3 if tag in (8, 9, 15, 16, 56) else 1),
                "q": text,
                "hint": f"{text} hint",
                "ftv": '["Yes", "No"]' if tag in (9, 15, 16, 56) else None,
                "tag": tag,
                "unit": 1 if qid in (301, 302) else None,
                "seq": seq,
                "is_date": is_date,
            }
            for qid, (cid, sid, tag, seq, text, is_date) in QUESTIONS.items()
        ],
    )
    run(
        "INSERT INTO question_language (question_id, language_id, question, hint, form_type_value)"
        " VALUES (:qid, :lang, :q, :hint, :ftv)",
        [
            {"qid": 102, "lang": MARATHI, "q": "लिंग", "hint": None, "ftv": None},
            {"qid": 104, "lang": MARATHI, "q": "दुधात आहे", "hint": "दूध", "ftv": '["होय", "नाही"]'},
        ],
    )
    run(
        "INSERT INTO animal_questions (animal_id, question_id) VALUES (:aid, :qid)",
        [{"aid": COW, "qid": qid} for qid in QUESTIONS]
        + [{"aid": BUFFALO, "qid": qid} for qid in BUFFALO_QUESTIONS],
    )


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap() -> None:
    """Session-level bootstrap: apply migrations and seed the catalog once."""
    from herdbook.db.base import get_engine
    from herdbook.db.migrations_runner import apply_migrations

    engine = get_engine(os.environ["TEST_DATABASE_URL"])
    apply_migrations(engine, migrations_dir=str(_ROOT / "sqlite_migrations"))
    with engine.begin() as conn:
        _seed_catalog(conn)
    yield


@pytest.fixture(autouse=True)
def clean_answer_tables() -> None:
    from sqlalchemy import text as sql_text

    from herdbook.db.base import get_engine
    from herdbook.logic.events import get_buffered_events

    with get_engine().begin() as conn:
        for table in _ENGINE_TABLES:
            conn.execute(sql_text(f"DELETE FROM {table}"))
    get_buffered_events(clear=True)
    yield


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch) -> FrozenClock:
    from herdbook.logic import clock

    fc = FrozenClock(datetime(2024, 5, 10, 9, 0, 0))
    monkeypatch.setattr(clock, "now", fc.now)
    return fc


class Herd:
    """Shorthand for driving the answer service in tests."""

    def __init__(self, user_id: int = USER, animal_id: int = COW) -> None:
        self.user_id = user_id
        self.animal_id = animal_id

    @staticmethod
    def _answers(answers: Dict[int, str]) -> List[dict]:
        return [{"question_id": qid, "answer": value} for qid, value in answers.items()]

    def create(self, number: str, answers: Dict[int, str]) -> List[str]:
        from herdbook.logic import answer_service
        from herdbook.models.answers import CreateAnimalPayload

        payload = CreateAnimalPayload(
            animal_id=self.animal_id, animal_number=number, answers=self._answers(answers)
        )
        return answer_service.create_animal_instance(payload, self.user_id)

    def write(self, category, number: str, answers: Dict[int, str], date: Optional[str] = None) -> str:  # type: ignore[no-untyped-def]
        from herdbook.logic import answer_service
        from herdbook.models.answers import CategoryWritePayload

        params = CategoryWritePayload(
            animal_id=self.animal_id,
            animal_number=number,
            answers=self._answers(answers),
            date=date,
        )
        return answer_service.write_category_answers(category, params, self.user_id)

    def history(self, category, number: str):  # type: ignore[no-untyped-def]
        from herdbook.logic import answer_service

        return answer_service.query_session_history(self.user_id, self.animal_id, number, category)

    def yields(self, number: str):  # type: ignore[no-untyped-def]
        from herdbook.logic import answer_service

        return answer_service.query_yield_history(self.animal_id, number, self.user_id)

    def view(self, number: str, category=None, language_id: int = ENGLISH):  # type: ignore[no-untyped-def]
        from herdbook.logic import answer_service

        return answer_service.query_grouped_view(
            self.user_id, self.animal_id, number, language_id, category
        )


@pytest.fixture
def herd() -> Herd:
    return Herd()


@pytest.fixture
def client():  # type: ignore[no-untyped-def]
    from fastapi.testclient import TestClient

    from herdbook.main import create_app

    with TestClient(create_app()) as c:
        yield c
