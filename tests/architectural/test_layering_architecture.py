"""Architectural tests for the Herdbook package layout.

Static inspection only: source files are parsed with `ast`, nothing is
imported or executed, so these run without a database.
"""

from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

PKG_ROOT = Path(__file__).resolve().parents[2] / "herdbook"


def py_files_under(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*.py") if "__pycache__" not in p.parts)


def parse_module_safe(path: Path) -> Optional[ast.Module]:
    """Parse a module, failing the test with a clear message on syntax errors."""
    try:
        return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    except SyntaxError as exc:
        pytest.fail(f"Syntax error in {path}: {exc}")
    return None


def _rel(path: Path) -> str:
    return path.relative_to(PKG_ROOT).as_posix()


def _imported_names(tree: ast.Module) -> Iterable[str]:
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom):
            for alias in node.names:
                yield f"{node.module}.{alias.name}"
        elif isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name


def _sql_text_users() -> List[str]:
    users = []
    for path in py_files_under(PKG_ROOT):
        tree = parse_module_safe(path)
        if tree is not None and "sqlalchemy.text" in set(_imported_names(tree)):
            users.append(_rel(path))
    return users


def test_routes_do_not_issue_sql():
    for path in py_files_under(PKG_ROOT / "routes"):
        tree = parse_module_safe(path)
        names = set(_imported_names(tree))
        assert not any(n.startswith("sqlalchemy") for n in names), f"{_rel(path)} imports SQLAlchemy"
        assert not any(".repository_" in n for n in names), f"{_rel(path)} bypasses answer_service"


def test_raw_sql_lives_in_repositories_and_db_layer():
    allowed_prefixes = ("db/", "logic/repository_")
    allowed_files = {"main.py"}
    offenders = [
        rel
        for rel in _sql_text_users()
        if rel not in allowed_files and not rel.startswith(allowed_prefixes)
    ]
    assert offenders == [], f"SQL outside the data-access layer: {offenders}"


def _compares_int_literal(node: ast.Compare) -> bool:
    operands = [node.left, *node.comparators]
    has_tag_name = any(
        (isinstance(o, ast.Attribute) and o.attr in {"question_tag", "category_id"})
        or (isinstance(o, ast.Name) and o.id in {"question_tag", "category_id", "tag"})
        for o in operands
    )
    has_literal = any(
        isinstance(o, ast.Constant) and isinstance(o.value, int) and not isinstance(o.value, bool)
        for o in operands
    )
    return has_tag_name and has_literal


def test_logic_never_compares_tags_or_categories_to_literals():
    offenders = []
    for path in py_files_under(PKG_ROOT / "logic"):
        tree = parse_module_safe(path)
        for node in ast.walk(tree):
            if isinstance(node, ast.Compare) and _compares_int_literal(node):
                offenders.append(f"{_rel(path)}:{node.lineno}")
    assert offenders == [], f"use QuestionTag/Category instead of literals: {offenders}"


def test_no_bare_except():
    offenders = []
    for path in py_files_under(PKG_ROOT):
        tree = parse_module_safe(path)
        for node in ast.walk(tree):
            if isinstance(node, ast.ExceptHandler) and node.type is None:
                offenders.append(f"{_rel(path)}:{node.lineno}")
    assert offenders == []


def _function(tree: ast.Module, name: str) -> ast.FunctionDef:
    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name == name:
            return node
    pytest.fail(f"function {name} not found")
    raise AssertionError


def _is_unit_of_work(node: ast.With) -> bool:
    for item in node.items:
        call = item.context_expr
        if isinstance(call, ast.Call) and getattr(call.func, "id", None) == "unit_of_work":
            return True
    return False


def _uses_unit_of_work(fn: ast.FunctionDef) -> bool:
    return any(isinstance(node, ast.With) and _is_unit_of_work(node) for node in ast.walk(fn))


@pytest.mark.parametrize(
    "module,function",
    [
        ("logic/answer_service.py", "create_animal_instance"),
        ("logic/answer_service.py", "write_category_answers"),
        ("logic/answer_service.py", "retire_animal_instance"),
        ("logic/backfill.py", "ensure_yield_history_backfill"),
    ],
)
def test_writes_run_inside_one_unit_of_work(module, function):
    tree = parse_module_safe(PKG_ROOT / module)
    assert _uses_unit_of_work(_function(tree, function)), f"{module}:{function} must use unit_of_work()"


def test_repositories_never_commit():
    for path in py_files_under(PKG_ROOT / "logic"):
        if not path.name.startswith("repository_"):
            continue
        tree = parse_module_safe(path)
        for node in ast.walk(tree):
            if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute):
                assert node.func.attr not in {"commit", "begin"}, f"{_rel(path)}:{node.lineno}"


def test_events_are_published_after_the_unit_of_work():
    tree = parse_module_safe(PKG_ROOT / "logic" / "answer_service.py")
    for name in ("create_animal_instance", "write_category_answers", "retire_animal_instance"):
        fn = _function(tree, name)
        for node in ast.walk(fn):
            if isinstance(node, ast.With) and _is_unit_of_work(node):
                for inner in ast.walk(node):
                    if isinstance(inner, ast.Call) and getattr(inner.func, "id", None) in {
                        "publish",
                        "_publish_write",
                    }:
                        pytest.fail(f"{name} publishes inside its transaction")


def test_error_map_covers_every_error_kind():
    from herdbook.config.error_mapping import DOMAIN_ERROR_MAP
    from herdbook.logic import errors

    kinds = {
        cls.kind
        for cls in vars(errors).values()
        if isinstance(cls, type) and issubclass(cls, errors.HerdbookError)
    }
    assert kinds <= set(DOMAIN_ERROR_MAP)
    for entry in DOMAIN_ERROR_MAP.values():
        assert {"status", "code", "title"} <= set(entry)


def test_every_category_has_a_replace_policy():
    from herdbook.logic.session_resolver import _POLICIES
    from herdbook.models.question_tag import Category

    assert set(_POLICIES) == set(Category)
