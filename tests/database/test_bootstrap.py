from __future__ import annotations

import logging
from pathlib import Path

import pytest

from config import get_settings_module
from src.promotion_voting.promotion_voting.database.bootstrap import (
    REQUIRED_TABLES,
    _strip_comments,
    _strip_create_db_and_use,
    iter_sql_statements,
    missing_tables,
)

SCHEMA = Path(__file__).resolve().parents[2] / "database" / "schema.sql"


def test_schema_creates_every_required_table():
    sql = _strip_comments(_strip_create_db_and_use(SCHEMA.read_text(encoding="utf-8")))
    created = set()
    for stmt in iter_sql_statements(sql):
        words = stmt.split()
        if words[:5] == ["CREATE", "TABLE", "IF", "NOT", "EXISTS"]:
            created.add(words[5])

    assert missing_tables(created) == []
    assert created == set(REQUIRED_TABLES)


def test_missing_tables_reports_sorted_gaps():
    present = [t.upper() for t in REQUIRED_TABLES if t not in {"vote_appeals", "employees"}]
    assert missing_tables(present) == ["employees", "vote_appeals"]


def test_statement_splitter_ignores_quoted_semicolons():
    stmts = list(iter_sql_statements("INSERT INTO t VALUES ('a;b');\nSELECT \"x;\";"))
    assert stmts == ["INSERT INTO t VALUES ('a;b')", 'SELECT "x;"']


@pytest.mark.parametrize(
    "env, expected",
    [
        ("production", "config.production"),
        (" PROD ", "config.production"),
        ("test", "config.testing"),
        ("local", "config.development"),
    ],
)
def test_settings_module_for_app_env(monkeypatch, env, expected):
    monkeypatch.setenv("APP_ENV", env)
    assert get_settings_module() == expected


def test_unknown_app_env_falls_back_with_warning(monkeypatch, caplog):
    monkeypatch.setenv("APP_ENV", "staging")
    with caplog.at_level(logging.WARNING, logger="config"):
        assert get_settings_module() == "config.development"
    assert "staging" in caplog.text
