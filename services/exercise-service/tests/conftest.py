"""Shared fixtures for the exercise service tests."""

from __future__ import annotations

import os
from contextlib import closing

import pytest

from wikitype_api.database.backends import ExerciseStore, SqliteExerciseStore, open_store
from wikitype_api.database.schema import ensure_schema

_EXTERNAL_URLS = {
    "postgresql": "TEST_POSTGRES_URL",
    "mysql": "TEST_MYSQL_URL",
}


def _shift_timestamps(store: ExerciseStore, exercise_id: str, seconds: int) -> None:
    ph = store.dialect.placeholder
    with store.connection() as conn:
        with closing(conn.cursor()) as cur:
            cur.execute(
                f"UPDATE exercises SET created_on = created_on - {ph}, "
                f"modified_on = modified_on - {ph} WHERE id = {ph}",
                (seconds, seconds, exercise_id),
            )


@pytest.fixture
def sqlite_store(tmp_path):
    """A SQLite-backed store with the exercises table in a temporary file."""
    store = SqliteExerciseStore(str(tmp_path / "exercises.db"))
    store.open()
    ensure_schema(store)
    yield store
    store.close()


@pytest.fixture(params=["sqlite", "postgresql", "mysql"])
def store(request, tmp_path):
    """Every configured backend; PostgreSQL and MySQL need TEST_*_URL set."""
    if request.param == "sqlite":
        store = SqliteExerciseStore(str(tmp_path / "exercises.db"))
    else:
        url = os.getenv(_EXTERNAL_URLS[request.param])
        if not url:
            pytest.skip(f"{_EXTERNAL_URLS[request.param]} is not set")
        store = open_store(url, pool_size=2, pool_timeout=5)
    store.open()
    ensure_schema(store)
    yield store
    store.close()


@pytest.fixture
def backdate():
    """Move an exercise's timestamps into the past by a number of seconds."""
    return _shift_timestamps
