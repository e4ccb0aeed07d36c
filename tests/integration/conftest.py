import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.connection import close_pool, get_connection, init_pool
from mortiscope_jobs.database.models import RunRecord

SCHEMA_SQL = Path(__file__).resolve().parents[2] / "sql" / "orchestration.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "mortiscope_test")
    return Settings(db_connect_timeout_seconds=3)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_SQL.read_text())
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def clean_runs(integration_pool: None) -> Generator[None, None, None]:
    yield
    with get_connection() as conn:
        conn.execute("DELETE FROM job_runs")
        conn.commit()


@pytest.fixture
def make_run(clean_runs: None):
    def _make(function_id: str = "fastapi-recalculate-case", **overrides: Any) -> RunRecord:
        values: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "function_id": function_id,
            "event_id": str(uuid.uuid4()),
            "event_name": "recalculation/case.requested",
            "event_data": {"caseId": "case-1"},
            "max_attempts": 3,
        }
        values.update(overrides)
        return RunRecord(**values)

    return _make
