from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from psycopg.types.json import Jsonb

from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.database.repositories.run_repository import (
    LEASE_EXPIRED_MESSAGE,
    RunRepository,
)
from mortiscope_jobs.database.repositories.step_repository import StepRepository

NOW = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


def _make_row() -> dict:
    return {
        "id": "6f1c1a52-2f0e-4a51-9f3e-0d6a4b0c7b11",
        "function_id": "fastapi-recalculate-case",
        "event_id": "0b7a3c44-5d1e-4e0f-8a77-1b9c2d3e4f50",
        "event_name": "recalculation/case.requested",
        "event_data": {"caseId": "case-1"},
        "status": "pending",
        "attempts": 1,
        "max_attempts": 3,
        "available_at": NOW,
        "locked_at": None,
        "error_message": "boom",
        "output": None,
        "created_at": NOW,
        "updated_at": NOW,
    }


def _make_run() -> RunRecord:
    return RunRecord(
        id="6f1c1a52-2f0e-4a51-9f3e-0d6a4b0c7b11",
        function_id="fastapi-recalculate-case",
        event_id="0b7a3c44-5d1e-4e0f-8a77-1b9c2d3e4f50",
        event_name="recalculation/case.requested",
        event_data={"caseId": "case-1"},
        max_attempts=3,
    )


class TestEnqueue:
    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_returns_true_when_inserted(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        assert RunRepository(lease_seconds=60).enqueue(_make_run()) is True
        sql = mock_cursor.execute.call_args.args[0]
        assert "ON CONFLICT (event_id, function_id) DO NOTHING" in sql
        mock_conn.commit.assert_called_once()

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_returns_false_for_duplicate_delivery(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        assert RunRepository(lease_seconds=60).enqueue(_make_run()) is False

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_event_data_is_sent_as_jsonb(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        RunRepository(lease_seconds=60).enqueue(_make_run())

        params = mock_cursor.execute.call_args.args[1]
        assert isinstance(params[4], Jsonb)


class TestClaimNext:
    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_claims_and_marks_running(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.side_effect = [
            _make_row(),
            {"attempts": 1, "error_message": "boom"},
        ]

        run = RunRepository(lease_seconds=600).claim_next()

        assert run is not None
        assert run.status == "running"
        assert run.attempts == 1
        assert run.event_data == {"caseId": "case-1"}
        select_call, update_call = mock_cursor.execute.call_args_list
        assert "FOR UPDATE SKIP LOCKED" in select_call.args[0]
        assert select_call.args[1] == (600,)
        assert "status = 'running'" in update_call.args[0]
        assert "RETURNING attempts" in update_call.args[0]
        mock_conn.commit.assert_called_once()

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_reclaimed_lease_takes_counters_from_update(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        stale = {**_make_row(), "status": "running", "attempts": 0, "error_message": None}
        mock_cursor.fetchone.side_effect = [
            stale,
            {"attempts": 1, "error_message": LEASE_EXPIRED_MESSAGE},
        ]

        run = RunRepository(lease_seconds=600).claim_next()

        assert run.attempts == 1
        assert run.error_message == LEASE_EXPIRED_MESSAGE
        update_sql = mock_cursor.execute.call_args.args[0]
        assert "attempts + CASE WHEN status = 'running' THEN 1 ELSE 0 END" in update_sql

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_returns_none_when_nothing_runnable(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert RunRepository(lease_seconds=600).claim_next() is None
        assert mock_cursor.execute.call_count == 1
        mock_conn.commit.assert_called_once()


class TestStateTransitions:
    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_retry_later_increments_attempts(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        RunRepository(lease_seconds=60).retry_later("run-1", "boom", NOW)

        sql, params = mock_conn.execute.call_args.args
        assert "attempts = attempts + 1" in sql
        assert params == ("boom", NOW, "run-1")

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_reschedule_keeps_attempts(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        RunRepository(lease_seconds=60).reschedule("run-1", NOW)

        sql = mock_conn.execute.call_args.args[0]
        assert "attempts" not in sql

    @patch("mortiscope_jobs.database.repositories.run_repository.get_connection")
    def test_mark_failed(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        RunRepository(lease_seconds=60).mark_failed("run-1", "worker down")

        assert mock_conn.execute.call_args.args[1] == ("worker down", "run-1")
        mock_conn.commit.assert_called_once()


class TestStepRepository:
    @patch("mortiscope_jobs.database.repositories.step_repository.get_connection")
    def test_load_all_returns_mapping(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [("invalidate-token", None), ("schedule", {"a": 1})]

        assert StepRepository().load_all("run-1") == {
            "invalidate-token": None,
            "schedule": {"a": 1},
        }

    @patch("mortiscope_jobs.database.repositories.step_repository.get_connection")
    def test_save_keeps_first_write(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        StepRepository().save("run-1", "call-worker", {"ok": True})

        sql = mock_conn.execute.call_args.args[0]
        assert "ON CONFLICT (run_id, step_name) DO NOTHING" in sql
        mock_conn.commit.assert_called_once()
