from unittest.mock import MagicMock, patch

from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.events.registry import EventName
from mortiscope_jobs.worker.worker import Worker


def _make_worker(
    clock, cleanup_interval: int = 0
) -> tuple[Worker, MagicMock, MagicMock, MagicMock]:
    """Create a Worker with mocked dependencies."""
    mock_queue = MagicMock()
    mock_runner = MagicMock()
    mock_orchestrator = MagicMock()
    settings = MagicMock(
        job_poll_interval_seconds=1,
        worker_concurrency=2,
        session_cleanup_interval_seconds=cleanup_interval,
    )
    worker = Worker(mock_queue, mock_runner, mock_orchestrator, settings, clock)
    return worker, mock_queue, mock_runner, mock_orchestrator


def _make_run(run_id: str = "run-1") -> RunRecord:
    return RunRecord(
        id=run_id,
        function_id="fastapi-recalculate-case",
        event_id="evt-1",
        event_name=EventName.RECALCULATION_REQUESTED,
        event_data={"caseId": "case-1"},
        max_attempts=3,
        status="running",
    )


class TestWorkerDispatch:
    def test_dispatches_run_to_runner(self, clock) -> None:
        worker, _queue, mock_runner, _orch = _make_worker(clock)
        run = _make_run()

        with patch.object(worker, "_try_claim_run", side_effect=[run, KeyboardInterrupt]):
            worker.run()

        mock_runner.run.assert_called_once_with(run)

    def test_dispatches_multiple_runs(self, clock) -> None:
        worker, _queue, mock_runner, _orch = _make_worker(clock)

        with patch.object(
            worker,
            "_try_claim_run",
            side_effect=[_make_run("run-1"), _make_run("run-2"), KeyboardInterrupt],
        ):
            worker.run()

        assert mock_runner.run.call_count == 2

    def test_stops_after_max_jobs(self, clock) -> None:
        worker, mock_queue, mock_runner, _orch = _make_worker(clock)
        mock_queue.claim_next.return_value = _make_run()

        worker.run(max_jobs=3)

        assert mock_runner.run.call_count == 3


class TestWorkerSleep:
    def test_sleeps_when_no_run(self, clock) -> None:
        worker, _queue, _runner, _orch = _make_worker(clock)

        with (
            patch.object(worker, "_try_claim_run", side_effect=[None, KeyboardInterrupt]),
            patch("mortiscope_jobs.worker.worker.time.sleep") as mock_sleep,
        ):
            worker.run()

        mock_sleep.assert_called_once_with(1)


class TestClaimErrors:
    def test_database_error_is_swallowed_and_logged(self, clock) -> None:
        worker, mock_queue, _runner, _orch = _make_worker(clock)
        mock_queue.claim_next.side_effect = RuntimeError("connection refused")

        assert worker._try_claim_run() is None


class TestCleanupTrigger:
    def test_disabled_when_interval_is_zero(self, clock) -> None:
        worker, _queue, _runner, mock_orchestrator = _make_worker(clock, cleanup_interval=0)
        clock.advance(days=10)

        worker._maybe_trigger_cleanup()

        mock_orchestrator.send.assert_not_called()

    def test_not_sent_before_interval(self, clock) -> None:
        worker, _queue, _runner, mock_orchestrator = _make_worker(clock, cleanup_interval=3600)
        clock.advance(seconds=3599)

        worker._maybe_trigger_cleanup()

        mock_orchestrator.send.assert_not_called()

    def test_sent_once_per_interval(self, clock) -> None:
        worker, _queue, _runner, mock_orchestrator = _make_worker(clock, cleanup_interval=3600)
        clock.advance(seconds=3600)

        worker._maybe_trigger_cleanup()
        worker._maybe_trigger_cleanup()

        mock_orchestrator.send.assert_called_once_with(EventName.SESSION_TRIGGER_CLEANUP, {})

    def test_failed_send_is_retried(self, clock) -> None:
        worker, _queue, _runner, mock_orchestrator = _make_worker(clock, cleanup_interval=3600)
        mock_orchestrator.send.side_effect = [RuntimeError("db down"), ["run-1"]]
        clock.advance(seconds=3600)

        worker._maybe_trigger_cleanup()
        worker._maybe_trigger_cleanup()

        assert mock_orchestrator.send.call_count == 2
