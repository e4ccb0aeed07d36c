from collections.abc import Callable
from datetime import datetime, timedelta

from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.events.exceptions import SchemaValidationError
from mortiscope_jobs.events.registry import Event, EventRegistry
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.client import Orchestrator
from mortiscope_jobs.orchestration.compensator import FailureCompensator
from mortiscope_jobs.orchestration.exceptions import (
    CompensationError,
    FunctionNotFoundError,
    RecordedRunError,
    RunSuspended,
)
from mortiscope_jobs.orchestration.step import StepContext, to_json_value
from mortiscope_jobs.orchestration.store_base import BaseRunQueue, BaseStepStore
from mortiscope_jobs.utils.time import utcnow


class JobRunner:
    """Run one claimed run, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        run_queue: BaseRunQueue,
        step_store: BaseStepStore,
        compensator: FailureCompensator,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._run_queue = run_queue
        self._step_store = step_store
        self._compensator = compensator
        self._settings = settings
        self._clock = clock

    def run(self, run: RunRecord) -> None:
        """Execute a single run with error handling."""
        try:
            function = self._orchestrator.get_function(run.function_id)
            event = self._restore_event(run)
        except (FunctionNotFoundError, SchemaValidationError) as exc:
            # Nothing to retry: the run can never become valid.
            Log.error(f"Run {run.id} rejected: {exc}", function=run.function_id)
            self._run_queue.mark_failed(run.id, str(exc))
            return

        if run.attempts >= run.max_attempts:
            # Handler attempts are spent; only the failure hook is outstanding.
            Log.warning(f"Run {run.id} has no attempts left, retrying compensation")
            error = RecordedRunError(run.error_message or "Run exhausted its attempts")
            self._finish_failed(run, function, event, error, consume_attempt=False)
            return

        Log.info(
            f"Running {run.function_id} run {run.id} "
            f"(attempt {run.attempts + 1}/{run.max_attempts})"
        )
        step = StepContext(run.id, self._step_store, self._orchestrator, self._clock)
        try:
            output = function.handle(event, step)
        except RunSuspended as suspended:
            self._run_queue.reschedule(run.id, suspended.resume_at)
            Log.info(f"Run {run.id} sleeping until {suspended.resume_at.isoformat()}")
            return
        except Exception as exc:
            self._handle_failure(run, function, event, exc)
            return

        self._run_queue.mark_completed(run.id, to_json_value(output))
        Log.info(
            f"Run {run.id} completed successfully",
            function=function.id,
            steps_executed=len(step.executed),
        )

    def _restore_event(self, run: RunRecord) -> Event:
        payload = EventRegistry.validate_payload(run.event_name, run.event_data)
        return Event(name=run.event_name, data=payload, id=run.event_id)

    def _handle_failure(
        self,
        run: RunRecord,
        function: JobFunction,
        event: Event,
        exc: Exception,
    ) -> None:
        """Consume an attempt; compensate once the retry budget is exhausted."""
        Log.error(f"Run {run.id} of {function.id} failed: {exc}")
        if run.attempts + 1 >= run.max_attempts:
            self._finish_failed(run, function, event, exc, consume_attempt=True)
        else:
            delay = self._settings.retry_backoff_seconds * (2**run.attempts)
            self._run_queue.retry_later(
                run.id, str(exc), self._clock() + timedelta(seconds=delay)
            )
            Log.warning(f"Run {run.id} will be retried in {delay}s (attempt {run.attempts + 1})")

    def _finish_failed(
        self,
        run: RunRecord,
        function: JobFunction,
        event: Event,
        exc: Exception,
        consume_attempt: bool,
    ) -> None:
        """Compensate, then mark the run failed.

        The run only becomes terminal once the failure hook has persisted the
        owning record's state. If the hook raises, the run goes back to
        pending with its attempts spent so the next claim retries compensation
        without invoking the handler again.
        """
        try:
            self._compensator.compensate(function, event, exc, run_id=run.id)
        except CompensationError:
            delay = self._settings.retry_backoff_seconds
            retry_at = self._clock() + timedelta(seconds=delay)
            if consume_attempt:
                self._run_queue.retry_later(run.id, str(exc), retry_at)
            else:
                self._run_queue.reschedule(run.id, retry_at)
            Log.warning(f"Run {run.id} compensation will be retried in {delay}s")
            return

        self._run_queue.mark_failed(run.id, str(exc))
        Log.error(f"Run {run.id} permanently failed after {run.max_attempts} attempts")
