from mortiscope_jobs.events.registry import Event
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.exceptions import CompensationError


class FailureCompensator:
    """Turns an exhausted run into persisted failure state plus a structured log."""

    def compensate(
        self,
        function: JobFunction,
        event: Event,
        error: Exception,
        run_id: str | None = None,
    ) -> bool:
        """Invoke the function's failure hook once. Returns True if it ran.

        An event that does not match the function's trigger and payload shape
        is logged as an internal inconsistency and nothing is written.

        Raises:
            CompensationError: if the hook itself raised; the failure state
                was not persisted and compensation should be attempted again.
        """
        if not function.accepts(event):
            Log.error(
                "Compensation skipped: event does not match function",
                function=function.id,
                expected_event=function.trigger,
                received_event=event.name,
                payload_type=type(event.data).__name__,
                run_id=run_id,
            )
            return False

        try:
            function.on_failure(event, error)
        except Exception as hook_error:
            Log.critical(
                f"Failure hook raised: {hook_error}",
                function=function.id,
                run_id=run_id,
                original_error=str(error),
            )
            raise CompensationError(str(hook_error)) from hook_error

        Log.error(
            f"Function '{function.name}' failed after all retries: {error}",
            function=function.id,
            run_id=run_id,
            job_id=job_identifier(event),
        )
        return True


def job_identifier(event: Event) -> str:
    """Best identifier of the Job Record an event targets."""
    for attr in ("export_id", "case_id", "upload_id", "user_id"):
        value = getattr(event.data, attr, None)
        if isinstance(value, str):
            return value
    return event.id
