import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.events.registry import Event, build_event, serialize_payload
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.exceptions import (
    DuplicateFunctionError,
    FunctionNotFoundError,
)
from mortiscope_jobs.orchestration.store_base import BaseRunQueue
from mortiscope_jobs.utils.time import utcnow


class Orchestrator:
    """Event client: validates events and fans them out to registered functions.

    Constructed once by the entry point and passed to whatever needs to emit
    events or look up functions.
    """

    def __init__(
        self,
        run_queue: BaseRunQueue,
        default_retries: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._run_queue = run_queue
        self._default_retries = default_retries
        self._clock = clock
        self._functions: dict[str, JobFunction] = {}

    def register(self, function: JobFunction) -> None:
        if function.id in self._functions:
            raise DuplicateFunctionError(f"Function '{function.id}' already registered")
        self._functions[function.id] = function
        Log.info(f"Registered function '{function.id}' for '{function.trigger}'")

    def register_all(self, functions: list[JobFunction]) -> None:
        for function in functions:
            self.register(function)

    def functions_for(self, event_name: str) -> list[JobFunction]:
        return [fn for fn in self._functions.values() if fn.trigger == event_name]

    def get_function(self, function_id: str) -> JobFunction:
        function = self._functions.get(function_id)
        if function is None:
            raise FunctionNotFoundError(f"Function '{function_id}' is not registered")
        return function

    def max_attempts_for(self, function: JobFunction) -> int:
        retries = function.retries if function.retries is not None else self._default_retries
        return retries + 1

    def send(self, name: str, data: Any, ts: datetime | None = None) -> list[str]:
        """Validate an event and queue one run per subscribed function.

        Raises:
            SchemaValidationError: if the payload does not match `name`.
        """
        return self.send_event(build_event(name, data, ts=ts))

    def send_event(self, event: Event) -> list[str]:
        functions = self.functions_for(event.name)
        if not functions:
            Log.warning(f"No functions registered for '{event.name}'", event_id=event.id)
            return []

        event_data = serialize_payload(event.data)
        run_ids: list[str] = []
        for function in functions:
            run = RunRecord(
                id=str(uuid.uuid4()),
                function_id=function.id,
                event_id=event.id,
                event_name=event.name,
                event_data=event_data,
                max_attempts=self.max_attempts_for(function),
                available_at=event.ts or self._clock(),
            )
            if self._run_queue.enqueue(run):
                run_ids.append(run.id)
        Log.info(
            f"Queued {len(run_ids)} run(s) for '{event.name}'",
            event_id=event.id,
            deliver_at=(event.ts or "now"),
        )
        return run_ids

    def close(self) -> None:
        self._run_queue.close()
        Log.info("Orchestrator closed")
