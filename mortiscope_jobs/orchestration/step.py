"""Durable step execution for a single function run.

Every step result is memoized under (run id, step name). When a run is
retried after a later step failed, completed steps return their stored
result instead of executing again.
"""

import json
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.exceptions import DuplicateStepError, RunSuspended
from mortiscope_jobs.orchestration.store_base import BaseStepStore
from mortiscope_jobs.utils.time import utcnow

if TYPE_CHECKING:
    from mortiscope_jobs.orchestration.client import Orchestrator


def to_json_value(value: Any) -> Any:
    """Normalize a step result to what a JSON round trip would produce."""
    return json.loads(json.dumps(value, default=str))


class StepContext:
    """Runs named steps in program order with per-run memoization."""

    def __init__(
        self,
        run_id: str,
        step_store: BaseStepStore,
        orchestrator: "Orchestrator",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._run_id = run_id
        self._step_store = step_store
        self._orchestrator = orchestrator
        self._clock = clock
        self._memo = step_store.load_all(run_id)
        self._seen: set[str] = set()
        self.executed: list[str] = []

    @property
    def run_id(self) -> str:
        return self._run_id

    def run(self, step_name: str, fn: Callable[[], Any]) -> Any:
        """Execute `fn` once per run; later calls return the memoized result."""
        if step_name in self._seen:
            raise DuplicateStepError(f"Step '{step_name}' used twice in run {self._run_id}")
        self._seen.add(step_name)

        if step_name in self._memo:
            Log.debug(f"Step '{step_name}' memoized, skipping", run_id=self._run_id)
            return self._memo[step_name]

        result = to_json_value(fn())
        self._step_store.save(self._run_id, step_name, result)
        self._memo[step_name] = result
        self.executed.append(step_name)
        Log.debug(f"Step '{step_name}' completed", run_id=self._run_id)
        return result

    def sleep(self, step_name: str, seconds: float) -> None:
        """Durable delay: suspends the run until `seconds` after the first call."""
        wake_at_iso = self.run(
            step_name,
            lambda: (self._clock() + timedelta(seconds=seconds)).isoformat(),
        )
        wake_at = datetime.fromisoformat(wake_at_iso)
        if self._clock() < wake_at:
            raise RunSuspended(step_name, wake_at)

    def send_event(
        self,
        step_name: str,
        name: str,
        data: dict[str, Any],
        ts: datetime | None = None,
    ) -> list[str]:
        """Emit an event exactly once for this run; returns the queued run ids."""
        return self.run(step_name, lambda: self._orchestrator.send(name, data, ts=ts))
