"""In-process queue and step store for local development and tests.

State lives only as long as the process; use the postgres backend when runs
must survive a restart.
"""

import copy
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from mortiscope_jobs.database.models import RunRecord, RunStatus
from mortiscope_jobs.orchestration.store_base import BaseRunQueue, BaseStepStore
from mortiscope_jobs.utils.time import utcnow


class InMemoryRunQueue(BaseRunQueue):
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._runs: dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    def enqueue(self, run: RunRecord) -> bool:
        with self._lock:
            for existing in self._runs.values():
                if (existing.event_id, existing.function_id) == (run.event_id, run.function_id):
                    return False
            now = self._clock()
            self._runs[run.id] = replace(
                run,
                status=RunStatus.PENDING,
                available_at=run.available_at or now,
                created_at=now,
                updated_at=now,
            )
            return True

    def claim_next(self) -> RunRecord | None:
        with self._lock:
            now = self._clock()
            runnable = [
                run
                for run in self._runs.values()
                if run.status == RunStatus.PENDING
                and run.available_at is not None
                and run.available_at <= now
            ]
            if not runnable:
                return None
            run = min(runnable, key=lambda r: (r.available_at, r.created_at))
            run.status = RunStatus.RUNNING
            run.locked_at = now
            run.updated_at = now
            return replace(run)

    def mark_completed(self, run_id: str, output: Any) -> None:
        self._update(run_id, status=RunStatus.COMPLETED, output=output, locked_at=None)

    def mark_failed(self, run_id: str, error: str) -> None:
        self._update(run_id, status=RunStatus.FAILED, error_message=error, locked_at=None)

    def retry_later(self, run_id: str, error: str, available_at: datetime) -> None:
        with self._lock:
            run = self._runs[run_id]
            run.attempts += 1
        self._update(
            run_id,
            status=RunStatus.PENDING,
            error_message=error,
            available_at=available_at,
            locked_at=None,
        )

    def reschedule(self, run_id: str, available_at: datetime) -> None:
        self._update(
            run_id, status=RunStatus.PENDING, available_at=available_at, locked_at=None
        )

    def find_by_id(self, run_id: str) -> RunRecord | None:
        with self._lock:
            run = self._runs.get(run_id)
            return replace(run) if run is not None else None

    def all_runs(self) -> list[RunRecord]:
        with self._lock:
            return [replace(run) for run in self._runs.values()]

    def _update(self, run_id: str, **changes: Any) -> None:
        with self._lock:
            run = self._runs[run_id]
            for name, value in changes.items():
                setattr(run, name, value)
            run.updated_at = self._clock()


class InMemoryStepStore(BaseStepStore):
    def __init__(self) -> None:
        self._steps: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load_all(self, run_id: str) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._steps.get(run_id, {}))

    def save(self, run_id: str, step_name: str, output: Any) -> None:
        with self._lock:
            self._steps.setdefault(run_id, {}).setdefault(step_name, copy.deepcopy(output))
