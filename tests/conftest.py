from datetime import datetime, timedelta, timezone

import pytest

from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.models import RunRecord, RunStatus
from mortiscope_jobs.orchestration.client import Orchestrator
from mortiscope_jobs.orchestration.compensator import FailureCompensator
from mortiscope_jobs.orchestration.memory_store import InMemoryRunQueue, InMemoryStepStore
from mortiscope_jobs.worker.job_runner import JobRunner


class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MemoryHarness:
    """Orchestrator, in-memory stores and runner sharing one fake clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.settings = Settings(
            queue_backend="memory",
            function_retries=2,
            retry_backoff_seconds=5,
            worker_concurrency=1,
        )
        self.run_queue = InMemoryRunQueue(clock)
        self.step_store = InMemoryStepStore()
        self.orchestrator = Orchestrator(self.run_queue, default_retries=2, clock=clock)
        self.compensator = FailureCompensator()
        self.runner = JobRunner(
            self.orchestrator,
            self.run_queue,
            self.step_store,
            self.compensator,
            self.settings,
            clock,
        )

    def drain(self, max_runs: int = 50) -> int:
        """Run everything currently due. Returns how many runs were executed."""
        executed = 0
        while executed < max_runs:
            run = self.run_queue.claim_next()
            if run is None:
                break
            self.runner.run(run)
            executed += 1
        return executed

    def settle(self, max_rounds: int = 20) -> list[RunRecord]:
        """Drain, then jump the clock to the next pending run, until nothing is pending."""
        for _ in range(max_rounds):
            self.drain()
            pending = [r for r in self.run_queue.all_runs() if r.status == RunStatus.PENDING]
            if not pending:
                break
            next_due = min(r.available_at for r in pending if r.available_at is not None)
            if next_due > self.clock.now:
                self.clock.now = next_due
        return self.run_queue.all_runs()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def harness(clock: FakeClock) -> MemoryHarness:
    return MemoryHarness(clock)
