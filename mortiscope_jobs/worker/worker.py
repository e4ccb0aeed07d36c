import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta

from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.events.registry import EventName
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.client import Orchestrator
from mortiscope_jobs.orchestration.store_base import BaseRunQueue
from mortiscope_jobs.utils.time import utcnow
from mortiscope_jobs.worker.job_runner import JobRunner


class Worker:
    """Poll loop: claim -> dispatch to pool -> sleep when idle."""

    def __init__(
        self,
        run_queue: BaseRunQueue,
        job_runner: JobRunner,
        orchestrator: Orchestrator,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._run_queue = run_queue
        self._job_runner = job_runner
        self._orchestrator = orchestrator
        self._settings = settings
        self._clock = clock
        self._next_cleanup_at = self._schedule_cleanup(clock())

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after dispatching that many runs (for testing).
        """
        concurrency = max(1, self._settings.worker_concurrency)
        Log.info(f"Worker started, polling for runs (concurrency {concurrency})")
        jobs_done = 0
        in_flight: set[Future[None]] = set()
        with ThreadPoolExecutor(max_workers=concurrency) as pool:
            try:
                while True:
                    if max_jobs is not None and jobs_done >= max_jobs:
                        break
                    self._maybe_trigger_cleanup()
                    in_flight = {future for future in in_flight if not future.done()}
                    if len(in_flight) >= concurrency:
                        wait(in_flight, return_when=FIRST_COMPLETED)
                        continue
                    run = self._try_claim_run()
                    if run:
                        future = pool.submit(self._job_runner.run, run)
                        future.add_done_callback(self._log_crash)
                        in_flight.add(future)
                        jobs_done += 1
                    else:
                        Log.debug("No runs available, sleeping")
                        time.sleep(self._settings.job_poll_interval_seconds)
            except KeyboardInterrupt:
                Log.info("Worker shutting down gracefully, waiting for in-flight runs")

    def _try_claim_run(self) -> RunRecord | None:
        """Attempt to claim the next runnable run. Gracefully handle DB errors."""
        try:
            return self._run_queue.claim_next()
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    def _maybe_trigger_cleanup(self) -> None:
        """Emit the periodic session cleanup event when it is due."""
        if self._next_cleanup_at is None:
            return
        now = self._clock()
        if now < self._next_cleanup_at:
            return
        try:
            self._orchestrator.send(EventName.SESSION_TRIGGER_CLEANUP, {})
        except Exception as exc:
            Log.warning(f"Could not trigger session cleanup, will retry: {exc}")
            return
        self._next_cleanup_at = self._schedule_cleanup(now)

    def _schedule_cleanup(self, now: datetime) -> datetime | None:
        interval = self._settings.session_cleanup_interval_seconds
        if interval <= 0:
            return None
        return now + timedelta(seconds=interval)

    @staticmethod
    def _log_crash(future: Future[None]) -> None:
        exc = future.exception()
        if exc is not None:
            Log.critical(f"Run crashed outside of retry handling: {exc}")
