from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from mortiscope_jobs.database.models import RunRecord


class BaseRunQueue(ABC):
    """Contract for the durable queue of function runs."""

    @abstractmethod
    def enqueue(self, run: RunRecord) -> bool:
        """Persist a pending run. Returns False if the same event was already
        queued for the same function."""

    @abstractmethod
    def claim_next(self) -> RunRecord | None:
        """Lock and return the next runnable run, marking it running."""

    @abstractmethod
    def mark_completed(self, run_id: str, output: Any) -> None:
        """Mark a run as completed and store its output."""

    @abstractmethod
    def mark_failed(self, run_id: str, error: str) -> None:
        """Mark a run as permanently failed."""

    @abstractmethod
    def retry_later(self, run_id: str, error: str, available_at: datetime) -> None:
        """Consume one attempt and return the run to pending until `available_at`."""

    @abstractmethod
    def reschedule(self, run_id: str, available_at: datetime) -> None:
        """Return the run to pending until `available_at` without consuming an attempt."""

    @abstractmethod
    def find_by_id(self, run_id: str) -> RunRecord | None:
        """Find a run by ID."""

    def close(self) -> None:
        """Release backend resources. Most backends hold none."""


class BaseStepStore(ABC):
    """Contract for memoized step results, keyed by run id + step name."""

    @abstractmethod
    def load_all(self, run_id: str) -> dict[str, Any]:
        """Return every memoized step output for the run, keyed by step name."""

    @abstractmethod
    def save(self, run_id: str, step_name: str, output: Any) -> None:
        """Memoize a step output. An existing entry is never overwritten."""
