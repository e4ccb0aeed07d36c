from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.repositories.run_repository import RunRepository
from mortiscope_jobs.database.repositories.step_repository import StepRepository
from mortiscope_jobs.orchestration.memory_store import InMemoryRunQueue, InMemoryStepStore
from mortiscope_jobs.orchestration.store_base import BaseRunQueue, BaseStepStore


class StoreFactory:
    """Creates the run queue and step store for the configured backend."""

    BACKENDS = ("postgres", "memory")

    @classmethod
    def create(cls, settings: Settings) -> tuple[BaseRunQueue, BaseStepStore]:
        backend = settings.queue_backend.lower()
        if backend == "postgres":
            return RunRepository(lease_seconds=settings.run_lease_seconds), StepRepository()
        if backend == "memory":
            return InMemoryRunQueue(), InMemoryStepStore()
        raise ValueError(
            f"Unknown queue backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
