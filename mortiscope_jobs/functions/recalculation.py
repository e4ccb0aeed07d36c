from typing import Any, cast

from mortiscope_jobs.compute.client import ComputeWorkerClient
from mortiscope_jobs.database.repositories.analysis_result_repository import (
    AnalysisResultRepository,
)
from mortiscope_jobs.database.repositories.case_repository import CaseRepository
from mortiscope_jobs.events.models import RecalculationRequested
from mortiscope_jobs.events.registry import Event, EventName
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.step import StepContext


class RecalculateCaseFunction(JobFunction):
    """Re-run the PMI computation for a case after its inputs were edited."""

    id = "fastapi-recalculate-case"
    name = "FastAPI Recalculate Case"
    trigger = EventName.RECALCULATION_REQUESTED
    payload_types = (RecalculationRequested,)

    def __init__(
        self,
        analysis_repo: AnalysisResultRepository,
        case_repo: CaseRepository,
        compute_client: ComputeWorkerClient,
    ) -> None:
        self._analysis_repo = analysis_repo
        self._case_repo = case_repo
        self._compute_client = compute_client

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        case_id = cast(RecalculationRequested, event.data).case_id

        found = step.run(
            "update-status-to-processing",
            lambda: self._analysis_repo.mark_processing(case_id),
        )
        if not found:
            Log.warning("Recalculation skipped: case has no analysis record", case_id=case_id)
            return {"message": f"Recalculation skipped: case {case_id} no longer exists."}

        step.run(
            "run-fastapi-recalculation",
            lambda: self._compute_client.post(
                ComputeWorkerClient.RECALCULATE_PATH,
                {"case_id": case_id},
                label="Recalculation endpoint",
            ),
        )
        step.run("finalize-recalculation-status", lambda: self._finalize(case_id))

        Log.info("Recalculation completed", case_id=case_id)
        return {"message": f"Successfully completed recalculation for case: {case_id}"}

    def on_failure(self, event: Event, error: Exception) -> None:
        case_id = cast(RecalculationRequested, event.data).case_id
        self._analysis_repo.mark_failed(case_id, f"Recalculation failed: {error}")

    def _finalize(self, case_id: str) -> None:
        self._analysis_repo.mark_completed(case_id)
        self._case_repo.clear_recalculation_flag(case_id)
