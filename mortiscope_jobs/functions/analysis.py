from typing import Any, cast

from mortiscope_jobs.compute.client import ComputeWorkerClient
from mortiscope_jobs.database.models import AnalysisOutcome
from mortiscope_jobs.database.repositories.analysis_result_repository import (
    AnalysisResultRepository,
)
from mortiscope_jobs.events.models import AnalysisRequested
from mortiscope_jobs.events.registry import Event, EventName
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.step import StepContext

NO_DETECTION_EXPLANATION = (
    "Analysis complete. No insect evidence was detected in the provided images."
)

# Worker response key -> analysis_results column.
PMI_RESPONSE_FIELDS = {
    "source_image_key": "pmi_source_image_key",
    "pmi_days": "pmi_days",
    "pmi_hours": "pmi_hours",
    "pmi_minutes": "pmi_minutes",
    "stage_used_for_calculation": "stage_used_for_calculation",
    "temperature_provided": "temperature_provided",
    "calculated_adh": "calculated_adh",
    "ldt_used": "ldt_used",
}


def parse_analysis_outcome(result: dict[str, Any]) -> AnalysisOutcome | None:
    """Extract detection totals and PMI fields; None when nothing was detected."""
    aggregated = result.get("aggregated_results") or {}
    total_counts = aggregated.get("total_counts")
    oldest_stage = aggregated.get("oldest_stage_detected")
    if not total_counts or not oldest_stage:
        return None

    pmi = result.get("pmi_estimation") or {}
    return AnalysisOutcome(
        total_counts=total_counts,
        oldest_stage_detected=oldest_stage,
        explanation=result.get("explanation"),
        pmi_fields={
            column: pmi.get(key) for key, column in PMI_RESPONSE_FIELDS.items()
        },
    )


class AnalysisEventFunction(JobFunction):
    """Full detection + PMI analysis for a newly submitted case.

    Waits for uploads to settle, runs the compute worker, then stores either
    the detection results or a "nothing detected" explanation.
    """

    id = "fastapi-analysis-event"
    name = "FastAPI Analysis Event"
    trigger = EventName.ANALYSIS_REQUESTED
    payload_types = (AnalysisRequested,)

    def __init__(
        self,
        analysis_repo: AnalysisResultRepository,
        compute_client: ComputeWorkerClient,
        upload_grace_seconds: float = 60,
    ) -> None:
        self._analysis_repo = analysis_repo
        self._compute_client = compute_client
        self._upload_grace_seconds = upload_grace_seconds

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        case_id = cast(AnalysisRequested, event.data).case_id

        step.sleep("wait-for-uploads", self._upload_grace_seconds)

        found = step.run(
            "update-status-to-processing",
            lambda: self._analysis_repo.mark_processing(case_id),
        )
        if not found:
            Log.warning("Analysis skipped: case has no analysis record", case_id=case_id)
            return {"message": f"Analysis skipped: case {case_id} no longer exists."}

        result = step.run(
            "run-full-fastapi-analysis",
            lambda: self._compute_client.post(
                ComputeWorkerClient.DETECT_PATH,
                {"case_id": case_id},
                label="Analysis endpoint",
            ),
        )

        outcome = parse_analysis_outcome(result)
        if outcome is None:
            step.run(
                "save-no-detection-result",
                lambda: self._analysis_repo.save_no_detection(
                    case_id, NO_DETECTION_EXPLANATION
                ),
            )
            Log.info("Analysis found no detections", case_id=case_id)
            return {"message": "Workflow ended early: No objects detected."}

        cancelled = step.run(
            "check-if-cancelled", lambda: not self._analysis_repo.exists(case_id)
        )
        if cancelled:
            Log.warning("Analysis cancelled before results were saved", case_id=case_id)
            return {"message": f"Analysis cancelled for case: {case_id}"}

        step.run(
            "save-analysis-results",
            lambda: self._analysis_repo.save_results(case_id, outcome),
        )
        Log.info("Analysis results saved", case_id=case_id)
        return {"message": f"Successfully completed analysis for case: {case_id}"}

    def on_failure(self, event: Event, error: Exception) -> None:
        case_id = cast(AnalysisRequested, event.data).case_id
        self._analysis_repo.mark_failed(case_id, f"Analysis failed: {error}")
