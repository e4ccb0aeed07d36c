from typing import Any, cast

from mortiscope_jobs.compute.client import ComputeWorkerClient
from mortiscope_jobs.compute.payloads import (
    build_case_export_payload,
    build_image_export_payload,
)
from mortiscope_jobs.database.repositories.export_repository import ExportRepository
from mortiscope_jobs.events.models import (
    CaseExportBase,
    CaseLabelledImagesExport,
    CasePdfExport,
    CaseRawDataExport,
    ImageExportBase,
    ImageLabelledImagesExport,
    ImageRawDataExport,
)
from mortiscope_jobs.events.registry import Event, EventName
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.step import StepContext


class ExportCaseDataFunction(JobFunction):
    """Hand a case export to the compute worker.

    The worker builds the archive or PDF and marks the export completed on
    its own; this function only confirms the hand-off.
    """

    id = "fastapi-export-case-data"
    name = "FastAPI Export Case Data"
    trigger = EventName.CASE_EXPORT_REQUESTED
    payload_types = (CaseRawDataExport, CaseLabelledImagesExport, CasePdfExport)

    def __init__(self, export_repo: ExportRepository, compute_client: ComputeWorkerClient) -> None:
        self._export_repo = export_repo
        self._compute_client = compute_client

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(CaseRawDataExport | CaseLabelledImagesExport | CasePdfExport, event.data)
        export_id = data.export_id

        started = step.run(
            "update-export-status-to-processing",
            lambda: self._export_repo.mark_processing(export_id),
        )
        if not started:
            Log.warning("Export skipped: record missing or finished", export_id=export_id)
            return {"message": f"Export {export_id} is no longer pending, skipping."}

        result = step.run(
            "trigger-export-worker",
            lambda: self._compute_client.post(
                ComputeWorkerClient.EXPORT_PATH,
                build_case_export_payload(data),
                label="Export worker",
            ),
        )
        Log.info("Export handed to worker", export_id=export_id, format=data.format)
        return {
            "message": f"Successfully triggered export worker for export: {export_id}",
            "worker_response": result,
        }

    def on_failure(self, event: Event, error: Exception) -> None:
        export_id = cast(CaseExportBase, event.data).export_id
        self._export_repo.mark_failed(export_id, f"Export failed: {error}")


class ExportImageDataFunction(JobFunction):
    """Hand a single-image export to the compute worker."""

    id = "fastapi-export-image-data"
    name = "FastAPI Export Image Data"
    trigger = EventName.IMAGE_EXPORT_REQUESTED
    payload_types = (ImageRawDataExport, ImageLabelledImagesExport)

    def __init__(self, export_repo: ExportRepository, compute_client: ComputeWorkerClient) -> None:
        self._export_repo = export_repo
        self._compute_client = compute_client

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(ImageRawDataExport | ImageLabelledImagesExport, event.data)
        export_id = data.export_id

        started = step.run(
            "update-image-export-status-to-processing",
            lambda: self._export_repo.mark_processing(export_id),
        )
        if not started:
            Log.warning("Image export skipped: record missing or finished", export_id=export_id)
            return {"message": f"Image export {export_id} is no longer pending, skipping."}

        result = step.run(
            "trigger-image-export-worker",
            lambda: self._compute_client.post(
                ComputeWorkerClient.EXPORT_PATH,
                build_image_export_payload(data),
                label="Image export worker",
            ),
        )
        Log.info("Image export handed to worker", export_id=export_id, format=data.format)
        return {
            "message": f"Successfully triggered image export worker for export: {export_id}",
            "worker_response": result,
        }

    def on_failure(self, event: Event, error: Exception) -> None:
        export_id = cast(ImageExportBase, event.data).export_id
        self._export_repo.mark_failed(export_id, f"Image export failed: {error}")
