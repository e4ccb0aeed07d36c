from mortiscope_jobs.compute.client import ComputeWorkerClient
from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.repositories.account_deletion_token_repository import (
    AccountDeletionTokenRepository,
)
from mortiscope_jobs.database.repositories.analysis_result_repository import (
    AnalysisResultRepository,
)
from mortiscope_jobs.database.repositories.case_repository import CaseRepository
from mortiscope_jobs.database.repositories.export_repository import ExportRepository
from mortiscope_jobs.database.repositories.session_repository import SessionRepository
from mortiscope_jobs.database.repositories.user_repository import UserRepository
from mortiscope_jobs.functions.account_deletion import (
    ConfirmAccountDeletionFunction,
    ExecuteAccountDeletionFunction,
)
from mortiscope_jobs.functions.analysis import AnalysisEventFunction
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.functions.export import ExportCaseDataFunction, ExportImageDataFunction
from mortiscope_jobs.functions.recalculation import RecalculateCaseFunction
from mortiscope_jobs.functions.sessions import (
    CheckSessionInactivityFunction,
    CleanupExpiredSessionsFunction,
    DeleteSessionFunction,
    ScheduleSessionDeletionFunction,
    TrackSessionFunction,
)
from mortiscope_jobs.mail.base import BaseMailer


def build_functions(
    settings: Settings,
    compute_client: ComputeWorkerClient,
    mailer: BaseMailer,
) -> list[JobFunction]:
    """Every job function the worker serves, wired to its repositories."""
    analysis_repo = AnalysisResultRepository()
    export_repo = ExportRepository()
    user_repo = UserRepository()
    session_repo = SessionRepository()

    return [
        AnalysisEventFunction(
            analysis_repo,
            compute_client,
            upload_grace_seconds=settings.analysis_upload_grace_seconds,
        ),
        RecalculateCaseFunction(analysis_repo, CaseRepository(), compute_client),
        ExportCaseDataFunction(export_repo, compute_client),
        ExportImageDataFunction(export_repo, compute_client),
        ConfirmAccountDeletionFunction(
            AccountDeletionTokenRepository(),
            user_repo,
            mailer,
            grace_period_days=settings.deletion_grace_period_days,
        ),
        ExecuteAccountDeletionFunction(user_repo, mailer),
        TrackSessionFunction(
            session_repo,
            inactivity_check_seconds=settings.session_inactivity_check_seconds,
        ),
        CheckSessionInactivityFunction(session_repo),
        ScheduleSessionDeletionFunction(
            session_repo,
            deletion_grace_seconds=settings.session_deletion_grace_seconds,
        ),
        DeleteSessionFunction(session_repo),
        CleanupExpiredSessionsFunction(session_repo),
    ]
