from mortiscope_jobs.compute.client import ComputeWorkerClient
from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.database.connection import close_pool, init_pool
from mortiscope_jobs.functions.catalog import build_functions
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.mail.factory import MailerFactory
from mortiscope_jobs.orchestration.client import Orchestrator
from mortiscope_jobs.orchestration.compensator import FailureCompensator
from mortiscope_jobs.orchestration.factory import StoreFactory
from mortiscope_jobs.worker.job_runner import JobRunner
from mortiscope_jobs.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    compute_client = ComputeWorkerClient.from_settings(settings)
    orchestrator: Orchestrator | None = None
    try:
        run_queue, step_store = StoreFactory.create(settings)
        orchestrator = Orchestrator(run_queue, default_retries=settings.function_retries)
        orchestrator.register_all(
            build_functions(settings, compute_client, MailerFactory.create(settings))
        )
        job_runner = JobRunner(
            orchestrator, run_queue, step_store, FailureCompensator(), settings
        )
        worker = Worker(run_queue, job_runner, orchestrator, settings)
        worker.run()
    finally:
        if orchestrator is not None:
            orchestrator.close()
        compute_client.close()
        close_pool()


if __name__ == "__main__":
    main()
