from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "mortiscope"
    db_username: str = "mortiscope"
    db_password: str = "secret"
    db_connect_timeout_seconds: int = 10
    db_statement_timeout_ms: int = 30_000

    queue_backend: str = "postgres"
    job_poll_interval_seconds: int = 5
    worker_concurrency: int = 4
    function_retries: int = 2
    retry_backoff_seconds: int = 5
    run_lease_seconds: int = 3600

    worker_base_url: str = ""
    worker_secret_key: str = ""
    worker_timeout_seconds: int = 1800

    analysis_upload_grace_seconds: int = 60
    deletion_grace_period_days: int = 30
    session_inactivity_check_seconds: int = 24 * 60 * 60
    session_deletion_grace_seconds: int = 7 * 24 * 60 * 60
    session_cleanup_interval_seconds: int = 24 * 60 * 60

    mail_provider: str = "log"
    mail_from_address: str = "MortiScope <noreply@mortiscope.app>"
    resend_api_key: str = ""
    mail_timeout_seconds: int = 15
