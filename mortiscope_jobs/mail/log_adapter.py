from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.mail.base import BaseMailer


class LogMailer(BaseMailer):
    """Development mailer: writes messages to the log instead of sending them."""

    def send_deletion_scheduled(self, email: str, grace_period_days: int) -> None:
        Log.info(
            f"[mail] Account deletion scheduled in {grace_period_days} days",
            to=email,
        )

    def send_goodbye(self, email: str, name: str | None) -> None:
        Log.info(f"[mail] Goodbye {name or 'there'}, your account was deleted", to=email)
