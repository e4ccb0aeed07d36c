from mortiscope_jobs.config.settings import Settings
from mortiscope_jobs.mail.base import BaseMailer
from mortiscope_jobs.mail.log_adapter import LogMailer
from mortiscope_jobs.mail.resend_adapter import ResendMailer


class MailerFactory:
    """Creates the configured mail adapter."""

    PROVIDERS = ("log", "resend")

    @classmethod
    def create(cls, settings: Settings) -> BaseMailer:
        provider = settings.mail_provider.lower()
        if provider == "log":
            return LogMailer()
        if provider == "resend":
            if not settings.resend_api_key:
                raise ValueError("resend_api_key is required for mail_provider=resend")
            return ResendMailer(
                api_key=settings.resend_api_key,
                from_address=settings.mail_from_address,
                timeout_seconds=settings.mail_timeout_seconds,
            )
        raise ValueError(
            f"Unknown mail provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )
