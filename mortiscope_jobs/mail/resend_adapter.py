import httpx

from mortiscope_jobs.mail.base import BaseMailer
from mortiscope_jobs.mail.exceptions import MailError


class ResendMailer(BaseMailer):
    """Mail adapter for the Resend HTTP API."""

    API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._from_address = from_address
        self._client = httpx.Client(
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def send_deletion_scheduled(self, email: str, grace_period_days: int) -> None:
        self._send(
            to=email,
            subject="Your MortiScope account is scheduled for deletion",
            html=(
                "<p>We received your request to delete your MortiScope account.</p>"
                f"<p>Your account and all associated case data will be permanently "
                f"deleted in {grace_period_days} days. Sign in before then to cancel.</p>"
            ),
        )

    def send_goodbye(self, email: str, name: str | None) -> None:
        greeting = f"Hi {name}," if name else "Hi,"
        self._send(
            to=email,
            subject="Your MortiScope account has been deleted",
            html=(
                f"<p>{greeting}</p>"
                "<p>Your MortiScope account and its data have been permanently deleted.</p>"
            ),
        )

    def _send(self, *, to: str, subject: str, html: str) -> None:
        try:
            response = self._client.post(
                self.API_URL,
                json={"from": self._from_address, "to": [to], "subject": subject, "html": html},
            )
        except httpx.HTTPError as exc:
            raise MailError(f"Mail provider network error: {exc}") from exc
        if not response.is_success:
            raise MailError(
                f"Mail provider rejected message ({response.status_code}): {response.text}"
            )
