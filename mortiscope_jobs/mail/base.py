from abc import ABC, abstractmethod


class BaseMailer(ABC):
    """Contract for transactional email adapters used by account jobs."""

    @abstractmethod
    def send_deletion_scheduled(self, email: str, grace_period_days: int) -> None:
        """Tell the user their account will be deleted after the grace period.

        Raises:
            MailError: if the message could not be handed to the provider.
        """

    @abstractmethod
    def send_goodbye(self, email: str, name: str | None) -> None:
        """Confirm to the user that their account has been deleted.

        Raises:
            MailError: if the message could not be handed to the provider.
        """
