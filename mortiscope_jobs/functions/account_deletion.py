"""Two-phase account deletion.

Confirming a deletion token schedules the user for deletion after a grace
period and queues a delayed execute event. The execute function re-checks the
schedule inside a transaction, so a user who cancelled in the meantime keeps
their account.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, cast

from mortiscope_jobs.database.repositories.account_deletion_token_repository import (
    AccountDeletionTokenRepository,
)
from mortiscope_jobs.database.repositories.user_repository import UserRepository
from mortiscope_jobs.events.models import AccountDeletionConfirmed, AccountDeletionExecute
from mortiscope_jobs.events.registry import Event, EventName
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.functions.exceptions import DeletionTokenError
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.mail.base import BaseMailer
from mortiscope_jobs.mail.exceptions import MailError
from mortiscope_jobs.orchestration.step import StepContext
from mortiscope_jobs.utils.time import as_utc, utcnow


class ConfirmAccountDeletionFunction(JobFunction):
    id = "confirm-account-deletion"
    name = "Confirm Account Deletion"
    trigger = EventName.ACCOUNT_DELETION_CONFIRMED
    payload_types = (AccountDeletionConfirmed,)

    def __init__(
        self,
        token_repo: AccountDeletionTokenRepository,
        user_repo: UserRepository,
        mailer: BaseMailer,
        grace_period_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._token_repo = token_repo
        self._user_repo = user_repo
        self._mailer = mailer
        self._grace_period_days = grace_period_days
        self._clock = clock

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        token = cast(AccountDeletionConfirmed, event.data).token

        deletion_token = step.run(
            "validate-deletion-token", lambda: self._validate_token(token)
        )
        step.run(
            "invalidate-token",
            lambda: self._token_repo.delete(deletion_token["token"]),
        )
        scheduled = step.run(
            "schedule-user-deletion",
            lambda: self._schedule_user_deletion(deletion_token["identifier"]),
        )

        if scheduled["user_id"] and scheduled["deletion_date"]:
            step.send_event(
                "schedule-exact-deletion",
                EventName.ACCOUNT_DELETION_EXECUTE,
                {"userId": scheduled["user_id"]},
                ts=datetime.fromisoformat(scheduled["deletion_date"]),
            )
        else:
            Log.info(scheduled["message"], identifier=deletion_token["identifier"])

        return {"message": "Account deletion confirmation processed successfully"}

    def on_failure(self, event: Event, error: Exception) -> None:
        Log.critical(
            f"Function '{self.id}' failed terminally. The user's deletion was NOT scheduled.",
            function=self.id,
            error=str(error),
        )

    def _validate_token(self, token: str) -> dict[str, Any]:
        record = self._token_repo.find_by_token(token)
        if record is None:
            raise DeletionTokenError("Token not found")
        if as_utc(record.expires) < self._clock():
            raise DeletionTokenError("Token has expired")
        return {
            "identifier": record.identifier,
            "token": record.token,
            "expires": record.expires.isoformat(),
        }

    def _schedule_user_deletion(self, email: str) -> dict[str, Any]:
        user = self._user_repo.find_by_email(email)
        if user is None or user.deletion_scheduled_at is not None:
            return {
                "message": "User not found or deletion already scheduled",
                "user_id": None,
                "deletion_date": None,
            }

        deletion_date = self._clock() + timedelta(days=self._grace_period_days)
        self._user_repo.schedule_deletion(user.id, deletion_date)

        try:
            self._mailer.send_deletion_scheduled(user.email, self._grace_period_days)
        except MailError as exc:
            # The schedule stands; a missing notice must not undo it.
            Log.critical(
                "Account deletion was scheduled, but the notification email failed to send",
                email=user.email,
                error=str(exc),
            )

        return {
            "message": f"Account deletion scheduled for {user.email}",
            "user_id": user.id,
            "deletion_date": deletion_date.isoformat(),
        }


class ExecuteAccountDeletionFunction(JobFunction):
    id = "execute-account-deletion"
    name = "Execute Account Deletion"
    trigger = EventName.ACCOUNT_DELETION_EXECUTE
    payload_types = (AccountDeletionExecute,)

    def __init__(
        self,
        user_repo: UserRepository,
        mailer: BaseMailer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._user_repo = user_repo
        self._mailer = mailer
        self._clock = clock

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        user_id = cast(AccountDeletionExecute, event.data).user_id

        deletion = step.run(
            "verify-and-delete-user-atomically", lambda: self._delete_user(user_id)
        )
        if not deletion["deleted"]:
            Log.info(f"User deletion skipped: {deletion['message']}", user_id=user_id)
            return {"message": f"User deletion skipped: {deletion['message']}"}

        step.run(
            "send-goodbye-email",
            lambda: self._send_goodbye(deletion["user_email"], deletion["user_name"]),
        )

        return {
            "message": f"Account deletion completed successfully for {deletion['user_email']}",
            "user_id": user_id,
            "user_email": deletion["user_email"],
            "deleted_at": deletion["deleted_at"],
        }

    def on_failure(self, event: Event, error: Exception) -> None:
        user_id = cast(AccountDeletionExecute, event.data).user_id
        Log.critical(
            f"Function '{self.id}' failed terminally for user {user_id}. "
            "MANUAL INTERVENTION REQUIRED.",
            function=self.id,
            user_id=user_id,
            error=str(error),
        )

    def _delete_user(self, user_id: str) -> dict[str, Any]:
        now = self._clock()
        user, reason = self._user_repo.delete_if_due(user_id, now)
        if user is None:
            return {"deleted": False, "message": reason}
        return {
            "deleted": True,
            "message": reason,
            "user_email": user.email,
            "user_name": user.name,
            "deleted_at": now.isoformat(),
        }

    def _send_goodbye(self, email: str, name: str | None) -> None:
        try:
            self._mailer.send_goodbye(email, name)
        except MailError as exc:
            Log.error(
                "Account was deleted, but the goodbye email failed to send",
                email=email,
                error=str(exc),
            )
            return
        Log.info("Goodbye email sent", email=email)
