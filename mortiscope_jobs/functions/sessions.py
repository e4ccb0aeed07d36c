"""Session lifecycle jobs.

Each tracked activity schedules an inactivity check. An idle session is
marked for deletion and removed after a grace period unless it is used again
in the meantime. A periodic cleanup removes sessions past their expiry.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, cast

from mortiscope_jobs.database.repositories.session_repository import SessionRepository
from mortiscope_jobs.events.models import (
    SessionCheckInactivity,
    SessionDelete,
    SessionScheduleDeletion,
    SessionTrack,
    SessionTriggerCleanup,
)
from mortiscope_jobs.events.registry import Event, EventName
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.step import StepContext
from mortiscope_jobs.utils.time import as_utc, utcnow


class _SessionFunction(JobFunction):
    """Shared wiring for session jobs; failures only need a critical log entry."""

    def __init__(
        self,
        session_repo: SessionRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_repo = session_repo
        self._clock = clock

    def on_failure(self, event: Event, error: Exception) -> None:
        Log.critical(
            f"Function '{self.id}' failed terminally",
            function=self.id,
            user_id=getattr(event.data, "user_id", None),
            error=str(error),
        )


class TrackSessionFunction(_SessionFunction):
    id = "track-session-activity"
    name = "Track Session Activity"
    trigger = EventName.SESSION_TRACK
    payload_types = (SessionTrack,)

    def __init__(
        self,
        session_repo: SessionRepository,
        inactivity_check_seconds: float = 86400,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_repo, clock)
        self._inactivity_check_seconds = inactivity_check_seconds

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(SessionTrack, event.data)

        # Resolved inside a step so every attempt sees the same timestamp.
        active_at_iso = step.run(
            "resolve-activity-time",
            lambda: (data.last_active_at or self._clock()).isoformat(),
        )
        active_at = datetime.fromisoformat(active_at_iso)

        found = step.run(
            "record-session-activity",
            lambda: self._session_repo.touch(data.session_token, active_at),
        )
        if not found:
            return {"message": "Session not found, activity not recorded."}

        step.send_event(
            "schedule-inactivity-check",
            EventName.SESSION_CHECK_INACTIVITY,
            {
                "userId": data.user_id,
                "sessionToken": data.session_token,
                "lastActiveAt": active_at_iso,
            },
            ts=active_at + timedelta(seconds=self._inactivity_check_seconds),
        )
        return {"message": "Session activity recorded", "last_active_at": active_at_iso}


class CheckSessionInactivityFunction(_SessionFunction):
    id = "check-session-inactivity"
    name = "Check Session Inactivity"
    trigger = EventName.SESSION_CHECK_INACTIVITY
    payload_types = (SessionCheckInactivity,)

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(SessionCheckInactivity, event.data)

        last_active_iso = step.run(
            "load-session-activity", lambda: self._last_active_at(data.session_token)
        )
        if last_active_iso is None:
            return {"message": "Session no longer exists."}
        if as_utc(datetime.fromisoformat(last_active_iso)) > as_utc(data.last_active_at):
            return {"message": "Session was active since the check was scheduled."}

        step.send_event(
            "request-session-deletion",
            EventName.SESSION_SCHEDULE_DELETION,
            {"userId": data.user_id, "sessionToken": data.session_token},
        )
        Log.info("Inactive session flagged for deletion", user_id=data.user_id)
        return {"message": "Session inactive, deletion requested."}

    def _last_active_at(self, session_token: str) -> str | None:
        session = self._session_repo.find_by_token(session_token)
        if session is None:
            return None
        return session.last_active_at.isoformat()


class ScheduleSessionDeletionFunction(_SessionFunction):
    id = "schedule-session-deletion"
    name = "Schedule Session Deletion"
    trigger = EventName.SESSION_SCHEDULE_DELETION
    payload_types = (SessionScheduleDeletion,)

    def __init__(
        self,
        session_repo: SessionRepository,
        deletion_grace_seconds: float = 7 * 86400,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_repo, clock)
        self._deletion_grace_seconds = deletion_grace_seconds

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(SessionScheduleDeletion, event.data)

        deletion_at_iso = step.run(
            "mark-session-for-deletion", lambda: self._schedule(data.session_token)
        )
        if deletion_at_iso is None:
            return {"message": "Session no longer exists."}

        step.send_event(
            "schedule-session-delete",
            EventName.SESSION_DELETE,
            {"userId": data.user_id, "sessionToken": data.session_token},
            ts=datetime.fromisoformat(deletion_at_iso),
        )
        return {"message": "Session deletion scheduled", "deletion_at": deletion_at_iso}

    def _schedule(self, session_token: str) -> str | None:
        deletion_at = self._clock() + timedelta(seconds=self._deletion_grace_seconds)
        if not self._session_repo.schedule_deletion(session_token, deletion_at):
            return None
        return deletion_at.isoformat()


class DeleteSessionFunction(_SessionFunction):
    id = "delete-session"
    name = "Delete Session"
    trigger = EventName.SESSION_DELETE
    payload_types = (SessionDelete,)

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        data = cast(SessionDelete, event.data)

        deleted = step.run(
            "delete-session-if-due",
            lambda: self._session_repo.delete_if_due(data.session_token, self._clock()),
        )
        if not deleted:
            return {"message": "Session deletion skipped: session active, gone or not due."}

        Log.info("Inactive session deleted", user_id=data.user_id)
        return {"message": "Session deleted."}


class CleanupExpiredSessionsFunction(_SessionFunction):
    id = "cleanup-expired-sessions"
    name = "Cleanup Expired Sessions"
    trigger = EventName.SESSION_TRIGGER_CLEANUP
    payload_types = (SessionTriggerCleanup,)

    def handle(self, event: Event, step: StepContext) -> dict[str, Any]:
        deleted = step.run(
            "delete-expired-sessions",
            lambda: self._session_repo.delete_expired(self._clock()),
        )
        Log.info(f"Removed {deleted} expired session(s)")
        return {"message": "Expired sessions removed.", "deleted": deleted}
