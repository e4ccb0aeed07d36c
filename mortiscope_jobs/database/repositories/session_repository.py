from datetime import datetime

from psycopg.rows import dict_row

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.database.models import SessionRecord


class SessionRepository:
    """Database operations for the user_sessions table."""

    def find_by_token(self, session_token: str) -> SessionRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, user_id, session_token, last_active_at,
                           expires_at, deletion_scheduled_at
                    FROM user_sessions
                    WHERE session_token = %s
                    """,
                    (session_token,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return SessionRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            session_token=row["session_token"],
            last_active_at=row["last_active_at"],
            expires_at=row["expires_at"],
            deletion_scheduled_at=row["deletion_scheduled_at"],
        )

    def touch(self, session_token: str, active_at: datetime) -> bool:
        """Record activity and clear any pending deletion. False if no such session."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE user_sessions
                    SET last_active_at = GREATEST(last_active_at, %s),
                        deletion_scheduled_at = NULL
                    WHERE session_token = %s
                    """,
                    (active_at, session_token),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def schedule_deletion(self, session_token: str, deletion_at: datetime) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE user_sessions
                    SET deletion_scheduled_at = %s
                    WHERE session_token = %s
                    """,
                    (deletion_at, session_token),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def delete_if_due(self, session_token: str, now: datetime) -> bool:
        """Delete the session only if its scheduled deletion is still pending and due.

        Activity recorded through `touch` clears the schedule, so a session used
        after scheduling survives.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM user_sessions
                    WHERE session_token = %s
                      AND deletion_scheduled_at IS NOT NULL
                      AND deletion_scheduled_at <= %s
                      AND last_active_at < deletion_scheduled_at
                    """,
                    (session_token, now),
                )
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def delete_expired(self, now: datetime) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM user_sessions WHERE expires_at IS NOT NULL AND expires_at < %s",
                    (now,),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted
