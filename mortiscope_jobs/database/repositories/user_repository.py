from datetime import datetime, timedelta

from psycopg.rows import dict_row

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.database.models import UserRecord
from mortiscope_jobs.utils.time import as_utc

# A deletion event may be delivered slightly before the scheduled time.
EARLY_DELIVERY_TOLERANCE = timedelta(hours=1)


class UserRepository:
    """Database operations for the users table."""

    def find_by_email(self, email: str) -> UserRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, email, name, deletion_scheduled_at
                    FROM users
                    WHERE email = %s
                    """,
                    (email,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return UserRecord(
            id=str(row["id"]),
            email=row["email"],
            name=row["name"],
            deletion_scheduled_at=row["deletion_scheduled_at"],
        )

    def schedule_deletion(self, user_id: str, deletion_at: datetime) -> None:
        with get_connection() as conn:
            conn.execute(
                "UPDATE users SET deletion_scheduled_at = %s WHERE id = %s",
                (deletion_at, user_id),
            )
            conn.commit()

    def delete_if_due(self, user_id: str, now: datetime) -> tuple[UserRecord | None, str]:
        """Atomically re-check and delete a user scheduled for deletion.

        Returns the deleted user, or None plus the reason the deletion was skipped
        (user gone, deletion cancelled, or triggered too early).
        """
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT id, email, name, deletion_scheduled_at
                        FROM users
                        WHERE id = %s
                        FOR UPDATE
                        """,
                        (user_id,),
                    )
                    row = cur.fetchone()
                    if row is None or row["deletion_scheduled_at"] is None:
                        return None, "User not found or deletion was cancelled."
                    scheduled_at = as_utc(row["deletion_scheduled_at"])
                    if as_utc(now) < scheduled_at - EARLY_DELIVERY_TOLERANCE:
                        return None, "Triggered too early."
                    cur.execute("DELETE FROM users WHERE id = %s", (user_id,))

        user = UserRecord(
            id=str(row["id"]),
            email=row["email"],
            name=row["name"],
            deletion_scheduled_at=row["deletion_scheduled_at"],
        )
        return user, "Deletion successful."
