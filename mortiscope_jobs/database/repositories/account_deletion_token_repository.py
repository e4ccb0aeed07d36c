from psycopg.rows import dict_row

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.database.models import DeletionTokenRecord


class AccountDeletionTokenRepository:
    """Database operations for the account_deletion_tokens table."""

    def find_by_token(self, token: str) -> DeletionTokenRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT identifier, token, expires
                    FROM account_deletion_tokens
                    WHERE token = %s
                    """,
                    (token,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return DeletionTokenRecord(
            identifier=row["identifier"],
            token=row["token"],
            expires=row["expires"],
        )

    def delete(self, token: str) -> None:
        with get_connection() as conn:
            conn.execute("DELETE FROM account_deletion_tokens WHERE token = %s", (token,))
            conn.commit()
