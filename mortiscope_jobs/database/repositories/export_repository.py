from mortiscope_jobs.database.connection import get_connection


class ExportRepository:
    """Database operations for the exports table.

    The compute worker writes `completed` out-of-band; this side only moves
    a row to `processing` or `failed` and never away from `completed`.
    """

    def mark_processing(self, export_id: str) -> bool:
        """Move a pending export to processing. Returns False if the row is gone
        or already terminal."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE exports
                    SET status = 'processing'
                    WHERE id = %s AND status IN ('pending', 'processing')
                    """,
                    (export_id,),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def mark_failed(self, export_id: str, failure_reason: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE exports
                SET status = 'failed', failure_reason = %s
                WHERE id = %s AND status <> 'completed'
                """,
                (failure_reason, export_id),
            )
            conn.commit()

