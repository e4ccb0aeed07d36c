from datetime import datetime
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.database.models import RunRecord
from mortiscope_jobs.orchestration.store_base import BaseRunQueue

LEASE_EXPIRED_MESSAGE = "Run lease expired before the attempt finished"

_COLUMNS = """
    id::text AS id, function_id, event_id::text AS event_id, event_name, event_data,
    status, attempts, max_attempts, available_at, locked_at, error_message,
    output, created_at, updated_at
"""


class RunRepository(BaseRunQueue):
    """Database operations for the job_runs table."""

    def __init__(self, lease_seconds: int) -> None:
        self._lease_seconds = lease_seconds

    def enqueue(self, run: RunRecord) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO job_runs
                        (id, function_id, event_id, event_name, event_data,
                         status, attempts, max_attempts, available_at)
                    VALUES (%s, %s, %s, %s, %s, 'pending', 0, %s, COALESCE(%s, NOW()))
                    ON CONFLICT (event_id, function_id) DO NOTHING
                    """,
                    (
                        run.id,
                        run.function_id,
                        run.event_id,
                        run.event_name,
                        Jsonb(run.event_data),
                        run.max_attempts,
                        run.available_at,
                    ),
                )
                inserted = cur.rowcount == 1
            conn.commit()
        return inserted

    def claim_next(self) -> RunRecord | None:
        """Claim the next runnable run using SELECT FOR UPDATE SKIP LOCKED.

        Runs left in 'running' longer than the lease (a worker died mid-run)
        are claimable again with one attempt consumed; their completed steps
        stay memoized.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM job_runs
                    WHERE (status = 'pending' AND available_at <= NOW())
                       OR (status = 'running'
                           AND locked_at < NOW() - make_interval(secs => %s))
                    ORDER BY available_at, created_at
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                    """,
                    (self._lease_seconds,),
                )
                row = cur.fetchone()

                if row is None:
                    conn.commit()
                    return None

                # A reclaimed lease counts as the attempt the dead worker was making.
                cur.execute(
                    """
                    UPDATE job_runs
                    SET attempts = attempts + CASE WHEN status = 'running' THEN 1 ELSE 0 END,
                        error_message = CASE
                            WHEN status = 'running' AND attempts < max_attempts THEN %s
                            ELSE error_message
                        END,
                        status = 'running', locked_at = NOW(), updated_at = NOW()
                    WHERE id = %s
                    RETURNING attempts, error_message
                    """,
                    (LEASE_EXPIRED_MESSAGE, row["id"]),
                )
                claimed = cur.fetchone()
            conn.commit()

        row.update(claimed, status="running")
        return _to_record(row)

    def mark_completed(self, run_id: str, output: Any) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE job_runs
                SET status = 'completed', output = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (Jsonb(output), run_id),
            )
            conn.commit()

    def mark_failed(self, run_id: str, error: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE job_runs
                SET status = 'failed', error_message = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, run_id),
            )
            conn.commit()

    def retry_later(self, run_id: str, error: str, available_at: datetime) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE job_runs
                SET attempts = attempts + 1, status = 'pending', error_message = %s,
                    available_at = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (error, available_at, run_id),
            )
            conn.commit()

    def reschedule(self, run_id: str, available_at: datetime) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE job_runs
                SET status = 'pending', available_at = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (available_at, run_id),
            )
            conn.commit()

    def find_by_id(self, run_id: str) -> RunRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM job_runs WHERE id = %s", (run_id,))
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)


def _to_record(row: dict[str, Any]) -> RunRecord:
    return RunRecord(
        id=row["id"],
        function_id=row["function_id"],
        event_id=row["event_id"],
        event_name=row["event_name"],
        event_data=row["event_data"],
        status=row["status"],
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        available_at=row["available_at"],
        locked_at=row["locked_at"],
        error_message=row["error_message"],
        output=row["output"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
