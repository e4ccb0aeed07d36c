from typing import Any

from psycopg.types.json import Jsonb

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.orchestration.store_base import BaseStepStore


class StepRepository(BaseStepStore):
    """Database operations for the job_run_steps table."""

    def load_all(self, run_id: str) -> dict[str, Any]:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT step_name, output FROM job_run_steps WHERE run_id = %s",
                    (run_id,),
                )
                rows = cur.fetchall()
        return {step_name: output for step_name, output in rows}

    def save(self, run_id: str, step_name: str, output: Any) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO job_run_steps (run_id, step_name, output)
                VALUES (%s, %s, %s)
                ON CONFLICT (run_id, step_name) DO NOTHING
                """,
                (run_id, step_name, Jsonb(output)),
            )
            conn.commit()
