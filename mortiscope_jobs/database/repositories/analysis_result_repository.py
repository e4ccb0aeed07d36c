from psycopg.types.json import Jsonb

from mortiscope_jobs.database.connection import get_connection
from mortiscope_jobs.database.models import AnalysisOutcome

PMI_COLUMNS = (
    "pmi_source_image_key",
    "pmi_days",
    "pmi_hours",
    "pmi_minutes",
    "stage_used_for_calculation",
    "temperature_provided",
    "calculated_adh",
    "ldt_used",
)


class AnalysisResultRepository:
    """Database operations for the analysis_results table (one row per case)."""

    def mark_processing(self, case_id: str) -> bool:
        """Set status to processing. Returns False if the case has no analysis row."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE analysis_results SET status = 'processing' WHERE case_id = %s",
                    (case_id,),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def mark_completed(self, case_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_results
                SET status = 'completed', updated_at = NOW()
                WHERE case_id = %s
                """,
                (case_id,),
            )
            conn.commit()

    def mark_failed(self, case_id: str, explanation: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_results
                SET status = 'failed', explanation = %s, updated_at = NOW()
                WHERE case_id = %s
                """,
                (explanation, case_id),
            )
            conn.commit()

    def save_no_detection(self, case_id: str, explanation: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_results
                SET status = 'completed', explanation = %s, updated_at = NOW()
                WHERE case_id = %s
                """,
                (explanation, case_id),
            )
            conn.commit()

    def save_results(self, case_id: str, outcome: AnalysisOutcome) -> None:
        """Persist detection totals, PMI estimation and explanation as completed."""
        assignments = ", ".join(f"{column} = %s" for column in PMI_COLUMNS)
        pmi_values = tuple(outcome.pmi_fields.get(column) for column in PMI_COLUMNS)
        with get_connection() as conn:
            conn.execute(
                f"""
                UPDATE analysis_results
                SET status = 'completed',
                    total_counts = %s,
                    oldest_stage_detected = %s,
                    explanation = %s,
                    {assignments},
                    updated_at = NOW()
                WHERE case_id = %s
                """,
                (
                    Jsonb(outcome.total_counts),
                    outcome.oldest_stage_detected,
                    outcome.explanation,
                    *pmi_values,
                    case_id,
                ),
            )
            conn.commit()

    def exists(self, case_id: str) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT 1 FROM analysis_results WHERE case_id = %s",
                    (case_id,),
                )
                return cur.fetchone() is not None
