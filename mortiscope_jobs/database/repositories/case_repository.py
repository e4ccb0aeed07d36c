from mortiscope_jobs.database.connection import get_connection


class CaseRepository:
    """Database operations for the cases table."""

    def clear_recalculation_flag(self, case_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                "UPDATE cases SET recalculation_needed = FALSE WHERE id = %s",
                (case_id,),
            )
            conn.commit()
