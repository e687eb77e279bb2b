# schemas/grades_schema.py
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("grades")
def ensure_grades_schema(engine: Engine) -> None:
    """
    One row per (period, student, subject, class, component) cell.
    Rows are never deleted; a new value replaces the old one in place and
    the previous value lives on in grade_audit_logs.
    """
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS student_detailed_grades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                period_id TEXT NOT NULL,
                student_id TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                component_type TEXT NOT NULL,
                grade_value REAL,
                locked INTEGER NOT NULL DEFAULT 0,
                created_by TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_by TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(period_id, student_id, subject_id, class_id, component_type),
                CHECK (grade_value IS NULL OR (grade_value >= 0 AND grade_value <= 10))
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_grades_period_class ON student_detailed_grades(period_id, class_id)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_grades_student ON student_detailed_grades(student_id, period_id)"))

    logger.info("✅ Installed student_detailed_grades table")
