# schemas/disciplinary_schema.py
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("disciplinary")
def ensure_disciplinary_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS student_disciplinary_cases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                semester_id TEXT NOT NULL,
                week_index INTEGER NOT NULL,
                action_type TEXT,
                total_points INTEGER NOT NULL DEFAULT 0,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'draft',
                created_by TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_by TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at DATETIME,
                CHECK (status IN ('draft', 'sent_to_homeroom', 'acknowledged', 'meeting_scheduled', 'resolved'))
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_cases_status ON student_disciplinary_cases(status)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_cases_student ON student_disciplinary_cases(student_id)"))

    logger.info("✅ Installed student_disciplinary_cases table")
