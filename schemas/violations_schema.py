# schemas/violations_schema.py
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("violations")
def ensure_violations_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS student_violations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                semester_id TEXT NOT NULL,
                violation_type TEXT NOT NULL,
                points INTEGER NOT NULL DEFAULT 0,
                description TEXT,
                violation_date TEXT NOT NULL,
                created_by TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """))

        # class_key is '' for school-wide reports so the UNIQUE constraint holds
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS unified_violation_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                report_type TEXT NOT NULL,
                report_period TEXT NOT NULL,
                semester_id TEXT NOT NULL,
                class_key TEXT NOT NULL DEFAULT '',
                period_start TEXT NOT NULL,
                period_end TEXT NOT NULL,
                violation_count INTEGER NOT NULL DEFAULT 0,
                total_points INTEGER NOT NULL DEFAULT 0,
                violation_details TEXT,
                alert_sent_at DATETIME,
                synced_at DATETIME,
                created_by TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(report_type, report_period, semester_id, class_key)
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_violations_semester_date ON student_violations(semester_id, violation_date)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_violations_class ON student_violations(class_id)"))

    logger.info("✅ Installed violation tables")
