# schemas/grade_audit_schema.py
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("grade_audit")
def ensure_grade_audit_schema(engine: Engine) -> None:
    """
    Append-only ledger of grade value transitions.
    Only status / processed_by / processed_at / review_note change after insert.
    """
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS grade_audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                grade_id INTEGER NOT NULL,
                student_id TEXT NOT NULL,
                period_id TEXT NOT NULL,
                component_type TEXT NOT NULL,
                student_name TEXT,
                subject_name TEXT,
                old_value REAL,
                new_value REAL,
                changed_by TEXT NOT NULL,
                changed_at DATETIME NOT NULL,
                change_reason TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                processed_by TEXT,
                processed_at DATETIME,
                review_note TEXT,
                CHECK (status IN ('pending', 'approved', 'rejected'))
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_grade_audit_grade ON grade_audit_logs(grade_id, changed_at)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_grade_audit_student ON grade_audit_logs(student_id, period_id)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_grade_audit_status ON grade_audit_logs(status)"))

    logger.info("✅ Installed grade_audit_logs table")
