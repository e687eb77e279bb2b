# schemas/submissions_schema.py
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("submissions")
def ensure_submissions_schema(engine: Engine) -> None:
    """
    admin_student_submissions: Admin -> Homeroom Teacher hop, one row per
    (period, student); submission_count grows on every resend.

    parent_grade_broadcasts: Homeroom Teacher -> Parents hop, one row per
    (period, class) recording the last broadcast.
    """
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS admin_student_submissions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                period_id TEXT NOT NULL,
                student_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                admin_id TEXT,
                homeroom_teacher_id TEXT NOT NULL,
                submission_count INTEGER NOT NULL DEFAULT 1,
                status TEXT NOT NULL DEFAULT 'draft',
                submission_reason TEXT,
                submitted_at DATETIME,
                synced_at DATETIME,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(period_id, student_id),
                CHECK (status IN ('draft', 'submitted'))
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS parent_grade_broadcasts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                period_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                sent_by TEXT,
                send_count INTEGER NOT NULL DEFAULT 1,
                recipient_count INTEGER NOT NULL DEFAULT 0,
                sent_at DATETIME,
                UNIQUE(period_id, class_id)
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_submissions_period_class ON admin_student_submissions(period_id, class_id)"))

    logger.info("✅ Installed submission tables")
