# schemas/roster_schema.py
"""
Roster tables the grade workflows read from:
academic years, semesters, grade periods, profiles, classes, subjects,
class/subject links, enrolments and guardian links.
"""
from __future__ import annotations
import logging
from sqlalchemy.engine import Engine
from sqlalchemy import text as sa_text
from core.schema_registry import register

logger = logging.getLogger(__name__)


@register("roster")
def ensure_roster_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS academic_years (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_current INTEGER NOT NULL DEFAULT 0,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS semesters (
                id TEXT PRIMARY KEY,
                academic_year_id TEXT NOT NULL,
                name TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS grade_periods (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                period_type TEXT NOT NULL,
                academic_year_id TEXT NOT NULL,
                semester_id TEXT,
                status TEXT NOT NULL DEFAULT 'open',
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                CHECK (period_type IN (
                    'midterm_1', 'final_1', 'semester_1_summary',
                    'midterm_2', 'final_2', 'semester_2_summary',
                    'yearly_summary'
                ))
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                email TEXT,
                role TEXT NOT NULL,
                student_code TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                CHECK (role IN ('admin', 'teacher', 'parent', 'student'))
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS classes (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                academic_year_id TEXT NOT NULL,
                homeroom_teacher_id TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS subjects (
                id TEXT PRIMARY KEY,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS class_subjects (
                class_id TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                PRIMARY KEY (class_id, subject_id)
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS student_class_assignments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id TEXT NOT NULL,
                class_id TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(student_id, class_id)
            )
        """))

        conn.execute(sa_text("""
            CREATE TABLE IF NOT EXISTS parent_student_relationships (
                parent_id TEXT NOT NULL,
                student_id TEXT NOT NULL,
                relationship TEXT,
                PRIMARY KEY (parent_id, student_id)
            )
        """))

        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_periods_year_semester ON grade_periods(academic_year_id, semester_id)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_classes_year ON classes(academic_year_id)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_sca_class ON student_class_assignments(class_id)"))
        conn.execute(sa_text("CREATE INDEX IF NOT EXISTS idx_psr_student ON parent_student_relationships(student_id)"))

    logger.info("✅ Installed roster tables")
