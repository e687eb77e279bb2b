# tests/conftest.py

import threading
from datetime import datetime, timedelta

import pytest

from app import build_app
from core.actor import Actor, Role
from core.settings import DBConfig, LoggingConfig, NotificationConfig, Settings, WorkflowConfig
from tests.roster_seed import RosterAdmin

ADMIN = Actor("u-admin", Role.ADMIN, "admin@school.edu", "Admin")
HOMEROOM = Actor("t-home", Role.TEACHER, "home@school.edu", "Hoa Tran")
MATH_TEACHER = Actor("t-math", Role.TEACHER, "math@school.edu", "Minh Le")
PARENT = Actor("g-an-mom", Role.PARENT, "an.mom@mail.com", "Lan Nguyen")

CLASS_ID = "c-10a"
STUDENT_A = "s-an"
STUDENT_B = "s-binh"
MATH = "sub-math"
LIT = "sub-lit"


class TickingClock:
    """Deterministic clock: every reading is one second after the previous one."""

    def __init__(self, start=datetime(2025, 9, 1, 8, 0, 0)):
        self.current = start
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.current += timedelta(seconds=1)
            return self.current

    def advance(self, **kwargs):
        with self._lock:
            self.current += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self._lock = threading.Lock()

    def notify(self, recipient_email, template_kind, payload):
        if recipient_email in self.fail_for:
            raise ConnectionError(f"mail relay refused {recipient_email}")
        with self._lock:
            self.sent.append((recipient_email, template_kind, payload))

    def recipients(self, template_kind=None):
        return sorted(r for r, kind, _ in self.sent if template_kind is None or kind == template_kind)


class ActorSwitch:
    def __init__(self, actor):
        self.actor = actor

    def __call__(self):
        return self.actor


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def actor():
    return ActorSwitch(ADMIN)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db=DBConfig(url=f"sqlite:///{tmp_path / 'records.db'}"),
        workflow=WorkflowConfig(batch_size=100, max_workers=2, batch_pause_seconds=0),
        notifications=NotificationConfig(enabled=True, workers=1),
        logging=LoggingConfig(level="DEBUG"),
    )


@pytest.fixture
def api(settings, clock, notifier, actor):
    app = build_app(current_actor=actor, settings=settings, notifier=notifier, clock=clock)
    yield app
    app.close()


@pytest.fixture
def engine(api):
    return api.engine


@pytest.fixture
def roster(engine):
    admin = RosterAdmin(engine)
    admin.add_academic_year("ay-2024", "2024-2025")
    admin.add_academic_year("ay-2025", "2025-2026", is_current=True)
    admin.add_semester("sem-1", "ay-2025", "Semester 1", "2025-09-01", "2026-01-15")

    admin.add_period("p-mid-1", "Midterm 1", "midterm_1", "ay-2025", "sem-1")
    admin.add_period("p-fin-1", "Final 1", "final_1", "ay-2025", "sem-1")
    admin.add_period("p-sum-1", "Semester 1 summary", "semester_1_summary", "ay-2025", "sem-1")

    admin.add_profile("u-admin", "Admin", "admin", "admin@school.edu")
    admin.add_profile("t-home", "Hoa Tran", "teacher", "home@school.edu")
    admin.add_profile("t-math", "Minh Le", "teacher", "math@school.edu")
    admin.add_profile("t-old", "Old Homeroom", "teacher", "old@school.edu")
    admin.add_profile(STUDENT_A, "Nguyen Van An", "student", student_code="HS001")
    admin.add_profile(STUDENT_B, "Tran Thi Binh", "student", student_code="HS002")
    admin.add_profile("g-an-mom", "Lan Nguyen", "parent", "an.mom@mail.com")
    admin.add_profile("g-an-dad", "Hung Nguyen", "parent", "an.dad@mail.com")
    admin.add_profile("g-binh", "Mai Tran", "parent", "binh.parent@mail.com")

    admin.add_class("c-9a", "9A", "ay-2024", homeroom_teacher_id="t-old")
    admin.add_class(CLASS_ID, "10A", "ay-2025", homeroom_teacher_id="t-home")
    admin.add_subject(MATH, "MATH", "Mathematics", class_id=CLASS_ID)
    admin.add_subject(LIT, "LIT", "Literature", class_id=CLASS_ID)

    # An's assignment from last year is still flagged active; only the current year counts
    admin.enroll(STUDENT_A, "c-9a")
    admin.enroll(STUDENT_A, CLASS_ID)
    admin.enroll(STUDENT_B, CLASS_ID)

    admin.link_guardian("g-an-mom", STUDENT_A, "mother")
    admin.link_guardian("g-an-dad", STUDENT_A, "father")
    admin.link_guardian("g-binh", STUDENT_B, "mother")
    return admin


@pytest.fixture
def enter_grade(api, actor):
    """Record one component as `who` (default admin) and return the result."""

    def _enter(student_id, subject_id, component_type, value, period_id="p-fin-1",
               who=ADMIN, reason=None):
        previous = actor.actor
        actor.actor = who
        try:
            return api.record_grade_change({
                "period_id": period_id,
                "student_id": student_id,
                "subject_id": subject_id,
                "class_id": CLASS_ID,
                "component_type": component_type,
                "value": value,
                "reason": reason,
            })
        finally:
            actor.actor = previous

    return _enter


@pytest.fixture
def graded_class(roster, enter_grade):
    """Both students graded in both subjects for p-fin-1."""
    for student_id in (STUDENT_A, STUDENT_B):
        for subject_id in (MATH, LIT):
            assert enter_grade(student_id, subject_id, "regular_1", 8).success
            assert enter_grade(student_id, subject_id, "final", 7).success
    return roster
