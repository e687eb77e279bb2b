# tests/test_grade_changes.py

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import text as sa_text

from core.errors import LockedComponent
from services.grading.models import CellKey, ComponentType, GradeComponent
from services.grading.store import GradeStore
from tests.conftest import ADMIN, CLASS_ID, HOMEROOM, MATH, MATH_TEACHER, PARENT, STUDENT_A


def grade_rows(engine, component_type="final"):
    with engine.connect() as conn:
        return conn.execute(sa_text("""
            SELECT id, grade_value FROM student_detailed_grades
            WHERE period_id = 'p-fin-1' AND student_id = :s AND subject_id = :sub AND component_type = :ct
        """), {"s": STUDENT_A, "sub": MATH, "ct": component_type}).fetchall()


def test_second_write_replaces_value_and_adds_audit_entry(api, engine, roster, enter_grade):
    first = enter_grade(STUDENT_A, MATH, "final", 6)
    second = enter_grade(STUDENT_A, MATH, "final", 8, reason="re-marked")

    assert first.success and second.success
    assert first.data["created"] and not second.data["created"]
    rows = grade_rows(engine)
    assert len(rows) == 1
    assert rows[0].grade_value == 8

    history = api.history(STUDENT_A, "p-fin-1").data["entries"]
    assert [(e["old_value"], e["new_value"]) for e in history] == [(6, 8), (None, 6)]
    assert history[0]["change_reason"] == "re-marked"
    assert history[0]["student_name"] == "Nguyen Van An"
    assert history[0]["subject_name"] == "Mathematics"


def test_creation_is_self_approved(api, roster, enter_grade):
    result = enter_grade(STUDENT_A, MATH, "regular_1", 7, who=MATH_TEACHER)

    assert result.data["review_status"] == "approved"
    entry = api.history(STUDENT_A).data["entries"][0]
    assert entry["processed_by"] == MATH_TEACHER.id


@pytest.mark.parametrize("value", [-0.5, 10.5, "abc", float("nan"), None])
def test_invalid_values_are_rejected_before_writing(api, engine, roster, enter_grade, value):
    result = enter_grade(STUDENT_A, MATH, "final", value)

    assert not result.success
    assert result.error_kind.value == "VALIDATION_FAILED"
    assert "value" in result.error
    assert grade_rows(engine) == []


def test_summary_component_cannot_be_entered(api, engine, roster, enter_grade):
    result = enter_grade(STUDENT_A, MATH, "summary", 8)

    assert not result.success
    assert result.error_kind.value == "VALIDATION_FAILED"
    assert grade_rows(engine, "summary") == []


def test_parents_cannot_write_grades(api, engine, roster, enter_grade):
    result = enter_grade(STUDENT_A, MATH, "final", 8, who=PARENT)

    assert not result.success
    assert result.error_kind.value == "PERMISSION_DENIED"
    assert grade_rows(engine) == []


def test_teacher_correcting_own_entry_is_approved(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, who=MATH_TEACHER)
    result = enter_grade(STUDENT_A, MATH, "final", 6.5, who=MATH_TEACHER)

    assert result.data["review_status"] == "approved"
    assert not result.data["requires_review"]


def test_teacher_changing_someone_elses_entry_needs_review(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, who=MATH_TEACHER)
    result = enter_grade(STUDENT_A, MATH, "final", 9, who=HOMEROOM)

    assert result.data["review_status"] == "pending"
    assert result.data["value"] == 9
    pending = api.pending_reviews().data["entries"]
    assert [e["id"] for e in pending] == [result.data["audit_entry_id"]]


def test_admin_changes_are_approved(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, who=MATH_TEACHER)
    result = enter_grade(STUDENT_A, MATH, "final", 9, who=ADMIN)

    assert result.data["review_status"] == "approved"


def test_locked_component_changes_go_to_review(api, actor, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, who=MATH_TEACHER)

    locked = api.lock_grades("p-fin-1", CLASS_ID, MATH)
    assert locked.success and locked.data["locked"] == 1

    result = enter_grade(STUDENT_A, MATH, "final", 7, who=MATH_TEACHER)
    assert result.success
    assert result.data["review_status"] == "pending"


def test_only_admins_lock_grades(api, actor, roster):
    actor.actor = MATH_TEACHER

    result = api.lock_grades("p-fin-1", CLASS_ID)

    assert result.error_kind.value == "PERMISSION_DENIED"


def test_store_refuses_direct_overwrite_of_locked_row(api, engine, roster, enter_grade, clock):
    enter_grade(STUDENT_A, MATH, "final", 6)
    api.lock_grades("p-fin-1", CLASS_ID)
    store = GradeStore()
    replacement = GradeComponent("p-fin-1", STUDENT_A, MATH, CLASS_ID, ComponentType.FINAL, 10)

    with pytest.raises(LockedComponent):
        with engine.begin() as conn:
            store.upsert_component(conn, replacement, "someone", "2030-01-01 00:00:00.000000")

    assert grade_rows(engine)[0].grade_value == 6


def test_history_is_newest_first_and_filtered_by_period(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "regular_1", 5, period_id="p-mid-1")
    enter_grade(STUDENT_A, MATH, "regular_1", 6)
    enter_grade(STUDENT_A, MATH, "regular_1", 7)

    everything = api.history(STUDENT_A).data["entries"]
    final_only = api.history(STUDENT_A, "p-fin-1").data["entries"]

    assert [e["new_value"] for e in everything] == [7, 6, 5]
    assert [e["new_value"] for e in final_only] == [7, 6]


def test_concurrent_writes_to_one_slot_chain_in_the_audit_log(api, roster, enter_grade):
    values = [4, 5, 6, 7, 8, 9]
    with ThreadPoolExecutor(max_workers=len(values)) as pool:
        results = list(pool.map(lambda v: enter_grade(STUDENT_A, MATH, "final", v), values))

    assert all(r.success for r in results)
    assert sum(1 for r in results if r.data["created"]) == 1

    entries = sorted(api.history(STUDENT_A, "p-fin-1").data["entries"], key=lambda e: e["id"])
    assert len(entries) == len(values)
    assert entries[0]["old_value"] is None
    for before, after in zip(entries, entries[1:]):
        assert after["old_value"] == before["new_value"]


# ---- review ----

def _pending_change(enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, who=MATH_TEACHER)
    return enter_grade(STUDENT_A, MATH, "final", 9, who=HOMEROOM).data["audit_entry_id"]


def test_approving_stamps_the_entry(api, engine, roster, enter_grade):
    entry_id = _pending_change(enter_grade)

    result = api.review_audit_entry(entry_id, "approved", note="confirmed with teacher")

    assert result.success
    assert result.data["entry"]["status"] == "approved"
    assert result.data["entry"]["processed_by"] == ADMIN.id
    assert result.data["reversal"] is None
    assert grade_rows(engine)[0].grade_value == 9
    assert api.pending_reviews().data["entries"] == []


def test_rejecting_restores_old_value_with_reversal_entry(api, engine, roster, enter_grade):
    entry_id = _pending_change(enter_grade)

    result = api.review_audit_entry(entry_id, "rejected", note="not justified")

    assert result.success
    assert result.data["entry"]["status"] == "rejected"
    assert result.data["reversal"]["old_value"] == 9
    assert result.data["reversal"]["new_value"] == 6
    assert grade_rows(engine)[0].grade_value == 6
    assert api.check_grade_consistency("p-fin-1", CLASS_ID).success


def test_entry_can_only_be_reviewed_once(api, roster, enter_grade):
    entry_id = _pending_change(enter_grade)
    api.review_audit_entry(entry_id, "approved")

    again = api.review_audit_entry(entry_id, "rejected")

    assert again.error_kind.value == "INVALID_TRANSITION"


def test_superseded_entry_cannot_be_rejected(api, roster, enter_grade):
    entry_id = _pending_change(enter_grade)
    enter_grade(STUDENT_A, MATH, "final", 9.5, who=ADMIN)

    result = api.review_audit_entry(entry_id, "rejected")

    assert not result.success
    assert result.error_kind.value == "INVALID_TRANSITION"


def test_review_requires_admin(api, actor, roster, enter_grade):
    entry_id = _pending_change(enter_grade)
    actor.actor = HOMEROOM

    assert api.review_audit_entry(entry_id, "approved").error_kind.value == "PERMISSION_DENIED"
    assert api.pending_reviews().error_kind.value == "PERMISSION_DENIED"


def test_review_decision_must_be_final(api, roster, enter_grade):
    entry_id = _pending_change(enter_grade)

    result = api.review_audit_entry(entry_id, "pending")

    assert result.error_kind.value == "VALIDATION_FAILED"


# ---- consistency ----

def test_consistent_grades_pass_the_check(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6)
    enter_grade(STUDENT_A, MATH, "final", 7)
    api.compute_summary_grade("p-fin-1", STUDENT_A, MATH, CLASS_ID)

    result = api.check_grade_consistency("p-fin-1", CLASS_ID)

    assert result.success
    # the summary cache row is not an entered grade
    assert result.data["checked"] == 1


def test_unaudited_write_needs_attention(api, engine, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6)
    with engine.begin() as conn:
        conn.execute(sa_text("UPDATE student_detailed_grades SET grade_value = 10 WHERE component_type = 'final'"))
        conn.execute(sa_text("""
            INSERT INTO student_detailed_grades (period_id, student_id, subject_id, class_id, component_type, grade_value)
            VALUES ('p-fin-1', :s, :sub, :c, 'midterm', 5)
        """), {"s": STUDENT_A, "sub": MATH, "c": CLASS_ID})

    result = api.check_grade_consistency("p-fin-1", CLASS_ID)

    assert not result.success
    assert result.error_kind.value == "NEEDS_ATTENTION"
    problems = sorted(a["problem"] for a in result.data["anomalies"])
    assert problems == ["missing_audit_entry", "value_mismatch"]


def test_store_reads_cell(engine, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "regular_1", 8)
    enter_grade(STUDENT_A, MATH, "final", 6)

    with engine.connect() as conn:
        components = GradeStore().get_components(conn, CellKey("p-fin-1", STUDENT_A, MATH, CLASS_ID))

    assert [c.component_type for c in components] == [ComponentType.FINAL, ComponentType.REGULAR_1]
    assert all(c.created_by == ADMIN.id for c in components)
