# tests/test_computation.py

import pytest
from sqlalchemy import text as sa_text

from services.grading.engine import compute_summary, round_for_display, summarize
from services.grading.models import ComponentType, GradeComponent, PeriodType
from tests.conftest import CLASS_ID, LIT, MATH, STUDENT_A, STUDENT_B


def comp(component_type, value, period_id="p-fin-1", updated_at=None):
    return GradeComponent(
        period_id=period_id,
        student_id=STUDENT_A,
        subject_id=MATH,
        class_id=CLASS_ID,
        component_type=ComponentType(component_type),
        value=value,
        updated_at=updated_at,
    )


def test_weighted_formula():
    components = [comp("regular_1", 8), comp("regular_2", 9), comp("midterm", 7), comp("final", 6)]
    assert compute_summary(components) == pytest.approx(7.0)


def test_explicit_summary_wins_over_derived():
    components = [
        comp("regular_1", 8), comp("regular_2", 9), comp("midterm", 7), comp("final", 6),
        comp("semester_1", 9.0),
    ]
    assert compute_summary(components, PeriodType.SEMESTER_1_SUMMARY) == 9.0


def test_explicit_summary_of_other_semester_is_ignored():
    components = [comp("regular_1", 8), comp("regular_2", 9), comp("midterm", 7),
                  comp("final", 6), comp("semester_2", 2.0)]
    assert compute_summary(components, PeriodType.SEMESTER_1_SUMMARY) == pytest.approx(7.0)


def test_no_components_is_none_not_zero():
    assert compute_summary([]) is None
    assert compute_summary([comp("regular_1", None), comp("final", None)]) is None


def test_zero_grades_are_a_real_result():
    assert compute_summary([comp("final", 0)]) == 0.0


def test_missing_midterm_counts_as_zero():
    # (8 + 0 + 3*6) / (1 + 5)
    assert compute_summary([comp("regular_1", 8), comp("final", 6)]) == pytest.approx(26 / 6)


def test_latest_value_per_slot_wins_in_gathered_set():
    components = [
        comp("midterm", 6, period_id="p-mid-1", updated_at="2025-10-01 08:00:00.000000"),
        comp("regular_1", 5, period_id="p-mid-1", updated_at="2025-10-01 08:00:00.000000"),
        comp("midterm", 8, period_id="p-fin-1", updated_at="2025-12-01 08:00:00.000000"),
        comp("regular_1", 7, period_id="p-fin-1", updated_at="2025-12-01 08:00:00.000000"),
        comp("final", 9, period_id="p-fin-1", updated_at="2025-12-02 08:00:00.000000"),
    ]
    # one regular_1 (7), the later midterm (8): (7 + 2*8 + 3*9) / (1 + 5)
    assert compute_summary(components, PeriodType.SEMESTER_1_SUMMARY) == pytest.approx(50 / 6)


def test_summary_cache_row_is_not_an_input():
    components = [comp("summary", 10), comp("final", 5)]
    assert compute_summary(components) == pytest.approx(3.0)
    assert compute_summary([comp("summary", 10)]) is None


def test_latest_explicit_entry_wins():
    components = [
        comp("semester_1", 6, updated_at="2025-09-01 08:00:00.000000"),
        comp("semester_1", 8, updated_at="2025-09-02 08:00:00.000000"),
    ]
    assert compute_summary(components, PeriodType.FINAL_1) == 8


def test_display_rounding_is_half_up():
    assert round_for_display(7.25) == 7.3
    assert round_for_display(7.05) == 7.1
    assert round_for_display(26 / 6) == 4.3
    assert round_for_display(None) is None
    assert round_for_display(7.256, decimals=2) == 7.26


def test_summarize_reports_source():
    assert summarize([comp("final", 6)]).source == "derived"
    assert summarize([comp("yearly", 9)], PeriodType.YEARLY_SUMMARY).source == "explicit"
    unavailable = summarize([])
    assert unavailable.source == "unavailable"
    assert not unavailable.available


def test_period_type_summary_component():
    assert PeriodType.MIDTERM_1.summary_component == ComponentType.SEMESTER_1
    assert PeriodType.FINAL_2.summary_component == ComponentType.SEMESTER_2
    assert PeriodType.SEMESTER_2_SUMMARY.summary_component == ComponentType.SEMESTER_2
    assert PeriodType.YEARLY_SUMMARY.summary_component == ComponentType.YEARLY
    assert PeriodType.SEMESTER_1_SUMMARY.is_summary
    assert not PeriodType.FINAL_1.is_summary


# ---- through the service ----

def test_compute_summary_grade_caches_derived_value(api, engine, roster, enter_grade):
    for ct, value in (("regular_1", 8), ("regular_2", 9), ("midterm", 7), ("final", 6)):
        assert enter_grade(STUDENT_A, MATH, ct, value).success

    result = api.compute_summary_grade("p-fin-1", STUDENT_A, MATH, CLASS_ID)

    assert result.success
    assert result.data["value"] == pytest.approx(7.0)
    assert result.data["display_value"] == 7.0
    assert result.data["source"] == "derived"

    with engine.connect() as conn:
        cached = conn.execute(sa_text("""
            SELECT grade_value FROM student_detailed_grades
            WHERE period_id = 'p-fin-1' AND student_id = :s AND subject_id = :sub AND component_type = 'summary'
        """), {"s": STUDENT_A, "sub": MATH}).scalar_one()
    assert cached == pytest.approx(7.0)


def test_compute_summary_grade_without_data_is_null(api, roster):
    result = api.compute_summary_grade("p-fin-1", STUDENT_B, LIT, CLASS_ID)

    assert result.success
    assert result.data["value"] is None
    assert result.data["source"] == "unavailable"


def test_summary_period_gathers_component_periods(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "regular_1", 8, period_id="p-mid-1")
    enter_grade(STUDENT_A, MATH, "midterm", 7, period_id="p-mid-1")
    enter_grade(STUDENT_A, MATH, "regular_2", 9, period_id="p-fin-1")
    enter_grade(STUDENT_A, MATH, "final", 6, period_id="p-fin-1")

    result = api.compute_summary_grade("p-sum-1", STUDENT_A, MATH, CLASS_ID)

    assert result.data["value"] == pytest.approx(7.0)


def test_summary_period_counts_each_slot_once(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "midterm", 5, period_id="p-mid-1")
    enter_grade(STUDENT_A, MATH, "regular_1", 8, period_id="p-mid-1")
    enter_grade(STUDENT_A, MATH, "midterm", 9, period_id="p-fin-1")
    enter_grade(STUDENT_A, MATH, "regular_1", 8, period_id="p-fin-1")
    enter_grade(STUDENT_A, MATH, "final", 6, period_id="p-fin-1")

    result = api.compute_summary_grade("p-sum-1", STUDENT_A, MATH, CLASS_ID)

    # (8 + 2*9 + 3*6) / (1 + 5)
    assert result.data["value"] == pytest.approx(44 / 6)
    assert result.data["display_value"] == 7.3


def test_explicit_semester_grade_in_summary_period_wins(api, roster, enter_grade):
    enter_grade(STUDENT_A, MATH, "final", 6, period_id="p-fin-1")
    enter_grade(STUDENT_A, MATH, "semester_1", 9.0, period_id="p-sum-1")

    result = api.compute_summary_grade("p-sum-1", STUDENT_A, MATH, CLASS_ID)

    assert result.data["value"] == 9.0
    assert result.data["source"] == "explicit"


def test_unknown_period_is_not_found(api, roster):
    result = api.compute_summary_grade("p-nope", STUDENT_A, MATH, CLASS_ID)

    assert not result.success
    assert result.error_kind.value == "NOT_FOUND"
