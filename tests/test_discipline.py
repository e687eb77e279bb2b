# tests/test_discipline.py

import pytest

from core.notifications import TemplateKind
from services.discipline.models import CaseStatus
from tests.conftest import CLASS_ID, HOMEROOM, MATH_TEACHER, PARENT, STUDENT_A, STUDENT_B


@pytest.fixture
def new_case(api, roster):
    def _create(student_id=STUDENT_A, **overrides):
        payload = {
            "student_id": student_id,
            "class_id": CLASS_ID,
            "semester_id": "sem-1",
            "week_index": 3,
            "action_type": "parent_meeting",
            "total_points": 12,
            "notes": "Repeated lateness",
            **overrides,
        }
        result = api.create_disciplinary_case(payload)
        assert result.success, result.error
        return result.data["id"]

    return _create


def test_case_starts_as_draft(api, new_case):
    case = api.get_disciplinary_case(new_case()).data

    assert case["status"] == "draft"
    assert case["total_points"] == 12


def test_skipping_states_is_rejected(api, new_case):
    case_id = new_case()

    result = api.advance_disciplinary_case(case_id, "resolved")

    assert not result.success
    assert result.error_kind.value == "INVALID_TRANSITION"
    assert result.data == {"current": "draft", "target": "resolved"}
    assert api.get_disciplinary_case(case_id).data["status"] == "draft"


def test_cases_advance_one_step_at_a_time(api, new_case):
    case_id = new_case()

    for target in ("sent_to_homeroom", "acknowledged", "meeting_scheduled", "resolved"):
        result = api.advance_disciplinary_case(case_id, target)
        assert result.success, result.error
        assert result.data["status"] == target


def test_no_way_back_or_past_resolved(api, new_case):
    case_id = new_case()
    api.advance_disciplinary_case(case_id, "sent_to_homeroom")

    assert api.advance_disciplinary_case(case_id, "draft").error_kind.value == "INVALID_TRANSITION"
    assert api.advance_disciplinary_case(case_id, "sent_to_homeroom").error_kind.value == "INVALID_TRANSITION"

    for target in ("acknowledged", "meeting_scheduled", "resolved"):
        api.advance_disciplinary_case(case_id, target)
    assert "already resolved" in api.advance_disciplinary_case(case_id, "resolved").error


def test_unknown_state_is_a_validation_error(api, new_case):
    result = api.advance_disciplinary_case(new_case(), "escalated")

    assert result.error_kind.value == "VALIDATION_FAILED"


def test_sending_notifies_homeroom_teacher(api, new_case, notifier):
    case_id = new_case()

    api.advance_disciplinary_case(case_id, "sent_to_homeroom")
    api.dispatcher.flush()

    assert notifier.recipients(TemplateKind.DISCIPLINARY_CASE_SENT) == ["home@school.edu"]
    _, _, payload = notifier.sent[0]
    assert payload["case_id"] == case_id
    assert payload["student_name"] == "Nguyen Van An"


def test_teachers_may_advance(api, actor, new_case):
    case_id = new_case()
    actor.actor = MATH_TEACHER

    assert api.advance_disciplinary_case(case_id, "sent_to_homeroom").success


def test_parents_may_not_advance(api, actor, new_case):
    case_id = new_case()
    actor.actor = PARENT

    assert api.advance_disciplinary_case(case_id, "sent_to_homeroom").error_kind.value == "PERMISSION_DENIED"


def test_soft_delete_hides_case_and_leaves_siblings(api, new_case):
    deleted = new_case()
    sibling = new_case(student_id=STUDENT_B)
    api.advance_disciplinary_case(sibling, "sent_to_homeroom")
    api.advance_disciplinary_case(deleted, "sent_to_homeroom")

    assert api.delete_disciplinary_case(deleted).success

    assert api.get_disciplinary_case(deleted).error_kind.value == "NOT_FOUND"
    assert api.advance_disciplinary_case(deleted, "acknowledged").error_kind.value == "NOT_FOUND"
    assert api.delete_disciplinary_case(deleted).error_kind.value == "NOT_FOUND"
    assert api.get_disciplinary_case(sibling).data["status"] == "sent_to_homeroom"
    assert [c["id"] for c in api.list_disciplinary_cases().data["cases"]] == [sibling]


def test_only_admins_delete(api, actor, new_case):
    case_id = new_case()
    actor.actor = HOMEROOM

    assert api.delete_disciplinary_case(case_id).error_kind.value == "PERMISSION_DENIED"


def test_list_filters(api, new_case):
    first = new_case()
    second = new_case(student_id=STUDENT_B, week_index=4)
    api.advance_disciplinary_case(second, "sent_to_homeroom")

    by_student = api.list_disciplinary_cases(student_id=STUDENT_A).data["cases"]
    by_status = api.list_disciplinary_cases(status="sent_to_homeroom").data["cases"]
    by_week = api.list_disciplinary_cases(week_index=3).data["cases"]

    assert [c["id"] for c in by_student] == [first]
    assert [c["id"] for c in by_status] == [second]
    assert [c["id"] for c in by_week] == [first]


@pytest.mark.parametrize("override", [
    {"week_index": 53},
    {"week_index": 0},
    {"total_points": -1},
    {"notes": "x" * 1001},
    {"student_id": ""},
])
def test_create_validation(api, roster, override):
    payload = {"student_id": STUDENT_A, "class_id": CLASS_ID, "semester_id": "sem-1", "week_index": 3, **override}

    result = api.create_disciplinary_case(payload)

    assert result.error_kind.value == "VALIDATION_FAILED"


def test_case_status_order():
    assert CaseStatus.DRAFT.next == CaseStatus.SENT_TO_HOMEROOM
    assert CaseStatus.MEETING_SCHEDULED.next == CaseStatus.RESOLVED
    assert CaseStatus.RESOLVED.next is None
