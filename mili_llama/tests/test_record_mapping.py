import datetime

from mili_llama.constants import DEVICE_TZ
from mili_llama.helper.record_mapping_helper import (
    as_float,
    as_int,
    assignment_from_data,
    assignment_to_data,
    class_from_data,
    class_to_data,
    school_from_data,
    teacher_from_data,
)
from mili_llama.models.model import SchoolClass


def test_missing_rate_maps_to_zero():
    assignment = assignment_from_data("a1", {"classID": "c1", "schoolUID": "s1"})

    assert assignment.rate == 0.0
    assert assignment.class_id == "c1"
    assert assignment.document_id == "a1"


def test_wrong_types_fall_back_to_defaults():
    assignment = assignment_from_data("a2", {
        "rate": "twelve",
        "approved": "yes",
        "additionalNotes": 42,
        "attachments": {"url": "x"},
        "date": "2024-03-01",
    })

    assert assignment.rate == 0.0
    assert assignment.approved is False
    assert assignment.additional_notes == ""
    assert assignment.attachments == []
    assert isinstance(assignment.date, datetime.datetime)


def test_none_data_maps_to_defaults_record():
    school = school_from_data("s1", None)

    assert school.document_id == "s1"
    assert school.school_name == ""
    assert school.rating == 0.0


def test_is_available_defaults_to_true():
    assert assignment_from_data("a3", {}).is_available is True
    assert assignment_from_data("a4", {"isAvailable": False}).is_available is False


def test_numbers_are_not_read_from_bools():
    assert as_float(True) == 0.0
    assert as_int(False, default=7) == 7
    assert as_float(3) == 3.0
    assert as_int(12.0) == 12
    assert as_int(12.5) == 0


def test_single_attachment_string_becomes_list():
    assignment = assignment_from_data("a5", {"attachments": "https://files.test/a.pdf"})

    assert assignment.attachments == ["https://files.test/a.pdf"]
    assert assignment_from_data("a6", {"attachments": ["u1", 3, "u2"]}).attachments == ["u1", "u2"]


def test_attachment_fields_never_written_by_mappers():
    assignment = assignment_from_data("a7", {"attachments": ["u1"], "rate": 20.5})
    school_class = class_from_data("c1", {"classRosterURL": "u2", "className": "Algebra"})

    assert "attachments" not in assignment_to_data(assignment)
    assert "classRosterURL" not in class_to_data(school_class)
    assert assignment_to_data(assignment)["rate"] == 20.5


def test_teacher_keys_follow_stored_names():
    joined = datetime.datetime(2024, 1, 8, tzinfo=DEVICE_TZ)
    teacher = teacher_from_data("t1", {
        "firstName": "Ana",
        "lastName": "Reyes",
        "schoolUid": "s1",
        "totalPTOAvailable": 40,
        "joinDate": joined,
        "upcomingDaysOff": [joined, "tomorrow"],
    })

    assert teacher.full_name == "Ana Reyes"
    assert teacher.school_uid == "s1"
    assert teacher.total_pto_available == 40.0
    assert teacher.join_date == joined
    assert teacher.upcoming_days_off == [joined]


def test_reschedule_recomputes_duration():
    day = datetime.datetime(2024, 9, 2, tzinfo=DEVICE_TZ)
    school_class = SchoolClass(document_id="c1")

    school_class.reschedule(day.replace(hour=9), day.replace(hour=10, minute=30))
    assert school_class.duration == 1.5

    school_class.reschedule(day.replace(hour=13), day.replace(hour=14))
    assert school_class.duration == 1.0


def test_class_duration_comes_from_its_bounds():
    day = datetime.datetime(2024, 9, 2, tzinfo=DEVICE_TZ)
    bounds = {"classStartTime": day.replace(hour=9), "classEndTime": day.replace(hour=10, minute=30)}

    assert class_from_data("c1", bounds).duration == 1.5
    # a stale stored value loses to the bounds
    assert class_from_data("c2", {**bounds, "duration": 4}).duration == 1.5
    assert class_from_data("c3", {"duration": 2}).duration == 2.0
