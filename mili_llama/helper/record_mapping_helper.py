"""
Tolerant mapping between Firestore document data and the record dataclasses.

A field that is missing or holds an unexpected type falls back to its default
(empty string, zero, false, current time, empty list). Mapping a single
malformed document never raises.
"""
import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from mili_llama.models.model import Assignment, School, SchoolClass, Teacher
from mili_llama.utils.time_utils.time_utils import duration_in_hours, ensure_aware, now

T = TypeVar("T")

RecordMapper = Callable[[str, Optional[Dict[str, Any]]], T]


def as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def as_float(value: Any, default: float = 0.0) -> float:
    # bool is an int subclass and must not read as 1.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def as_bool(value: Any, default: bool = False) -> bool:
    return value if isinstance(value, bool) else default


def as_datetime(value: Any) -> datetime.datetime:
    # Firestore timestamps arrive as DatetimeWithNanoseconds, a datetime subclass
    return value if isinstance(value, datetime.datetime) else now()


def as_str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str)]
    return []


def as_datetime_list(value: Any) -> List[datetime.datetime]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, datetime.datetime)]


def assignment_from_data(document_id: str, data: Optional[Dict[str, Any]]) -> Assignment:
    data = data or {}
    return Assignment(
        document_id=document_id,
        date=as_datetime(data.get("date")),
        class_id=as_str(data.get("classID")),
        school_uid=as_str(data.get("schoolUID")),
        rate=as_float(data.get("rate")),
        additional_notes=as_str(data.get("additionalNotes")),
        assigned_to=as_str(data.get("assignedTo")),
        assigned_to_uid=as_str(data.get("assignedToUID")),
        is_available=as_bool(data.get("isAvailable"), default=True),
        in_progress=as_bool(data.get("inProgress")),
        completed=as_bool(data.get("completed")),
        attachments=as_str_list(data.get("attachments")),
        review_score=as_float(data.get("reviewScore")),
        cancelled=as_bool(data.get("cancelled")),
        cancelled_by=as_str(data.get("cancelledBy")),
        created_by=as_str(data.get("createdBy")),
        payment_processed=as_bool(data.get("paymentProcessed")),
        approved=as_bool(data.get("approved")),
        request_type=as_float(data.get("requestType")),
        admin_approved=as_bool(data.get("adminApproved")),
        admin_rejected=as_bool(data.get("adminRejected")),
        sub_required=as_bool(data.get("subRequired")),
        full_day_off=as_bool(data.get("fullDayOff")),
        start_time=as_datetime(data.get("startTime")),
        end_time=as_datetime(data.get("endTime")),
        push_token=as_str(data.get("pushToken")),
    )


def assignment_to_data(assignment: Assignment) -> Dict[str, Any]:
    # attachments are left out: only the workflow's patch step may set them
    return {
        "date": assignment.date,
        "classID": assignment.class_id,
        "schoolUID": assignment.school_uid,
        "rate": assignment.rate,
        "additionalNotes": assignment.additional_notes,
        "assignedTo": assignment.assigned_to,
        "assignedToUID": assignment.assigned_to_uid,
        "isAvailable": assignment.is_available,
        "inProgress": assignment.in_progress,
        "completed": assignment.completed,
        "reviewScore": assignment.review_score,
        "cancelled": assignment.cancelled,
        "cancelledBy": assignment.cancelled_by,
        "createdBy": assignment.created_by,
        "paymentProcessed": assignment.payment_processed,
        "approved": assignment.approved,
        "requestType": assignment.request_type,
        "adminApproved": assignment.admin_approved,
        "adminRejected": assignment.admin_rejected,
        "subRequired": assignment.sub_required,
        "fullDayOff": assignment.full_day_off,
        "startTime": assignment.start_time,
        "endTime": assignment.end_time,
        "pushToken": assignment.push_token,
    }


def class_duration(start: Any, end: Any, stored: Any) -> float:
    # the bounds are authoritative; the stored duration is only used when they are missing
    if isinstance(start, datetime.datetime) and isinstance(end, datetime.datetime):
        return duration_in_hours(ensure_aware(start), ensure_aware(end))
    return as_float(stored)


def class_from_data(document_id: str, data: Optional[Dict[str, Any]]) -> SchoolClass:
    data = data or {}
    return SchoolClass(
        document_id=document_id,
        class_name=as_str(data.get("className")),
        class_subject=as_str(data.get("classSubject")),
        number_of_students=as_int(data.get("numberOfStudents")),
        school_uid=as_str(data.get("schoolUID")),
        teacher_uid=as_str(data.get("teacherUID")),
        class_roster_url=as_str(data.get("classRosterURL")),
        class_start_time=as_datetime(data.get("classStartTime")),
        class_end_time=as_datetime(data.get("classEndTime")),
        duration=class_duration(data.get("classStartTime"), data.get("classEndTime"), data.get("duration")),
    )


def class_to_data(school_class: SchoolClass) -> Dict[str, Any]:
    # classRosterURL is left out: only the workflow's patch step may set it
    return {
        "className": school_class.class_name,
        "classSubject": school_class.class_subject,
        "numberOfStudents": school_class.number_of_students,
        "schoolUID": school_class.school_uid,
        "teacherUID": school_class.teacher_uid,
        "classStartTime": school_class.class_start_time,
        "classEndTime": school_class.class_end_time,
        "duration": school_class.duration,
    }


def school_from_data(document_id: str, data: Optional[Dict[str, Any]]) -> School:
    data = data or {}
    return School(
        document_id=document_id,
        school_name=as_str(data.get("schoolName")),
        school_logo=as_str(data.get("schoolLogo")),
        address=as_str(data.get("address")),
        city=as_str(data.get("city")),
        state=as_str(data.get("state")),
        zip=as_str(data.get("zip")),
        phone_number=as_str(data.get("phoneNumber")),
        email_address=as_str(data.get("emailAddress")),
        rating=as_float(data.get("rating")),
        website=as_str(data.get("website")),
        district=as_str(data.get("district")),
        point_of_contact=as_str(data.get("pointOfContact")),
        email_address2=as_str(data.get("emailAddress2")),
        phone_number2=as_str(data.get("phoneNumber2")),
        point_of_contact2=as_str(data.get("pointOfContact2")),
        fun_fact=as_str(data.get("funFact")),
        domain=as_str(data.get("domain")),
    )


def school_to_data(school: School) -> Dict[str, Any]:
    return {
        "schoolName": school.school_name,
        "schoolLogo": school.school_logo,
        "address": school.address,
        "city": school.city,
        "state": school.state,
        "zip": school.zip,
        "phoneNumber": school.phone_number,
        "emailAddress": school.email_address,
        "rating": school.rating,
        "website": school.website,
        "district": school.district,
        "pointOfContact": school.point_of_contact,
        "emailAddress2": school.email_address2,
        "phoneNumber2": school.phone_number2,
        "pointOfContact2": school.point_of_contact2,
        "funFact": school.fun_fact,
        "domain": school.domain,
    }


def teacher_from_data(document_id: str, data: Optional[Dict[str, Any]]) -> Teacher:
    data = data or {}
    return Teacher(
        document_id=document_id,
        first_name=as_str(data.get("firstName")),
        last_name=as_str(data.get("lastName")),
        email_address=as_str(data.get("emailAddress")),
        phone_number=as_str(data.get("phoneNumber")),
        school_uid=as_str(data.get("schoolUid")),
        assigned_classes=as_str_list(data.get("assignedClasses")),
        total_sick_time_available=as_float(data.get("totalSickTimeAvailable")),
        total_pto_available=as_float(data.get("totalPTOAvailable")),
        total_unpaid_leave_used=as_float(data.get("totalUnpaidLeaveUsed")),
        profile_picture_url=as_str(data.get("profilePictureUrl")),
        verified=as_bool(data.get("verified")),
        join_date=as_datetime(data.get("joinDate")),
        uid=as_str(data.get("uid")),
        push_token=as_str(data.get("pushToken")),
        upcoming_days_off=as_datetime_list(data.get("upcomingDaysOff")),
    )


def teacher_to_data(teacher: Teacher) -> Dict[str, Any]:
    return {
        "firstName": teacher.first_name,
        "lastName": teacher.last_name,
        "emailAddress": teacher.email_address,
        "phoneNumber": teacher.phone_number,
        "schoolUid": teacher.school_uid,
        "assignedClasses": list(teacher.assigned_classes),
        "totalSickTimeAvailable": teacher.total_sick_time_available,
        "totalPTOAvailable": teacher.total_pto_available,
        "totalUnpaidLeaveUsed": teacher.total_unpaid_leave_used,
        "verified": teacher.verified,
        "joinDate": teacher.join_date,
        "uid": teacher.uid,
        "pushToken": teacher.push_token,
        "upcomingDaysOff": list(teacher.upcoming_days_off),
    }
