import datetime
from dataclasses import dataclass, field
from typing import List, Optional

from mili_llama.utils.time_utils.time_utils import duration_in_hours, now


@dataclass
class Assignment:
    """A time off request; with a substitute assigned it doubles as a class assignment."""
    document_id: str
    date: datetime.datetime = field(default_factory=now)
    class_id: str = ""  # empty for personal requests
    school_uid: str = ""
    rate: float = 0.0
    additional_notes: str = ""
    assigned_to: str = ""
    assigned_to_uid: str = ""
    is_available: bool = True
    in_progress: bool = False
    completed: bool = False
    attachments: List[str] = field(default_factory=list)
    review_score: float = 0.0
    cancelled: bool = False
    cancelled_by: str = ""
    created_by: str = ""
    payment_processed: bool = False
    # approved and admin_approved/admin_rejected are set by different actors and may overlap
    approved: bool = False
    request_type: float = 0.0
    admin_approved: bool = False
    admin_rejected: bool = False
    sub_required: bool = False
    full_day_off: bool = False
    start_time: datetime.datetime = field(default_factory=now)
    end_time: datetime.datetime = field(default_factory=now)
    push_token: str = ""

    @property
    def is_personal(self) -> bool:
        return not self.class_id


# Class is a keyword in too many places; the record is SchoolClass
@dataclass
class SchoolClass:
    document_id: str
    class_name: str = ""
    class_subject: str = ""
    number_of_students: int = 0
    school_uid: str = ""
    teacher_uid: str = ""
    class_roster_url: str = ""
    class_start_time: datetime.datetime = field(default_factory=now)
    class_end_time: datetime.datetime = field(default_factory=now)
    duration: float = 0.0

    def reschedule(self, start: datetime.datetime, end: datetime.datetime) -> None:
        self.class_start_time = start
        self.class_end_time = end
        self.duration = duration_in_hours(start, end)


@dataclass
class School:
    document_id: str
    school_name: str = ""
    school_logo: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    phone_number: str = ""
    email_address: str = ""
    rating: float = 0.0
    website: str = ""
    district: str = ""
    point_of_contact: str = ""
    email_address2: str = ""
    phone_number2: str = ""
    point_of_contact2: str = ""
    fun_fact: str = ""
    domain: str = ""


@dataclass
class Teacher:
    document_id: str
    first_name: str = ""
    last_name: str = ""
    email_address: str = ""
    phone_number: str = ""
    school_uid: str = ""
    assigned_classes: List[str] = field(default_factory=list)
    total_sick_time_available: float = 0.0
    total_pto_available: float = 0.0
    total_unpaid_leave_used: float = 0.0
    profile_picture_url: str = ""
    verified: bool = False
    join_date: datetime.datetime = field(default_factory=now)
    uid: str = ""
    push_token: str = ""
    upcoming_days_off: List[datetime.datetime] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class UserSettings:
    """Client session state for the signed in teacher. Never stored remotely."""
    uid: str = ""
    assigned_school: str = ""
    first_name: str = ""
    last_name: str = ""
    email_address: str = ""
    push_token: str = ""
    is_logged_in: bool = False
    account_exists: bool = False
    verified: bool = False


@dataclass
class LocalFile:
    """A file picked on the device, waiting to be uploaded."""
    path: str
    file_name: str
    content_type: Optional[str] = None
