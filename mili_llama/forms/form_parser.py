import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mili_llama.constants import RequestType
from mili_llama.errors import FormValidationError
from mili_llama.utils.time_utils.time_utils import ensure_aware

BLANK_FIELDS_MESSAGE = "Please fill in all fields."
INVALID_STUDENT_COUNT_MESSAGE = "Please enter a valid number of students."
CLASS_TIMES_MESSAGE = "The class end time must not be before its start time."
SELECT_CLASS_MESSAGE = "Please select a class for the substitute."
INVALID_EMAIL_MESSAGE = "Please enter a valid email address."

FormT = TypeVar("FormT", bound=BaseModel)


def _require_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(BLANK_FIELDS_MESSAGE)
    return value.strip()


class NewClassForm(BaseModel):
    """Pydantic model for the "Add A Class" form"""
    model_config = ConfigDict(populate_by_name=True)

    class_subject: str = Field(alias="classSubject")
    # Raw text from a number field; parsed below
    number_of_students: int = Field(alias="numberOfStudents")
    class_start_time: datetime.datetime = Field(alias="classStartTime")
    class_end_time: datetime.datetime = Field(alias="classEndTime")
    class_name: Optional[str] = Field(default=None, alias="className")

    @field_validator("class_subject", mode="before")
    @classmethod
    def subject_not_blank(cls, value):
        return _require_text(value)

    @field_validator("number_of_students", mode="before")
    @classmethod
    def parse_student_count(cls, value):
        if isinstance(value, str):
            if not value.strip():
                raise ValueError(BLANK_FIELDS_MESSAGE)
            try:
                value = int(value.strip())
            except ValueError:
                raise ValueError(INVALID_STUDENT_COUNT_MESSAGE)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(INVALID_STUDENT_COUNT_MESSAGE)
        return value

    @field_validator("class_start_time", "class_end_time")
    @classmethod
    def as_aware(cls, value: datetime.datetime) -> datetime.datetime:
        return ensure_aware(value)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.class_end_time < self.class_start_time:
            raise ValueError(CLASS_TIMES_MESSAGE)
        return self

    @property
    def display_name(self) -> str:
        return (self.class_name or "").strip() or self.class_subject


class TimeOffRequestForm(BaseModel):
    """Pydantic model for the single and bulk time off request sheets"""
    model_config = ConfigDict(populate_by_name=True)

    date: datetime.datetime
    additional_notes: str = Field(default="", alias="additionalNotes")
    sub_required: bool = Field(default=True, alias="subRequired")
    full_day_off: bool = Field(default=False, alias="fullDayOff")
    class_ids: List[str] = Field(default_factory=list, alias="classIDs")
    request_type: float = Field(default=RequestType.PERSONAL, alias="requestType")
    start_time: Optional[datetime.datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime.datetime] = Field(default=None, alias="endTime")

    @field_validator("class_ids", mode="before")
    @classmethod
    def drop_blank_class_ids(cls, value):
        if isinstance(value, str):
            value = [value]
        return [class_id.strip() for class_id in value or [] if isinstance(class_id, str) and class_id.strip()]

    @field_validator("date", "start_time", "end_time")
    @classmethod
    def as_aware(cls, value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        return ensure_aware(value) if value is not None else None

    @model_validator(mode="after")
    def class_needed_for_substitute(self):
        # a partial day off with a substitute has to name the class being covered
        if self.sub_required and not self.full_day_off and not self.class_ids:
            raise ValueError(SELECT_CLASS_MESSAGE)
        return self


class SignUpForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email_address: str = Field(alias="emailAddress")
    password: str

    @field_validator("first_name", "last_name", "password", mode="before")
    @classmethod
    def not_blank(cls, value):
        return _require_text(value)

    @field_validator("email_address", mode="before")
    @classmethod
    def valid_email(cls, value):
        value = _require_text(value)
        local, _, domain = value.partition("@")
        if not local or not domain:
            raise ValueError(INVALID_EMAIL_MESSAGE)
        return value

    @property
    def email_domain(self) -> str:
        return self.email_address.split("@", 1)[1].lower()


class ProfileUpdateForm(BaseModel):
    """Only the fields the teacher actually filled in are written."""
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email_address: str = Field(default="", alias="emailAddress")

    @field_validator("first_name", "last_name", "email_address", mode="before")
    @classmethod
    def strip(cls, value):
        return value.strip() if isinstance(value, str) else ""

    def changed_fields(self) -> Dict[str, str]:
        fields = {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "emailAddress": self.email_address,
        }
        return {key: value for key, value in fields.items() if value}


def _first_message(error: ValidationError) -> str:
    messages = []
    for detail in error.errors():
        if detail.get("type") == "missing":
            messages.append(BLANK_FIELDS_MESSAGE)
        elif "error" in detail.get("ctx", {}):
            messages.append(str(detail["ctx"]["error"]))
        else:
            messages.append(detail.get("msg", "Invalid input."))
    if BLANK_FIELDS_MESSAGE in messages:
        return BLANK_FIELDS_MESSAGE
    return messages[0] if messages else "Invalid input."


def parse_form(model: Type[FormT], raw_data: Dict[str, Any]) -> FormT:
    """
    Validate raw form input.

    Args:
        model: Form model to validate against
        raw_data: Field values keyed by field name or by their Firestore alias

    Returns:
        The validated form

    Raises:
        FormValidationError: with the message to show the user
    """
    try:
        return model.model_validate(raw_data)
    except ValidationError as e:
        raise FormValidationError(_first_message(e)) from e
