"""
Teacher accounts: onboarding and the profile screen.

Signing up tries, in order, to create the account, to sign in to an
existing one, and finally to send a password reset, mirroring what the
onboarding screen offers a returning teacher who forgot they registered.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mili_llama.constants import (
    DEFAULT_PTO_HOURS,
    DEFAULT_SICK_TIME_HOURS,
    DEFAULT_UNPAID_LEAVE_USED,
    PROFILE_PICTURE_FIELD,
    PROFILE_PICTURE_FILE_NAME,
    PROFILE_PICTURE_FOLDER,
    TEACHERS_COLLECTION,
)
from mili_llama.errors import BackendError, IdentityProviderError
from mili_llama.forms.form_parser import ProfileUpdateForm, SignUpForm, parse_form
from mili_llama.helper.record_mapping_helper import teacher_from_data, teacher_to_data
from mili_llama.models.model import LocalFile, Teacher, UserSettings
from mili_llama.services.backend import Backend
from mili_llama.services.school_service import SchoolService
from mili_llama.utils.logging_config import get_service_logger
from mili_llama.utils.time_utils.time_utils import now

logger = get_service_logger()

PASSWORD_RESET_SENT_MESSAGE = "Password reset email sent. Please check your email to reset your password."


def profile_picture_path(uid: str) -> str:
    return f"{TEACHERS_COLLECTION}/{uid}/{PROFILE_PICTURE_FOLDER}/{PROFILE_PICTURE_FILE_NAME}"


@dataclass
class RegistrationResult:
    success: bool
    message: str = ""
    teacher: Optional[Teacher] = None


class TeacherService:

    def __init__(self, backend: Backend, session: Optional[UserSettings] = None):
        self.backend = backend
        self.schools = SchoolService(backend)
        self.session = session or UserSettings()

    def register(self, raw_form: Dict[str, Any]) -> RegistrationResult:
        form = parse_form(SignUpForm, raw_form)

        try:
            uid = self.backend.identity.create_user(form.email_address, form.password)
        except IdentityProviderError as create_error:
            logger.warning(f"Account creation failed for {form.email_address}: {create_error}")
            return self._sign_in_existing(form)

        return self._save_new_teacher(uid, form)

    def _sign_in_existing(self, form: SignUpForm) -> RegistrationResult:
        try:
            uid = self.backend.identity.sign_in_with_password(form.email_address, form.password)
        except IdentityProviderError as sign_in_error:
            logger.warning(f"Sign in failed for {form.email_address}: {sign_in_error}")
            try:
                self.backend.identity.send_password_reset(form.email_address)
            except IdentityProviderError as e:
                return RegistrationResult(success=False, message=f"Failed to reset password: {e}")
            return RegistrationResult(success=False, message=PASSWORD_RESET_SENT_MESSAGE)

        teacher = self.load_profile(uid)
        if teacher is None:
            return self._save_new_teacher(uid, form)
        self._remember(teacher)
        return RegistrationResult(success=True, teacher=teacher)

    def _save_new_teacher(self, uid: str, form: SignUpForm) -> RegistrationResult:
        try:
            school_id = self.schools.find_school_id_by_domain(form.email_domain)
        except BackendError as e:
            return RegistrationResult(success=False, message=f"Failed to save user data: {e}")
        if school_id is None:
            return RegistrationResult(
                success=False,
                message=f"There was no school found with the domain name {form.email_domain}",
            )

        teacher = Teacher(
            document_id=uid,
            uid=uid,
            first_name=form.first_name,
            last_name=form.last_name,
            email_address=form.email_address,
            school_uid=school_id,
            total_sick_time_available=DEFAULT_SICK_TIME_HOURS,
            total_pto_available=DEFAULT_PTO_HOURS,
            total_unpaid_leave_used=DEFAULT_UNPAID_LEAVE_USED,
            join_date=now(),
        )
        try:
            self.backend.documents.set(TEACHERS_COLLECTION, uid, teacher_to_data(teacher))
        except BackendError as e:
            return RegistrationResult(success=False, message=f"Failed to save user data: {e}")

        logger.info(f"Teacher {uid} registered with school {school_id}")
        self._remember(teacher)
        return RegistrationResult(success=True, teacher=teacher)

    def _remember(self, teacher: Teacher) -> None:
        self.session.uid = teacher.uid or teacher.document_id
        self.session.assigned_school = teacher.school_uid
        self.session.first_name = teacher.first_name
        self.session.last_name = teacher.last_name
        self.session.email_address = teacher.email_address

    def load_profile(self, uid: Optional[str] = None) -> Optional[Teacher]:
        """The teacher's document, or None when it does not exist yet."""
        uid = uid or self.backend.require_user_id()
        document = self.backend.documents.get(TEACHERS_COLLECTION, uid)
        return teacher_from_data(document.id, document.data) if document else None

    def update_profile(self, raw_form: Dict[str, Any], picture: Optional[LocalFile] = None) -> Dict[str, Any]:
        """
        Merge the filled in profile fields into the teacher's document.

        A new profile picture is uploaded before the document is written so
        the write can carry its URL. Returns the fields that were written.
        """
        uid = self.backend.require_user_id()
        fields: Dict[str, Any] = parse_form(ProfileUpdateForm, raw_form).changed_fields()

        if picture is not None:
            path = profile_picture_path(uid)
            self.backend.blobs.put_file(path, picture)
            fields[PROFILE_PICTURE_FIELD] = self.backend.blobs.get_download_url(path)

        if not fields:
            return fields
        self.backend.documents.set(TEACHERS_COLLECTION, uid, fields, merge=True)
        logger.info(f"Profile of {uid} updated: {', '.join(fields)}")
        return fields
