"""
Classes of a school: the home screen list and the "Add A Class" sheet.

Classes live at Schools/{schoolId}/Classes/{classId}. A roster picked on the
sheet is uploaded after the class document exists, to
Schools/{schoolId}/Classes/{classId}/Attachments/{fileName}, and linked
through classRosterURL.
"""
import datetime
from typing import Any, Dict, List, Optional, Tuple

from mili_llama.constants import (
    ATTACHMENTS_FOLDER,
    CLASS_ROSTER_FIELD,
    CLASSES_SUBCOLLECTION,
    SCHOOLS_COLLECTION,
)
from mili_llama.errors import FormValidationError
from mili_llama.forms.form_parser import NewClassForm, parse_form
from mili_llama.helper.record_mapping_helper import class_from_data, class_to_data
from mili_llama.models.model import LocalFile, SchoolClass
from mili_llama.services.backend import Backend
from mili_llama.utils.logging_config import get_service_logger
from mili_llama.utils.time_utils.time_utils import normalize_time_to_datetime, parse_time
from mili_llama.views.live_collection import LiveCollectionView
from mili_llama.workflows.create_then_attach import AttachmentPlan, WorkflowResult

logger = get_service_logger()


def classes_path(school_id: str) -> str:
    return f"{SCHOOLS_COLLECTION}/{school_id}/{CLASSES_SUBCOLLECTION}"


def roster_path(school_id: str, class_id: str, file_name: str) -> str:
    return f"{classes_path(school_id)}/{class_id}/{ATTACHMENTS_FOLDER}/{file_name}"


def build_class_times(
    day: datetime.date, start_raw: str, end_raw: str
) -> Tuple[datetime.datetime, datetime.datetime]:
    """Turn the time picker text ("9:00AM" or "09:00") into datetimes on the given day."""
    try:
        start = normalize_time_to_datetime(parse_time(start_raw.strip()), day)
        end = normalize_time_to_datetime(parse_time(end_raw.strip()), day)
    except (AttributeError, ValueError) as e:
        raise FormValidationError(f"Please enter a valid time: {e}") from e
    return start, end


class ClassService:

    def __init__(self, backend: Backend):
        self.backend = backend

    def create_class(
        self,
        school_id: str,
        raw_form: Dict[str, Any],
        roster: Optional[LocalFile] = None,
    ) -> SchoolClass:
        """
        Validate the new class form and save the class, then its roster.

        Raises:
            FormValidationError: before anything is written
            WorkflowStepError: when a remote step fails
        """
        form = parse_form(NewClassForm, raw_form)
        teacher_uid = self.backend.require_user_id()

        school_class = SchoolClass(
            document_id="",
            class_name=form.display_name,
            class_subject=form.class_subject,
            number_of_students=form.number_of_students,
            school_uid=school_id,
            teacher_uid=teacher_uid,
        )
        school_class.reschedule(form.class_start_time, form.class_end_time)

        attachment = None
        if roster is not None:
            attachment = AttachmentPlan(
                local_file=roster,
                storage_path_for=lambda class_id: roster_path(school_id, class_id, roster.file_name),
                attachment_field=CLASS_ROSTER_FIELD,
            )

        result: WorkflowResult = self.backend.workflow().run(
            classes_path(school_id), class_to_data(school_class),
            attachment=attachment, record_label="class"
        )
        school_class.document_id = result.record_id
        school_class.class_roster_url = result.attachment_url or ""
        logger.info(f"Class {school_class.class_name} saved as {result.record_id}")
        return school_class

    def get_teacher_classes(self, school_id: str) -> List[SchoolClass]:
        teacher_uid = self.backend.require_user_id()
        documents = self.backend.documents.query(classes_path(school_id), {"teacherUID": teacher_uid})
        return [class_from_data(document.id, document.data) for document in documents]

    def get_school_classes(self, school_id: str) -> List[SchoolClass]:
        documents = self.backend.documents.query(classes_path(school_id))
        return [class_from_data(document.id, document.data) for document in documents]

    def get_class(self, school_id: str, class_id: str) -> Optional[SchoolClass]:
        document = self.backend.documents.get(classes_path(school_id), class_id)
        return class_from_data(document.id, document.data) if document else None

    def delete_class_by_name(self, school_id: str, class_name: str) -> Optional[str]:
        """Delete the first class with this name and return its id, or None when no class has it."""
        matches = self.backend.documents.query(classes_path(school_id), {"className": class_name})
        if not matches:
            logger.warning(f"Class not found: {class_name} in school {school_id}")
            return None
        class_id = matches[0].id
        self.backend.documents.delete(classes_path(school_id), class_id)
        return class_id

    def live_classes(self, school_id: str, **kwargs) -> LiveCollectionView[SchoolClass]:
        return LiveCollectionView(
            self.backend.documents, classes_path(school_id), class_from_data, label="classes", **kwargs
        )
