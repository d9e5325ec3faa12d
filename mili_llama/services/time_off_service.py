"""
Time off requests: the request sheet, the bulk sheet and the requests screen.

A request is an Assignment document in the top level Assignments collection.
An attachment is uploaded after the request exists, to
Schools/{schoolId}/Classes/{classId}/Assignments/{assignmentId}/{fileName},
with "Personal" standing in for the class of a request without one, and is
stored as a one element attachments list.
"""
from typing import Any, Dict, Iterable, List, Optional

from mili_llama.constants import (
    ASSIGNMENT_ATTACHMENTS_FIELD,
    ASSIGNMENTS_COLLECTION,
    ASSIGNMENTS_FOLDER,
    PERSONAL_CLASS_SEGMENT,
)
from mili_llama.forms.form_parser import TimeOffRequestForm, parse_form
from mili_llama.helper.record_mapping_helper import as_str, assignment_from_data, assignment_to_data
from mili_llama.models.model import Assignment, LocalFile
from mili_llama.services.backend import Backend
from mili_llama.services.class_service import classes_path
from mili_llama.utils.logging_config import get_service_logger
from mili_llama.views.live_collection import LiveCollectionView
from mili_llama.workflows.create_then_attach import AttachmentPlan

logger = get_service_logger()

UNKNOWN_CLASS_NAME = "Unknown"


def request_attachment_path(school_id: str, class_id: str, assignment_id: str, file_name: str) -> str:
    class_segment = class_id or PERSONAL_CLASS_SEGMENT
    return f"{classes_path(school_id)}/{class_segment}/{ASSIGNMENTS_FOLDER}/{assignment_id}/{file_name}"


class TimeOffService:

    def __init__(self, backend: Backend):
        self.backend = backend

    def _build_request(self, form: TimeOffRequestForm, school_id: str, class_id: str) -> Assignment:
        request = Assignment(
            document_id="",
            date=form.date,
            class_id=class_id,
            school_uid=school_id,
            additional_notes=form.additional_notes,
            created_by=self.backend.require_user_id(),
            request_type=form.request_type,
            sub_required=form.sub_required,
            full_day_off=form.full_day_off,
            # only requests that need a substitute are offered to substitutes
            is_available=form.sub_required,
        )
        if form.start_time is not None:
            request.start_time = form.start_time
        if form.end_time is not None:
            request.end_time = form.end_time
        return request

    def _save(self, request: Assignment, attachment: Optional[LocalFile]) -> Assignment:
        plan = None
        if attachment is not None:
            plan = AttachmentPlan(
                local_file=attachment,
                storage_path_for=lambda assignment_id: request_attachment_path(
                    request.school_uid, request.class_id, assignment_id, attachment.file_name
                ),
                attachment_field=ASSIGNMENT_ATTACHMENTS_FIELD,
                to_field_value=lambda url: [url],
            )

        result = self.backend.workflow().run(
            ASSIGNMENTS_COLLECTION, assignment_to_data(request),
            attachment=plan, record_label="assignment"
        )
        request.document_id = result.record_id
        request.attachments = [result.attachment_url] if result.attachment_url else []
        return request

    def submit_request(
        self,
        school_id: str,
        raw_form: Dict[str, Any],
        attachment: Optional[LocalFile] = None,
    ) -> Assignment:
        """
        Validate and save one time off request.

        A full day off or a request without a substitute may leave the class
        out; it is then saved as a personal request.
        """
        form = parse_form(TimeOffRequestForm, raw_form)
        class_id = form.class_ids[0] if form.class_ids else ""
        request = self._save(self._build_request(form, school_id, class_id), attachment)
        logger.info(f"Time off request {request.document_id} submitted for {class_id or 'personal'}")
        return request

    def submit_bulk_request(
        self,
        school_id: str,
        raw_form: Dict[str, Any],
        attachment: Optional[LocalFile] = None,
    ) -> List[Assignment]:
        """One request per selected class, each running its own workflow; stops at the first failure."""
        form = parse_form(TimeOffRequestForm, raw_form)
        class_ids = form.class_ids or [""]
        return [
            self._save(self._build_request(form, school_id, class_id), attachment)
            for class_id in class_ids
        ]

    def get_school_requests(self, school_id: str) -> List[Assignment]:
        documents = self.backend.documents.query(ASSIGNMENTS_COLLECTION, {"schoolUID": school_id})
        return [assignment_from_data(document.id, document.data) for document in documents]

    def get_my_requests(self) -> List[Assignment]:
        uid = self.backend.require_user_id()
        documents = self.backend.documents.query(ASSIGNMENTS_COLLECTION, {"createdBy": uid})
        return [assignment_from_data(document.id, document.data) for document in documents]

    def get_class_names(self, requests: Iterable[Assignment]) -> Dict[str, str]:
        """Class id -> class name for the classes the requests point at."""
        names: Dict[str, str] = {}
        for request in requests:
            if request.is_personal or request.class_id in names:
                continue
            document = self.backend.documents.get(classes_path(request.school_uid), request.class_id)
            if document is None:
                continue
            names[request.class_id] = as_str(document.data.get("className")) or UNKNOWN_CLASS_NAME
        return names

    def approve_request(self, assignment_id: str) -> None:
        self.backend.documents.update(
            ASSIGNMENTS_COLLECTION, assignment_id, {"adminApproved": True, "adminRejected": False}
        )

    def reject_request(self, assignment_id: str) -> None:
        self.backend.documents.update(
            ASSIGNMENTS_COLLECTION, assignment_id, {"adminApproved": False, "adminRejected": True}
        )

    def delete_request(self, assignment_id: str) -> None:
        self.backend.documents.delete(ASSIGNMENTS_COLLECTION, assignment_id)

    def live_requests(self, **kwargs) -> LiveCollectionView[Assignment]:
        """Subscribe the returned view with {"schoolUID": school_id} for one school's requests."""
        return LiveCollectionView(
            self.backend.documents, ASSIGNMENTS_COLLECTION, assignment_from_data, label="assignments", **kwargs
        )
