import datetime

import pytest

from mili_llama.constants import DEVICE_TZ, RequestType
from mili_llama.errors import FormValidationError
from mili_llama.services.time_off_service import TimeOffService, request_attachment_path

ASSIGNMENTS = "Assignments"
DAY_OFF = datetime.datetime(2024, 10, 7, tzinfo=DEVICE_TZ)


def test_request_with_class_and_attachment(backend, documents, blobs, roster_file):
    request = TimeOffService(backend).submit_request(
        "s1",
        {"date": DAY_OFF, "classIDs": ["c1"], "additionalNotes": "Doctor visit", "requestType": RequestType.SICK},
        attachment=roster_file,
    )

    stored = documents.data(ASSIGNMENTS, request.document_id)
    assert stored["classID"] == "c1"
    assert stored["schoolUID"] == "s1"
    assert stored["createdBy"] == "teacher-1"
    assert stored["requestType"] == RequestType.SICK
    assert stored["attachments"] == request.attachments
    assert len(request.attachments) == 1
    assert f"Schools/s1/Classes/c1/Assignments/{request.document_id}/roster.pdf" in blobs.files


def test_personal_request_uses_personal_folder(backend, documents, blobs, roster_file):
    request = TimeOffService(backend).submit_request(
        "s1", {"date": DAY_OFF, "fullDayOff": True, "subRequired": False}, attachment=roster_file
    )

    assert request.is_personal
    assert request.is_available is False
    assert f"Schools/s1/Classes/Personal/Assignments/{request.document_id}/roster.pdf" in blobs.files


def test_request_without_file_is_one_write(backend, documents):
    TimeOffService(backend).submit_request("s1", {"date": DAY_OFF, "classIDs": ["c1"]})

    assert documents.remote_writes() == [("add", ASSIGNMENTS)]


def test_missing_class_is_rejected_before_any_write(backend, calls):
    with pytest.raises(FormValidationError):
        TimeOffService(backend).submit_request("s1", {"date": DAY_OFF, "subRequired": True})

    assert calls == []


def test_bulk_request_creates_one_request_per_class(backend, documents):
    requests = TimeOffService(backend).submit_bulk_request("s1", {"date": DAY_OFF, "classIDs": ["c1", "c2", "c3"]})

    assert [request.class_id for request in requests] == ["c1", "c2", "c3"]
    assert len(documents.collections[ASSIGNMENTS]) == 3


def test_class_names_skip_missing_classes(backend, documents):
    documents.seed("Schools/s1/Classes", "c1", {"className": "Algebra"})
    documents.seed("Schools/s1/Classes", "c2", {"classSubject": "Chemistry"})
    documents.seed(ASSIGNMENTS, "a1", {"schoolUID": "s1", "classID": "c1"})
    documents.seed(ASSIGNMENTS, "a2", {"schoolUID": "s1", "classID": "c2"})
    documents.seed(ASSIGNMENTS, "a3", {"schoolUID": "s1", "classID": "gone"})
    documents.seed(ASSIGNMENTS, "a4", {"schoolUID": "s1"})
    documents.seed(ASSIGNMENTS, "a5", {"schoolUID": "s2", "classID": "c1"})
    service = TimeOffService(backend)

    requests = service.get_school_requests("s1")

    assert len(requests) == 4
    assert service.get_class_names(requests) == {"c1": "Algebra", "c2": "Unknown"}


def test_approve_reject_and_delete(backend, documents):
    documents.seed(ASSIGNMENTS, "a1", {"schoolUID": "s1", "approved": True})
    service = TimeOffService(backend)

    service.approve_request("a1")
    assert documents.data(ASSIGNMENTS, "a1")["adminApproved"] is True
    # the teacher's own approval flag is independent of the admin's
    assert documents.data(ASSIGNMENTS, "a1")["approved"] is True

    service.reject_request("a1")
    assert documents.data(ASSIGNMENTS, "a1")["adminRejected"] is True
    assert documents.data(ASSIGNMENTS, "a1")["adminApproved"] is False

    service.delete_request("a1")
    assert documents.data(ASSIGNMENTS, "a1") is None


def test_my_requests_and_live_view(backend, documents):
    service = TimeOffService(backend)
    view = service.live_requests()
    view.subscribe({"schoolUID": "s1"})

    service.submit_request("s1", {"date": DAY_OFF, "classIDs": ["c1"]})
    documents.seed(ASSIGNMENTS, "other", {"schoolUID": "s1", "createdBy": "teacher-2"})

    assert len(view.items) == 1
    assert [request.created_by for request in service.get_my_requests()] == ["teacher-1"]


def test_attachment_path_for_personal_requests():
    assert request_attachment_path("s1", "", "a1", "note.pdf") == "Schools/s1/Classes/Personal/Assignments/a1/note.pdf"
