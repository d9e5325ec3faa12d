import pytest
import sqlalchemy.exc as sa_exception

from mili_llama.errors import BlobStoreError, DocumentStoreError, WorkflowStepError
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import RunStatus, WorkflowRunOrm, WorkflowStep
from mili_llama.sql_orm.connection.sqlalchemy_pg import get_session
from mili_llama.workflows.create_then_attach import AttachmentPlan, CreateThenAttachWorkflow

CLASSES = "Schools/s1/Classes"


def roster_plan(local_file):
    return AttachmentPlan(
        local_file=local_file,
        storage_path_for=lambda class_id: f"{CLASSES}/{class_id}/Attachments/{local_file.file_name}",
        attachment_field="classRosterURL",
    )


def all_runs():
    session = get_session()
    try:
        return session.query(WorkflowRunOrm).all()
    finally:
        session.close()


def test_without_file_success_follows_a_single_write(documents, blobs, journal, calls):
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)
    successes, errors = [], []

    workflow.execute(CLASSES, {"className": "Algebra"}, successes.append, errors.append)

    assert documents.remote_writes() == [("add", CLASSES)]
    assert calls == [("add", CLASSES)]
    assert len(successes) == 1 and errors == []
    assert successes[0].attachment_url is None
    assert all_runs()[0].status == RunStatus.SUCCEEDED


def test_patch_happens_after_upload_and_url(documents, blobs, journal, roster_file, calls):
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)

    result = workflow.run(CLASSES, {"className": "Algebra"}, attachment=roster_plan(roster_file))

    path = f"{CLASSES}/{result.record_id}/Attachments/roster.pdf"
    assert calls == [
        ("add", CLASSES),
        ("put_file", path),
        ("get_download_url", path),
        ("update", f"{CLASSES}/{result.record_id}"),
    ]
    assert documents.data(CLASSES, result.record_id)["classRosterURL"] == result.attachment_url
    assert result.storage_path == path


def test_attachment_field_in_fields_is_not_written_up_front(documents, blobs, roster_file):
    workflow = CreateThenAttachWorkflow(documents, blobs)
    documents_seen = []
    documents.subscribe(CLASSES, None, documents_seen.append, lambda error: None)

    workflow.run(CLASSES, {"className": "Algebra", "classRosterURL": "stale"}, attachment=roster_plan(roster_file))

    first_write = documents_seen[1][0].data
    assert "classRosterURL" not in first_write


def test_field_value_can_wrap_the_url(documents, blobs, roster_file):
    plan = AttachmentPlan(
        local_file=roster_file,
        storage_path_for=lambda record_id: f"x/{record_id}/{roster_file.file_name}",
        attachment_field="attachments",
        to_field_value=lambda url: [url],
    )

    result = CreateThenAttachWorkflow(documents, blobs).run("Assignments", {}, attachment=plan)

    assert documents.data("Assignments", result.record_id)["attachments"] == [result.attachment_url]


def test_record_write_failure_stops_everything(documents, blobs, journal, roster_file):
    documents.fail_on["add"] = DocumentStoreError("deadline exceeded")
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)

    with pytest.raises(WorkflowStepError) as error:
        workflow.run(CLASSES, {}, attachment=roster_plan(roster_file), record_label="class")

    assert error.value.step == WorkflowStep.WRITE_RECORD
    assert error.value.message == "Failed to save class: deadline exceeded"
    assert error.value.record_id is None
    assert blobs.files == {}
    run = all_runs()[0]
    assert (run.status, run.step, run.record_id) == (RunStatus.FAILED, WorkflowStep.STARTED, None)


def test_upload_failure_leaves_record_without_attachment(documents, blobs, journal, roster_file):
    blobs.fail_on["put_file"] = BlobStoreError("bucket not found")
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)
    errors = []

    result = workflow.execute(CLASSES, {"className": "Algebra"}, lambda r: None, errors.append,
                              attachment=roster_plan(roster_file))

    assert result is None
    assert errors == ["Failed to upload file: bucket not found"]
    [(record_id, data)] = documents.collections[CLASSES].items()
    assert "classRosterURL" not in data
    run = all_runs()[0]
    assert (run.status, run.step, run.record_id) == (RunStatus.FAILED, WorkflowStep.WRITE_RECORD, record_id)


def test_url_failure_is_journaled_with_orphan_file(documents, blobs, journal, roster_file):
    blobs.fail_on["get_download_url"] = BlobStoreError("token missing")
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)

    with pytest.raises(WorkflowStepError) as error:
        workflow.run(CLASSES, {}, attachment=roster_plan(roster_file))

    assert error.value.step == WorkflowStep.FETCH_URL
    assert error.value.storage_path in blobs.files
    run = all_runs()[0]
    assert (run.step, run.storage_path) == (WorkflowStep.UPLOAD, error.value.storage_path)
    assert run.error == "Failed to get download URL: token missing"


def test_patch_failure_reports_update_message(documents, blobs, journal, roster_file):
    documents.fail_on["update"] = DocumentStoreError("not found")
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)

    with pytest.raises(WorkflowStepError) as error:
        workflow.run(CLASSES, {}, attachment=roster_plan(roster_file), record_label="class")

    assert error.value.step == WorkflowStep.PATCH_RECORD
    assert error.value.message == "Failed to update class data: not found"
    assert all_runs()[0].step == WorkflowStep.FETCH_URL


def test_retry_creates_a_second_record(documents, blobs):
    workflow = CreateThenAttachWorkflow(documents, blobs)

    first = workflow.run(CLASSES, {"className": "Algebra"})
    second = workflow.run(CLASSES, {"className": "Algebra"})

    assert first.record_id != second.record_id
    assert len(documents.collections[CLASSES]) == 2


def test_journal_failure_does_not_break_the_workflow(documents, blobs, journal, roster_file, monkeypatch):
    def database_gone(*args, **kwargs):
        raise sa_exception.OperationalError("UPDATE workflow_runs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(journal, "mark_step", database_gone)
    workflow = CreateThenAttachWorkflow(documents, blobs, journal)
    successes, errors = [], []

    workflow.execute(CLASSES, {"className": "Algebra"}, successes.append, errors.append,
                     attachment=roster_plan(roster_file))

    assert len(successes) == 1 and errors == []
    record = documents.data(CLASSES, successes[0].record_id)
    assert record["classRosterURL"] == successes[0].attachment_url


def test_journal_unavailable_at_start_still_runs(documents, blobs, journal, monkeypatch):
    def database_gone(*args, **kwargs):
        raise sa_exception.OperationalError("INSERT INTO workflow_runs", {}, Exception("connection refused"))

    monkeypatch.setattr(journal, "start_run", database_gone)
    successes, errors = [], []

    CreateThenAttachWorkflow(documents, blobs, journal).execute(
        CLASSES, {"className": "Algebra"}, successes.append, errors.append
    )

    assert len(successes) == 1 and errors == []
    assert all_runs() == []
