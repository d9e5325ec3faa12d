import datetime

import pytest

from mili_llama.errors import BlobStoreError, DocumentStoreError, WorkflowStepError
from mili_llama.scheduler.reconciliation import RECONCILE_JOB_ID, init_reconciliation_scheduler, reconcile_orphans
from mili_llama.sql_orm.connection.sqlalchemy_pg import get_session
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import RunStatus, WorkflowRunOrm, WorkflowStep
from mili_llama.workflows.create_then_attach import AttachmentPlan, CreateThenAttachWorkflow

CLASSES = "Schools/s1/Classes"


def roster_plan(local_file):
    return AttachmentPlan(
        local_file=local_file,
        storage_path_for=lambda record_id: f"{CLASSES}/{record_id}/Attachments/{local_file.file_name}",
        attachment_field="classRosterURL",
    )


def failed_run(documents, blobs, journal, local_file, fail_on, error):
    target = blobs if fail_on in ("put_file", "get_download_url") else documents
    target.fail_on[fail_on] = error
    with pytest.raises(WorkflowStepError) as failure:
        CreateThenAttachWorkflow(documents, blobs, journal).run(CLASSES, {}, attachment=roster_plan(local_file))
    return failure.value


def backdate(run_id, minutes):
    session = get_session()
    try:
        session.query(WorkflowRunOrm).filter(WorkflowRunOrm.run_id == run_id).update(
            {"updated_at": datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=minutes)}
        )
        session.commit()
    finally:
        session.close()


def interrupted_run(documents, blobs, journal, local_file):
    """A run cut off after its upload, never marked failed."""
    record_id = documents.add(CLASSES, {"className": "Art"})
    storage_path = f"{CLASSES}/{record_id}/Attachments/{local_file.file_name}"
    blobs.put_file(storage_path, local_file)
    run_id = journal.start_run(CLASSES, "classRosterURL")
    journal.mark_step(run_id, WorkflowStep.WRITE_RECORD, record_id=record_id)
    journal.mark_step(run_id, WorkflowStep.UPLOAD, storage_path=storage_path)
    return run_id, storage_path


def test_orphan_file_is_deleted(documents, blobs, journal, roster_file):
    failure = failed_run(documents, blobs, journal, roster_file, "update", DocumentStoreError("aborted"))
    assert failure.storage_path in blobs.files

    report = reconcile_orphans(documents, blobs, journal)

    assert failure.storage_path not in blobs.files
    assert len(report.cleaned) == 1
    assert journal.get_run(report.cleaned[0]).status == RunStatus.CLEANED
    assert journal.get_failed_runs() == []


def test_file_linked_by_applied_patch_is_kept(documents, blobs, journal, roster_file, monkeypatch):
    apply_update = documents.update

    def applied_then_timed_out(collection_path, document_id, fields):
        apply_update(collection_path, document_id, fields)
        raise DocumentStoreError("Deadline Exceeded")

    monkeypatch.setattr(documents, "update", applied_then_timed_out)
    with pytest.raises(WorkflowStepError) as failure:
        CreateThenAttachWorkflow(documents, blobs, journal).run(CLASSES, {}, attachment=roster_plan(roster_file))
    storage_path = failure.value.storage_path

    report = reconcile_orphans(documents, blobs, journal)

    assert storage_path in blobs.files
    assert documents.data(CLASSES, failure.value.record_id)["classRosterURL"] == f"https://files.test/{storage_path}?token=t"
    assert report.cleaned == [] and len(report.linked) == 1
    assert journal.get_run(report.linked[0]).status == RunStatus.SUCCEEDED


def test_file_linked_without_journaled_url_is_kept(documents, blobs, journal, roster_file):
    run_id, storage_path = interrupted_run(documents, blobs, journal, roster_file)
    record_id = journal.get_run(run_id).record_id
    documents.update(CLASSES, record_id, {"classRosterURL": f"https://files.test/{storage_path}?token=t"})
    journal.fail_run(run_id, "lost connection")

    report = reconcile_orphans(documents, blobs, journal)

    assert report.linked == [run_id]
    assert storage_path in blobs.files


def test_unreadable_record_is_retried(documents, blobs, journal, roster_file):
    failure = failed_run(documents, blobs, journal, roster_file, "update", DocumentStoreError("aborted"))
    documents.fail_on["get"] = DocumentStoreError("unavailable")

    report = reconcile_orphans(documents, blobs, journal)

    assert len(report.retry_later) == 1
    assert failure.storage_path in blobs.files
    assert journal.get_run(report.retry_later[0]).status == RunStatus.FAILED


def test_stale_running_run_is_swept(documents, blobs, journal, roster_file):
    run_id, storage_path = interrupted_run(documents, blobs, journal, roster_file)
    backdate(run_id, minutes=90)

    report = reconcile_orphans(documents, blobs, journal, stale_after_minutes=60)

    assert report.cleaned == [run_id]
    assert storage_path not in blobs.files


def test_recent_running_run_is_left_alone(documents, blobs, journal, roster_file):
    run_id, storage_path = interrupted_run(documents, blobs, journal, roster_file)

    report = reconcile_orphans(documents, blobs, journal, stale_after_minutes=60)

    assert report.cleaned == [] and report.retry_later == []
    assert storage_path in blobs.files
    assert journal.get_run(run_id).status == RunStatus.RUNNING


def test_record_without_attachment_is_abandoned(documents, blobs, journal, roster_file):
    failure = failed_run(documents, blobs, journal, roster_file, "put_file", BlobStoreError("denied"))

    report = reconcile_orphans(documents, blobs, journal)

    assert report.cleaned == [] and len(report.abandoned) == 1
    # the record itself stays: it is valid without its roster
    assert documents.data(CLASSES, failure.record_id) is not None
    assert not any(operation == "delete" for operation, _ in blobs.calls)


def test_failed_cleanup_is_retried_next_sweep(documents, blobs, journal, roster_file):
    failure = failed_run(documents, blobs, journal, roster_file, "get_download_url", BlobStoreError("timeout"))
    blobs.fail_on["delete"] = BlobStoreError("unavailable")

    first = reconcile_orphans(documents, blobs, journal)
    second = reconcile_orphans(documents, blobs, journal)

    assert len(first.retry_later) == 1
    assert second.cleaned == first.retry_later
    assert failure.storage_path not in blobs.files


def test_successful_runs_are_left_alone(documents, blobs, journal):
    CreateThenAttachWorkflow(documents, blobs, journal).run("Schools", {"schoolName": "Northside"})

    report = reconcile_orphans(documents, blobs, journal)

    assert (report.cleaned, report.abandoned, report.linked, report.retry_later) == ([], [], [], [])


def test_scheduler_registers_sweep_job(documents, blobs, journal):
    scheduler = init_reconciliation_scheduler(documents, blobs, journal, interval_minutes=5, start=False)

    job = scheduler.get_job(RECONCILE_JOB_ID)

    assert job is not None
    assert job.trigger.interval.total_seconds() == 300
    assert not scheduler.running
