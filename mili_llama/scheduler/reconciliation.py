"""
Periodic sweep over create-then-attach runs that did not finish cleanly.

Swept runs are the failed ones plus those left running by a crash. A run
that stopped after its upload may have left a file no record points at;
the sweep reads the record first and deletes the file only when the record
does not link it. A remote patch can fail on the client after the backend
applied it, so a linked file means the run actually succeeded. A run that
stopped before its upload left at most a record without attachment, which
is still a valid record; the sweep only marks it abandoned. Runs whose
checks or cleanup fail stay as they are and are picked up by the next sweep.
"""
import datetime
from dataclasses import dataclass, field
from typing import Any, List
from urllib.parse import quote

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mili_llama.constants import DEFAULT_RECONCILE_INTERVAL_MINUTES, DEFAULT_STALE_RUN_MINUTES
from mili_llama.errors import BackendError
from mili_llama.firestore.document_store import DocumentStore
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import (
    RunStatus,
    WorkflowJournal,
    WorkflowRunOrm,
    WorkflowStep,
)
from mili_llama.storage.blob_store import BlobStore
from mili_llama.utils.logging_config import get_workflow_logger, log_workflow_step

logger = get_workflow_logger()

RECONCILE_JOB_ID = "orphan_reconciliation"

# Steps after which the uploaded file exists but may never have been linked
ORPHAN_FILE_STEPS = (WorkflowStep.UPLOAD, WorkflowStep.FETCH_URL)


@dataclass
class ReconciliationReport:
    cleaned: List[str] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)
    # file turned out to be linked from its record
    linked: List[str] = field(default_factory=list)
    retry_later: List[str] = field(default_factory=list)


def _references_file(value: Any, run: WorkflowRunOrm) -> bool:
    values = value if isinstance(value, (list, tuple)) else [value]
    for item in values:
        if not isinstance(item, str) or not item:
            continue
        if run.attachment_url and item == run.attachment_url:
            return True
        # URL never journaled: match on the storage path inside the URL
        if quote(run.storage_path, safe="") in item or run.storage_path in item:
            return True
    return False


def record_links_file(documents: DocumentStore, run: WorkflowRunOrm) -> bool:
    """Whether the run's record already points at the run's uploaded file."""
    if not run.record_id or not run.attachment_field:
        return False
    document = documents.get(run.collection_path, run.record_id)
    if document is None:
        return False
    return _references_file(document.data.get(run.attachment_field), run)


def reconcile_orphans(
    documents: DocumentStore,
    blobs: BlobStore,
    journal: WorkflowJournal,
    stale_after_minutes: int = DEFAULT_STALE_RUN_MINUTES,
) -> ReconciliationReport:
    report = ReconciliationReport()
    stale_before = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=stale_after_minutes)

    for run in journal.get_runs_to_sweep(stale_before):
        record_path = f"{run.collection_path}/{run.record_id or '<not created>'}"

        if run.step == WorkflowStep.PATCH_RECORD:
            # every step went through; only the final bookkeeping was lost
            journal.resolve_run(run.run_id, RunStatus.SUCCEEDED)
            report.linked.append(run.run_id)
            continue

        if not (run.storage_path and run.step in ORPHAN_FILE_STEPS):
            journal.resolve_run(run.run_id, RunStatus.ABANDONED)
            report.abandoned.append(run.run_id)
            log_workflow_step(logger, "SWEEP", record_path, details=f"abandoned after {run.step}")
            continue

        try:
            if record_links_file(documents, run):
                journal.resolve_run(run.run_id, RunStatus.SUCCEEDED)
                report.linked.append(run.run_id)
                log_workflow_step(logger, "SWEEP", record_path, details=f"{run.storage_path} is linked, keeping it")
                continue
            blobs.delete(run.storage_path)
        except BackendError as e:
            log_workflow_step(logger, "SWEEP", record_path, success=False, details=str(e))
            report.retry_later.append(run.run_id)
            continue

        journal.resolve_run(run.run_id, RunStatus.CLEANED)
        report.cleaned.append(run.run_id)
        log_workflow_step(logger, "SWEEP", record_path, details=f"deleted orphan file {run.storage_path}")

    logger.info(
        f"Reconciliation finished - cleaned: {len(report.cleaned)}, linked: {len(report.linked)}, "
        f"abandoned: {len(report.abandoned)}, retry later: {len(report.retry_later)}"
    )
    return report


def init_reconciliation_scheduler(
    documents: DocumentStore,
    blobs: BlobStore,
    journal: WorkflowJournal,
    interval_minutes: int = DEFAULT_RECONCILE_INTERVAL_MINUTES,
    start: bool = True,
) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(
        job_defaults={
            'max_instances': 1,
            'coalesce': True,
        }
    )

    def job_listener(event):
        if event.exception:
            logger.error(f"Job {event.job_id} crashed: {event.exception}")
        else:
            logger.debug(f"Job {event.job_id} executed successfully")

    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    scheduler.add_job(
        reconcile_orphans,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[documents, blobs, journal],
        id=RECONCILE_JOB_ID,
        name="Orphan upload reconciliation",
        replace_existing=True,
    )

    if start:
        scheduler.start()
        logger.info(f"Reconciliation scheduler started, sweeping every {interval_minutes} minutes")
    return scheduler
