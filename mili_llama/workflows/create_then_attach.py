"""
Create a record, then upload its attachment and link it.

Steps run strictly in order on the caller's thread:

1. write the record without its attachment field, getting a generated id
2. upload the local file to a path derived from that id
3. fetch the durable download URL of the upload
4. patch the record's attachment field with the URL

Without a local file the workflow ends after step 1. A failure stops the
chain and is reported as a WorkflowStepError naming the step; earlier steps
are not rolled back. The record and file a failed run leaves behind are
journaled so the reconciliation sweep can deal with them.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import sqlalchemy.exc as sa_exception

from mili_llama.errors import BackendError, WorkflowStepError
from mili_llama.firestore.document_store import DocumentStore
from mili_llama.models.model import LocalFile
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import WorkflowJournal, WorkflowStep
from mili_llama.storage.blob_store import BlobStore
from mili_llama.utils.logging_config import get_workflow_logger, log_workflow_step

logger = get_workflow_logger()


@dataclass
class AttachmentPlan:
    local_file: LocalFile
    # record id -> storage path
    storage_path_for: Callable[[str], str]
    attachment_field: str
    # download URL -> value stored in attachment_field
    to_field_value: Callable[[str], Any] = lambda url: url


@dataclass
class WorkflowResult:
    record_id: str
    attachment_url: Optional[str] = None
    storage_path: Optional[str] = None


class CreateThenAttachWorkflow:

    def __init__(
        self,
        documents: DocumentStore,
        blobs: BlobStore,
        journal: Optional[WorkflowJournal] = None,
    ):
        self.documents = documents
        self.blobs = blobs
        self.journal = journal

    def run(
        self,
        collection_path: str,
        fields: Dict[str, Any],
        attachment: Optional[AttachmentPlan] = None,
        record_label: str = "record",
    ) -> WorkflowResult:
        attachment_field = attachment.attachment_field if attachment else None
        run_id = self._journal("start_run", collection_path, attachment_field)

        fields = {key: value for key, value in fields.items() if key != attachment_field}

        try:
            record_id = self.documents.add(collection_path, fields)
        except BackendError as e:
            raise self._compensate(run_id, WorkflowStepError(
                WorkflowStep.WRITE_RECORD, f"Failed to save {record_label}: {e}"
            )) from e
        record_path = f"{collection_path}/{record_id}"
        self._mark(run_id, WorkflowStep.WRITE_RECORD, record_id=record_id)
        log_workflow_step(logger, "WRITE", record_path)

        if attachment is None:
            self._finish(run_id)
            return WorkflowResult(record_id=record_id)

        storage_path = attachment.storage_path_for(record_id)
        try:
            self.blobs.put_file(storage_path, attachment.local_file)
        except BackendError as e:
            raise self._compensate(run_id, WorkflowStepError(
                WorkflowStep.UPLOAD, f"Failed to upload file: {e}", record_id=record_id
            )) from e
        self._mark(run_id, WorkflowStep.UPLOAD, storage_path=storage_path)
        log_workflow_step(logger, "UPLOAD", record_path, details=storage_path)

        try:
            download_url = self.blobs.get_download_url(storage_path)
        except BackendError as e:
            raise self._compensate(run_id, WorkflowStepError(
                WorkflowStep.FETCH_URL, f"Failed to get download URL: {e}",
                record_id=record_id, storage_path=storage_path
            )) from e
        self._mark(run_id, WorkflowStep.FETCH_URL, attachment_url=download_url)

        try:
            self.documents.update(
                collection_path, record_id,
                {attachment.attachment_field: attachment.to_field_value(download_url)}
            )
        except BackendError as e:
            raise self._compensate(run_id, WorkflowStepError(
                WorkflowStep.PATCH_RECORD, f"Failed to update {record_label} data: {e}",
                record_id=record_id, storage_path=storage_path
            )) from e
        self._mark(run_id, WorkflowStep.PATCH_RECORD)
        log_workflow_step(logger, "PATCH", record_path, details=attachment.attachment_field)

        self._finish(run_id)
        return WorkflowResult(record_id=record_id, attachment_url=download_url, storage_path=storage_path)

    def execute(
        self,
        collection_path: str,
        fields: Dict[str, Any],
        on_success: Callable[[WorkflowResult], None],
        on_error: Callable[[str], None],
        attachment: Optional[AttachmentPlan] = None,
        record_label: str = "record",
    ) -> Optional[WorkflowResult]:
        """Callback form of run() for screen code: exactly one of the callbacks fires."""
        try:
            result = self.run(collection_path, fields, attachment=attachment, record_label=record_label)
        except WorkflowStepError as e:
            on_error(e.message)
            return None
        on_success(result)
        return result

    def _journal(self, action: str, *args, **kwargs) -> Any:
        """
        Call a journal method, logging and dropping journal database errors.

        The journal only feeds the reconciliation sweep; the remote steps and
        the result reported to the caller never depend on it.
        """
        if self.journal is None:
            return None
        try:
            return getattr(self.journal, action)(*args, **kwargs)
        except sa_exception.SQLAlchemyError as e:
            logger.error(f"JOURNAL_{action.upper()} | Error: {e}")
            return None

    def _mark(self, run_id: Optional[str], step: str, **kwargs) -> None:
        if run_id is not None:
            self._journal("mark_step", run_id, step, **kwargs)

    def _finish(self, run_id: Optional[str]) -> None:
        if run_id is not None:
            self._journal("finish_run", run_id)

    def _compensate(self, run_id: Optional[str], failure: WorkflowStepError) -> WorkflowStepError:
        """Single place every partial failure passes through before it is raised."""
        log_workflow_step(
            logger, failure.step, failure.record_id or "<not created>", success=False,
            details=failure.message
        )
        if run_id is not None:
            self._journal("fail_run", run_id, failure.message)
        return failure
