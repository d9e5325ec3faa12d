from dataclasses import dataclass
from typing import Optional

from mili_llama.auth.identity_provider import IdentityProvider
from mili_llama.firestore.document_store import DocumentStore
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import WorkflowJournal
from mili_llama.storage.blob_store import BlobStore
from mili_llama.workflows.create_then_attach import CreateThenAttachWorkflow


@dataclass
class Backend:
    """The remote collaborators, built once at startup and handed to every service."""
    documents: DocumentStore
    blobs: BlobStore
    identity: IdentityProvider
    journal: Optional[WorkflowJournal] = None

    def workflow(self) -> CreateThenAttachWorkflow:
        return CreateThenAttachWorkflow(self.documents, self.blobs, self.journal)

    def require_user_id(self) -> str:
        uid = self.identity.current_user_id()
        if not uid:
            raise PermissionError("No user is signed in")
        return uid
