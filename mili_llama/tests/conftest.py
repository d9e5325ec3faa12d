import os
import tempfile

# Loggers configure themselves on first import; keep their files out of the work tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="mili_llama_logs_"))

import pytest

from mili_llama.models.model import LocalFile
from mili_llama.services.backend import Backend
from mili_llama.sql_orm.connection.sqlalchemy_pg import dispose_global_engine
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import WorkflowJournal, setup_journal
from mili_llama.tests.fakes import FakeIdentityProvider, InMemoryBlobStore, InMemoryDocumentStore


@pytest.fixture
def calls():
    """Shared, ordered log of every remote call made through the fakes."""
    return []


@pytest.fixture
def documents(calls):
    return InMemoryDocumentStore(calls)


@pytest.fixture
def blobs(calls):
    return InMemoryBlobStore(calls)


@pytest.fixture
def identity(calls):
    return FakeIdentityProvider(calls)


@pytest.fixture
def journal(tmp_path):
    setup_journal(f"sqlite:///{tmp_path / 'journal.db'}")
    yield WorkflowJournal()
    dispose_global_engine()


@pytest.fixture
def backend(documents, blobs, identity, journal):
    identity.sign_in_as("teacher-1")
    return Backend(documents=documents, blobs=blobs, identity=identity, journal=journal)


@pytest.fixture
def roster_file(tmp_path):
    path = tmp_path / "roster.pdf"
    path.write_bytes(b"%PDF-1.4 roster")
    return LocalFile(path=str(path), file_name="roster.pdf", content_type="application/pdf")
