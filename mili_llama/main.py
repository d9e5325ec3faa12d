import os
import time
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv

from mili_llama.auth.identity_provider import IdentityToolkitProvider
from mili_llama.constants import DEFAULT_RECONCILE_INTERVAL_MINUTES
from mili_llama.firestore.document_store import FirestoreDocumentStore
from mili_llama.firestore.firebase_app import get_firestore_client, get_storage_bucket, init_firebase
from mili_llama.scheduler.reconciliation import init_reconciliation_scheduler, reconcile_orphans
from mili_llama.services.backend import Backend
from mili_llama.services.school_service import SchoolService
from mili_llama.sql_orm.connection.sqlalchemy_pg import build_pg_url, dispose_global_engine
from mili_llama.sql_orm.workflow_journal.workflow_journal_orm import WorkflowJournal, setup_journal
from mili_llama.storage.blob_store import FirebaseBlobStore
from mili_llama.utils.logging_config import MiliLlamaLogger, get_main_logger


def load_config():
    env_file = os.getenv("ENV_FILE")
    if env_file is None:
        raise ValueError("Env file path not found")
    load_dotenv(dotenv_path=env_file)


def require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None:
        raise ValueError(f"{name} not set")
    return value


def load_journal_url() -> str:
    journal_url = os.getenv("JOURNAL_DB_URL")
    if journal_url:
        return journal_url

    return build_pg_url(
        user=require_env("POSTGRES_USER"),
        password=require_env("POSTGRES_PASSWORD"),
        host=require_env("POSTGRES_HOST"),
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        database=require_env("POSTGRES_DB"),
    )


def load_backend(journal: Optional[WorkflowJournal] = None) -> Backend:
    app = init_firebase(
        service_account_path=require_env("SERVICE_ACCOUNT_PATH"),
        storage_bucket=require_env("FIREBASE_STORAGE_BUCKET"),
    )
    return Backend(
        documents=FirestoreDocumentStore(get_firestore_client(app)),
        blobs=FirebaseBlobStore(get_storage_bucket(app)),
        identity=IdentityToolkitProvider(api_key=require_env("FIREBASE_WEB_API_KEY")),
        journal=journal,
    )


def main() -> BackgroundScheduler:
    load_config()
    MiliLlamaLogger.setup_logging()
    logger = get_main_logger()

    setup_journal(load_journal_url())
    journal = WorkflowJournal()
    backend = load_backend(journal)

    # leftovers from runs that failed before the last shutdown
    reconcile_orphans(backend.documents, backend.blobs, journal)

    interval = int(os.getenv("RECONCILE_INTERVAL_MINUTES", str(DEFAULT_RECONCILE_INTERVAL_MINUTES)))
    scheduler = init_reconciliation_scheduler(backend.documents, backend.blobs, journal, interval_minutes=interval)

    schools = SchoolService(backend).live_schools()
    schools.add_listener(lambda items: logger.info(f"Schools in view: {len(items)}"))
    schools.subscribe()

    logger.info("Mili Llama backend ready")
    return scheduler


if __name__ == "__main__":
    scheduler = None
    try:
        scheduler = main()

        # Keep the program running
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        get_main_logger().info("Exiting gracefully.")
    finally:
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        dispose_global_engine()
