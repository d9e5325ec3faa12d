import firebase_admin
from firebase_admin import credentials, firestore, storage
from google.cloud.firestore_v1 import Client as FirestoreClient
from google.cloud.storage import Bucket

from mili_llama.utils.logging_config import get_firestore_logger

logger = get_firestore_logger()


def init_firebase(service_account_path: str, storage_bucket: str) -> firebase_admin.App:
    cred = credentials.Certificate(service_account_path)
    app = firebase_admin.initialize_app(cred, {"storageBucket": storage_bucket})
    logger.info(f"Firebase app initialized for project {app.project_id} with bucket {storage_bucket}")
    return app


def get_firestore_client(app: firebase_admin.App) -> FirestoreClient:
    return firestore.client(app=app)


def get_storage_bucket(app: firebase_admin.App) -> Bucket:
    return storage.bucket(app=app)
