import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import quote

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud.storage import Bucket

from mili_llama.errors import BlobStoreError
from mili_llama.models.model import LocalFile
from mili_llama.utils.logging_config import get_storage_logger, log_storage_operation

logger = get_storage_logger()

DOWNLOAD_TOKENS_METADATA_KEY = "firebaseStorageDownloadTokens"
DOWNLOAD_URL_BASE = "https://firebasestorage.googleapis.com/v0/b"


def build_download_url(bucket_name: str, path: str, token: str) -> str:
    encoded = quote(path, safe="")
    return f"{DOWNLOAD_URL_BASE}/{bucket_name}/o/{encoded}?alt=media&token={token}"


class BlobStore(ABC):
    """File storage for rosters, request attachments and profile pictures."""

    @abstractmethod
    def put_file(self, path: str, local_file: LocalFile) -> str:
        """Upload a local file and return the stored path once it is durable."""

    @abstractmethod
    def get_download_url(self, path: str) -> str:
        ...

    @abstractmethod
    def list_children(self, path: str) -> List[str]:
        """Names of the files directly under path."""

    @abstractmethod
    def get_file(self, path: str, destination: Optional[str] = None) -> str:
        """Download a file and return the local path it was written to."""

    @abstractmethod
    def delete(self, path: str) -> None:
        ...


class FirebaseBlobStore(BlobStore):
    """BlobStore backed by the Firebase default Cloud Storage bucket."""

    def __init__(self, bucket: Bucket):
        self.bucket = bucket

    def put_file(self, path: str, local_file: LocalFile) -> str:
        blob = self.bucket.blob(path)
        # Same token scheme the Firebase client SDKs use for download URLs
        blob.metadata = {DOWNLOAD_TOKENS_METADATA_KEY: str(uuid.uuid4())}
        try:
            blob.upload_from_filename(local_file.path, content_type=local_file.content_type)
        except (GoogleAPICallError, OSError) as e:
            log_storage_operation(logger, "PUT", path, success=False, error=e)
            raise BlobStoreError(f"Failed to upload file: {e}") from e

        log_storage_operation(logger, "PUT", path)
        return path

    def get_download_url(self, path: str) -> str:
        try:
            blob = self.bucket.get_blob(path)
            if blob is None:
                log_storage_operation(logger, "URL", path, success=False)
                raise BlobStoreError(f"No file stored at {path}")

            tokens = (blob.metadata or {}).get(DOWNLOAD_TOKENS_METADATA_KEY)
            if not tokens:
                tokens = str(uuid.uuid4())
                blob.metadata = {**(blob.metadata or {}), DOWNLOAD_TOKENS_METADATA_KEY: tokens}
                blob.patch()
        except GoogleAPICallError as e:
            log_storage_operation(logger, "URL", path, success=False, error=e)
            raise BlobStoreError(f"Failed to get download URL: {e}") from e

        log_storage_operation(logger, "URL", path)
        return build_download_url(self.bucket.name, path, tokens.split(",")[0])

    def list_children(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        try:
            names = [
                blob.name[len(prefix):]
                for blob in self.bucket.list_blobs(prefix=prefix, delimiter="/")
                if blob.name != prefix
            ]
        except GoogleAPICallError as e:
            log_storage_operation(logger, "LIST", path, success=False, error=e)
            raise BlobStoreError(f"Failed to list {path}: {e}") from e

        log_storage_operation(logger, "LIST", path)
        return names

    def get_file(self, path: str, destination: Optional[str] = None) -> str:
        if destination is None:
            _, extension = os.path.splitext(path)
            fd, destination = tempfile.mkstemp(prefix="temp", suffix=extension)
            os.close(fd)
        try:
            self.bucket.blob(path).download_to_filename(destination)
        except GoogleAPICallError as e:
            log_storage_operation(logger, "GET", path, success=False, error=e)
            raise BlobStoreError(f"Failed to download {path}: {e}") from e

        log_storage_operation(logger, "GET", path)
        return destination

    def delete(self, path: str) -> None:
        try:
            self.bucket.blob(path).delete()
        except NotFound:
            logger.warning(f"STORAGE_DELETE | Path: {path} | Details: already gone")
            return
        except GoogleAPICallError as e:
            log_storage_operation(logger, "DELETE", path, success=False, error=e)
            raise BlobStoreError(f"Failed to delete {path}: {e}") from e
        log_storage_operation(logger, "DELETE", path)
