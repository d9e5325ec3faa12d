from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from google.api_core.exceptions import GoogleAPICallError
from google.cloud.firestore_v1 import Client as FirestoreClient
from google.cloud.firestore_v1 import DocumentSnapshot
from google.cloud.firestore_v1.base_query import FieldFilter

from mili_llama.errors import DocumentStoreError
from mili_llama.utils.logging_config import get_firestore_logger, log_firestore_operation

logger = get_firestore_logger()

EqualityFilters = Dict[str, Any]


@dataclass
class StoredDocument:
    """A document read from the store: its id plus its field map."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)


SnapshotCallback = Callable[[List[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class SubscriptionHandle(ABC):
    """Handle on an open push subscription."""

    @property
    @abstractmethod
    def active(self) -> bool:
        ...

    @abstractmethod
    def unsubscribe(self) -> None:
        """Release the subscription. Calling it again does nothing."""


class DocumentStore(ABC):
    """The document database the screens read and write."""

    @abstractmethod
    def get(self, collection_path: str, document_id: str) -> Optional[StoredDocument]:
        ...

    @abstractmethod
    def query(self, collection_path: str, filters: Optional[EqualityFilters] = None) -> List[StoredDocument]:
        ...

    @abstractmethod
    def add(self, collection_path: str, fields: Dict[str, Any]) -> str:
        """Create a document under a store-generated id and return the id."""

    @abstractmethod
    def set(self, collection_path: str, document_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    def update(self, collection_path: str, document_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection_path: str, document_id: str) -> None:
        ...

    @abstractmethod
    def subscribe(
        self,
        collection_path: str,
        filters: Optional[EqualityFilters],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle:
        ...


def describe_filters(filters: Optional[EqualityFilters]) -> str:
    if not filters:
        return "all"
    return ", ".join(f"{key} == {value!r}" for key, value in filters.items())


class FirestoreSubscription(SubscriptionHandle):
    def __init__(self, watch, collection_path: str):
        self._watch = watch
        self._collection_path = collection_path
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._watch.unsubscribe()
        log_firestore_operation(logger, "UNSUBSCRIBE", self._collection_path)


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore backed by a google-cloud-firestore client."""

    def __init__(self, firestore_db: FirestoreClient):
        self.firestore_db = firestore_db

    def _query(self, collection_path: str, filters: Optional[EqualityFilters]):
        query = self.firestore_db.collection(collection_path)
        for field_path, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(field_path, "==", value))
        return query

    @staticmethod
    def _to_stored(snapshot: DocumentSnapshot) -> StoredDocument:
        return StoredDocument(id=snapshot.id, data=snapshot.to_dict() or {})

    def get(self, collection_path: str, document_id: str) -> Optional[StoredDocument]:
        path = f"{collection_path}/{document_id}"
        try:
            snapshot = self.firestore_db.collection(collection_path).document(document_id).get()
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "GET", path, success=False, error=e)
            raise DocumentStoreError(f"Failed to load {path}: {e.message}") from e

        if not snapshot.exists:
            log_firestore_operation(logger, "GET", path, details="not found")
            return None
        log_firestore_operation(logger, "GET", path)
        return self._to_stored(snapshot)

    def query(self, collection_path: str, filters: Optional[EqualityFilters] = None) -> List[StoredDocument]:
        try:
            documents = [self._to_stored(snapshot) for snapshot in self._query(collection_path, filters).stream()]
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "QUERY", collection_path, success=False, error=e)
            raise DocumentStoreError(f"Failed to query {collection_path}: {e.message}") from e

        log_firestore_operation(
            logger, "QUERY", collection_path,
            details=f"{describe_filters(filters)} -> {len(documents)} documents"
        )
        return documents

    def add(self, collection_path: str, fields: Dict[str, Any]) -> str:
        doc_ref = self.firestore_db.collection(collection_path).document()
        try:
            doc_ref.set(fields)
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "ADD", collection_path, success=False, error=e)
            raise DocumentStoreError(f"Failed to create document in {collection_path}: {e.message}") from e

        log_firestore_operation(logger, "ADD", f"{collection_path}/{doc_ref.id}")
        return doc_ref.id

    def set(self, collection_path: str, document_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        path = f"{collection_path}/{document_id}"
        try:
            self.firestore_db.collection(collection_path).document(document_id).set(fields, merge=merge)
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "SET", path, success=False, error=e)
            raise DocumentStoreError(f"Failed to save {path}: {e.message}") from e
        log_firestore_operation(logger, "SET", path, details="merge" if merge else None)

    def update(self, collection_path: str, document_id: str, fields: Dict[str, Any]) -> None:
        path = f"{collection_path}/{document_id}"
        try:
            self.firestore_db.collection(collection_path).document(document_id).update(fields)
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "UPDATE", path, success=False, error=e)
            raise DocumentStoreError(f"Failed to update {path}: {e.message}") from e
        log_firestore_operation(logger, "UPDATE", path, details=", ".join(fields))

    def delete(self, collection_path: str, document_id: str) -> None:
        path = f"{collection_path}/{document_id}"
        try:
            self.firestore_db.collection(collection_path).document(document_id).delete()
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "DELETE", path, success=False, error=e)
            raise DocumentStoreError(f"Failed to delete {path}: {e.message}") from e
        log_firestore_operation(logger, "DELETE", path)

    def subscribe(
        self,
        collection_path: str,
        filters: Optional[EqualityFilters],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle:
        # The Python watch has no error callback of its own: failures while
        # delivering a snapshot are routed to on_error instead
        def on_firestore_snapshot(doc_snapshot: List[DocumentSnapshot], changes, read_time):
            try:
                on_snapshot([self._to_stored(snapshot) for snapshot in doc_snapshot])
            except Exception as e:
                log_firestore_operation(logger, "SNAPSHOT", collection_path, success=False, error=e)
                on_error(e)

        try:
            watch = self._query(collection_path, filters).on_snapshot(on_firestore_snapshot)
        except GoogleAPICallError as e:
            log_firestore_operation(logger, "SUBSCRIBE", collection_path, success=False, error=e)
            raise DocumentStoreError(f"Failed to listen to {collection_path}: {e.message}") from e

        log_firestore_operation(logger, "SUBSCRIBE", collection_path, details=describe_filters(filters))
        return FirestoreSubscription(watch, collection_path)
