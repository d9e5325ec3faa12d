"""
Live collection views: a typed list that mirrors a remote collection.

Each view owns at most one subscription. Every snapshot replaces the whole
list, re-mapped through a tolerant record mapper. Listener errors are
terminal for that subscription and leave the last good list in place; the
consumer resubscribes to recover.
"""
import threading
from typing import Callable, Generic, List, Optional

from mili_llama.errors import DocumentStoreError
from mili_llama.firestore.document_store import (
    DocumentStore,
    EqualityFilters,
    StoredDocument,
    SubscriptionHandle,
    describe_filters,
)
from mili_llama.helper.record_mapping_helper import RecordMapper, T
from mili_llama.utils.logging_config import get_view_logger

logger = get_view_logger()

ChangeListener = Callable[[List[T]], None]


class LiveCollectionView(Generic[T]):

    def __init__(
        self,
        store: DocumentStore,
        collection_path: str,
        mapper: RecordMapper,
        label: str = "records",
        clear_on_resubscribe: bool = False,
    ):
        self.store = store
        self.collection_path = collection_path
        self.mapper = mapper
        self.label = label
        self.clear_on_resubscribe = clear_on_resubscribe

        self._lock = threading.Lock()
        self._items: List[T] = []
        self._error_message = ""
        self._handle: Optional[SubscriptionHandle] = None
        self._generation = 0
        self._listeners: List[ChangeListener] = []

    @property
    def items(self) -> List[T]:
        with self._lock:
            return list(self._items)

    @property
    def error_message(self) -> str:
        with self._lock:
            return self._error_message

    @property
    def is_subscribed(self) -> bool:
        with self._lock:
            return self._handle is not None and self._handle.active

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def subscribe(self, filters: Optional[EqualityFilters] = None) -> Optional[SubscriptionHandle]:
        """
        Open a subscription with the given equality filters.

        The previous subscription of this view, if any, is released first.
        Returns None when the subscription could not be opened; the reason
        is in error_message.
        """
        with self._lock:
            previous = self._handle
            self._handle = None
            self._generation += 1
            generation = self._generation
            if self.clear_on_resubscribe:
                self._items = []

        if previous is not None:
            previous.unsubscribe()

        try:
            handle = self.store.subscribe(
                self.collection_path,
                filters,
                on_snapshot=lambda documents: self._on_snapshot(generation, documents),
                on_error=lambda error: self._on_error(generation, error),
            )
        except DocumentStoreError as e:
            with self._lock:
                self._error_message = f"Error fetching {self.label}: {e}"
            logger.error(f"VIEW_SUBSCRIBE | Path: {self.collection_path} | Error: {e}")
            return None

        with self._lock:
            if generation == self._generation:
                self._handle = handle
                handle = None
        if handle is not None:
            # Another subscribe won the race; this one is already stale
            handle.unsubscribe()
            return None

        logger.info(f"VIEW_SUBSCRIBE | Path: {self.collection_path} | Filters: {describe_filters(filters)}")
        return self._handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle] = None) -> None:
        """Release the given subscription, or the current one. Safe to call repeatedly."""
        with self._lock:
            if handle is None or handle is self._handle:
                handle, self._handle = self._handle, None
                self._generation += 1
        if handle is not None:
            handle.unsubscribe()

    def close(self) -> None:
        self.unsubscribe()
        self._listeners.clear()

    def _on_snapshot(self, generation: int, documents: List[StoredDocument]) -> None:
        records = [self.mapper(document.id, document.data) for document in documents]
        with self._lock:
            if generation != self._generation:
                return
            self._items = records
            self._error_message = ""
        logger.debug(f"VIEW_SNAPSHOT | Path: {self.collection_path} | Records: {len(records)}")
        for listener in list(self._listeners):
            listener(list(records))

    def _on_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._error_message = f"Error fetching {self.label}: {error}"
            handle, self._handle = self._handle, None
            self._generation += 1
        logger.error(f"VIEW_ERROR | Path: {self.collection_path} | Error: {error}")
        if handle is not None:
            handle.unsubscribe()
