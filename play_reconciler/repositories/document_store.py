"""Document store - thread-safe keyed collection with write listeners.

Base class for every repository. Provides:
- Deep-copied reads (callers never hold stored instances)
- Merge writes that skip unchanged documents
- Write listeners, dispatched after the lock is released
- Transactions that batch listener dispatch until the outermost exit
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, Hashable, Iterator, List, NamedTuple, Optional, TypeVar

from pydantic import BaseModel

from play_reconciler.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class DocumentNotFoundError(Exception):
    """Raised when a document is not found in a store."""

    pass


class WriteResult(NamedTuple):
    """Before/after images of one document write."""

    key: Any
    before: Optional[Any]
    after: Optional[Any]

    @property
    def changed(self) -> bool:
        return self.before != self.after

    @property
    def created(self) -> bool:
        return self.before is None and self.after is not None

    @property
    def deleted(self) -> bool:
        return self.before is not None and self.after is None


WriteListener = Callable[[WriteResult], None]


class DocumentStore(Generic[T]):
    """In-memory keyed document collection.

    All access is serialized by a per-collection re-entrant lock. Writes that
    leave a document unchanged are not stored and fire no listeners.
    Listeners run on the writer's thread once the lock is released; their
    exceptions are logged and never reach the writer.
    """

    collection = "documents"

    def __init__(self, lock=None):
        """Initialize store with empty storage and no listeners.

        Args:
            lock: Re-entrant lock to share with sibling collections
        """
        self._documents: Dict[Hashable, T] = {}
        self._lock = lock if lock is not None else threading.RLock()
        self._listeners: Dict[str, WriteListener] = {}
        self._depth = 0
        self._pending: List[WriteResult] = []

    # Listeners

    def add_listener(self, name: str, listener: WriteListener) -> None:
        """Register a write listener under a name (re-registering replaces it)."""
        with self._lock:
            self._listeners[name] = listener

    def remove_listener(self, name: str) -> None:
        with self._lock:
            self._listeners.pop(name, None)

    def listener_names(self) -> List[str]:
        with self._lock:
            return list(self._listeners)

    # Reads

    def find(self, key: Hashable) -> Optional[T]:
        """Find a document by key (returns None if not found).

        Args:
            key: Document key

        Returns:
            Copy of the document if found, None otherwise
        """
        with self._lock:
            document = self._documents.get(key)
            return _copy(document)

    def get(self, key: Hashable) -> T:
        """Get a document by key.

        Raises:
            DocumentNotFoundError: If key not found
        """
        document = self.find(key)
        if document is None:
            raise DocumentNotFoundError(f"{self.collection} document not found: {key}")
        return document

    def exists(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._documents

    def query(self, predicate: Callable[[T], bool], limit: Optional[int] = None) -> List[T]:
        """Get documents matching a predicate, in insertion order.

        Args:
            predicate: Filter applied to each stored document
            limit: Maximum number of documents to return

        Returns:
            List of matching document copies
        """
        with self._lock:
            matches = []
            for document in self._documents.values():
                if limit is not None and len(matches) >= limit:
                    break
                if predicate(document):
                    matches.append(_copy(document))
            return matches

    def get_all(self) -> List[T]:
        with self._lock:
            return [_copy(document) for document in self._documents.values()]

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._documents.keys())

    def count(self) -> int:
        with self._lock:
            return len(self._documents)

    # Writes

    def put(self, key: Hashable, document: T) -> WriteResult:
        """Insert or replace a document.

        Returns:
            WriteResult with before/after copies
        """
        with self._lock:
            result = self._store(key, _copy(document))
            deliver = self._drain()
        self._notify(deliver)
        return result

    def merge(
        self,
        key: Hashable,
        updates: Dict[str, Any],
        factory: Optional[Callable[[], T]] = None,
    ) -> WriteResult:
        """Merge field updates into a document.

        Args:
            key: Document key
            updates: Field values to set
            factory: Builds the base document when the key does not exist

        Returns:
            WriteResult; ``changed`` is False when nothing was written

        Raises:
            DocumentNotFoundError: If key not found and no factory given
        """
        with self._lock:
            current = self._documents.get(key)
            if current is None:
                if factory is None:
                    raise DocumentNotFoundError(f"{self.collection} document not found: {key}")
                base = factory()
            else:
                base = current
            merged = type(base).model_validate({**base.model_dump(), **updates})
            result = self._store(key, merged)
            deliver = self._drain()
        self._notify(deliver)
        return result

    def delete(self, key: Hashable) -> WriteResult:
        """Delete a document (no-op if not found)."""
        with self._lock:
            before = self._documents.pop(key, None)
            result = WriteResult(key, _copy(before), None)
            if result.changed:
                self._pending.append(result)
            deliver = self._drain()
        self._notify(deliver)
        return result

    def clear(self) -> None:
        """Remove all documents without notifying listeners.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._documents.clear()
            self._pending.clear()

    @contextmanager
    def transaction(self) -> Iterator["DocumentStore[T]"]:
        """Hold the collection lock across several reads and writes.

        Listener dispatch for writes made inside the block is deferred until
        the outermost transaction exits. Writes are applied immediately and
        are not rolled back on error.
        """
        deliver: List[WriteResult] = []
        try:
            with self._lock:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                    deliver = self._drain()
        finally:
            self._notify(deliver)

    # Internals (lock held)

    def _store(self, key: Hashable, document: T) -> WriteResult:
        current = self._documents.get(key)
        if current is not None and current == document:
            return WriteResult(key, _copy(current), _copy(current))
        self._documents[key] = document
        result = WriteResult(key, _copy(current), _copy(document))
        self._pending.append(result)
        return result

    def _drain(self) -> List[WriteResult]:
        if self._depth > 0:
            return []
        deliver, self._pending = self._pending, []
        return deliver

    def _notify(self, results: List[WriteResult]) -> None:
        if not results:
            return
        with self._lock:
            listeners = list(self._listeners.items())
        for result in results:
            for name, listener in listeners:
                try:
                    listener(result)
                except Exception as e:
                    logger.error(
                        "write_listener_failed",
                        collection=self.collection,
                        listener=name,
                        error=str(e),
                        exc_info=True,
                    )

    def __len__(self) -> int:
        """Get number of documents in store."""
        return self.count()

    def __contains__(self, key: Hashable) -> bool:
        """Check if key exists in store."""
        return self.exists(key)

    def __repr__(self) -> str:
        """String representation of store."""
        return f"{type(self).__name__}(documents={self.count()})"


def _copy(document: Optional[T]) -> Optional[T]:
    return document.model_copy(deep=True) if document is not None else None
