"""Document store interface shared by the Firestore and in-memory backends."""

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..utils.exceptions import BatchTooLargeError, DocumentStoreError

_ID_ALPHABET = string.ascii_letters + string.digits


class _ServerTimestamp:
    """Sentinel replaced by the store's own clock at commit time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def auto_id() -> str:
    """Generate a 20-character document id, as Firestore client SDKs do."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(20))


@dataclass(frozen=True)
class DocumentSnapshot:
    """One document as read from the store."""

    id: str
    data: Dict[str, Any]


@dataclass
class CollectionSnapshot:
    """Full contents of a collection pushed to a subscriber."""

    collection: str
    documents: List[DocumentSnapshot] = field(default_factory=list)
    error: Optional[Exception] = None
    read_time: datetime = field(default_factory=datetime.utcnow)


SnapshotListener = Callable[[CollectionSnapshot], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Write:
    """A single operation inside a write batch."""

    op: str  # "set", "update" or "delete"
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None


class WriteBatch:
    """Collects writes and commits them as one all-or-nothing unit."""

    def __init__(self, store: "DocumentStore", max_size: Optional[int] = None):
        self._store = store
        self._max_size = max_size
        self._writes: List[Write] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._writes)

    @property
    def writes(self) -> List[Write]:
        return list(self._writes)

    def set(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Create or overwrite a document; returns its id."""
        doc_id = doc_id or auto_id()
        self._add(Write("set", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        self._add(Write("update", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._add(Write("delete", collection, doc_id))

    def commit(self) -> None:
        """
        Commit every collected write atomically.

        Raises:
            BatchTooLargeError: If the batch exceeds the store limit.
            DocumentStoreError: If the store rejects the batch; nothing is applied.
        """
        if self._committed:
            raise DocumentStoreError("Write batch already committed")
        if self._max_size is not None and len(self._writes) > self._max_size:
            raise BatchTooLargeError(
                f"Batch holds {len(self._writes)} writes, limit is {self._max_size}",
                details={"writes": len(self._writes), "limit": self._max_size},
            )
        self._store.commit(self._writes)
        self._committed = True

    def _add(self, write: Write) -> None:
        if self._committed:
            raise DocumentStoreError("Write batch already committed")
        self._writes.append(write)


class DocumentStore(Protocol):
    """Remote document store consumed by the dashboard."""

    def subscribe(
        self,
        collection: str,
        listener: SnapshotListener,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """Push full collection snapshots to ``listener`` until unsubscribed."""

    def list_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        """Read a collection once."""

    def create_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a store-assigned id."""

    def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""

    def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is not an error."""

    def batch(self) -> WriteBatch:
        """Open an atomic write batch."""

    def commit(self, writes: List[Write]) -> None:
        """Apply writes atomically (used by WriteBatch)."""

    def close(self) -> None:
        """Release connections and stop listeners."""
