"""In-process document store for local development and tests.

Behaves like the remote store where it matters to callers: every write is
followed by a full-collection snapshot pushed to subscribers, and a batch
either applies completely or not at all.
"""

import copy
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .document_store import (
    SERVER_TIMESTAMP,
    CollectionSnapshot,
    DocumentSnapshot,
    SnapshotListener,
    Unsubscribe,
    Write,
    WriteBatch,
    auto_id,
)
from ..utils.exceptions import DocumentStoreError
from ..utils.logger import get_api_logger


def _stored_value(value: Any, now: str) -> Any:
    """Timestamps are kept as UTC ISO strings, the form they are read back in."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return aware.astimezone(timezone.utc).isoformat()
    return copy.deepcopy(value)


class MemoryDocumentStore:
    """Thread-safe dict-of-dicts document store with synchronous listeners."""

    def __init__(self, max_batch_size: Optional[int] = 500, clock: Optional[Callable[[], datetime]] = None):
        self.logger = get_api_logger()
        self.max_batch_size = max_batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._collections: Dict[str, "OrderedDict[str, Dict[str, Any]]"] = {}
        self._listeners: Dict[int, Tuple[str, SnapshotListener, Optional[str], bool]] = {}
        self._next_token = 0
        self._pending_failure: Optional[Exception] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        with self._lock:
            return self._read(collection, order_by, descending)

    def subscribe(
        self,
        collection: str,
        listener: SnapshotListener,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """Register a listener and push the current snapshot immediately."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = (collection, listener, order_by, descending)
            snapshot = CollectionSnapshot(collection, self._read(collection, order_by, descending))

        listener(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_document(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = auto_id()
        self.commit([Write("set", collection, doc_id, dict(data))])
        return doc_id

    def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit([Write("update", collection, doc_id, dict(data))])

    def delete_document(self, collection: str, doc_id: str) -> None:
        self.commit([Write("delete", collection, doc_id)])

    def batch(self) -> WriteBatch:
        return WriteBatch(self, max_size=self.max_batch_size)

    def commit(self, writes: List[Write]) -> None:
        """
        Apply writes to a copy of the data and swap it in only when every
        write succeeded.

        Raises:
            DocumentStoreError: On an injected failure or an update of a
                missing document. Nothing is applied in either case.
        """
        with self._lock:
            if self._pending_failure is not None:
                error, self._pending_failure = self._pending_failure, None
                raise error

            staged = {name: OrderedDict(docs) for name, docs in self._collections.items()}
            now = self._clock().isoformat()

            for write in writes:
                docs = staged.setdefault(write.collection, OrderedDict())
                if write.op == "delete":
                    docs.pop(write.doc_id, None)
                    continue

                data = {key: _stored_value(value, now) for key, value in (write.data or {}).items()}
                if write.op == "set":
                    docs[write.doc_id] = data
                elif write.op == "update":
                    if write.doc_id not in docs:
                        raise DocumentStoreError(
                            f"No document to update: {write.collection}/{write.doc_id}",
                            details={"status": "NOT_FOUND", "doc_id": write.doc_id},
                        )
                    docs[write.doc_id] = {**docs[write.doc_id], **data}
                else:
                    raise DocumentStoreError(f"Unknown write operation: {write.op}")

            self._collections = staged
            touched = {write.collection for write in writes}
            deliveries = [
                (listener, CollectionSnapshot(collection, self._read(collection, order_by, descending)))
                for collection, listener, order_by, descending in self._listeners.values()
                if collection in touched
            ]

        self.logger.debug(f"Committed {len(writes)} write(s) to {sorted(touched)}")
        for listener, snapshot in deliveries:
            listener(snapshot)

    def fail_next_commit(self, error: Optional[Exception] = None) -> None:
        """Make the next write be rejected as a whole."""
        with self._lock:
            self._pending_failure = error or DocumentStoreError(
                "Commit rejected", details={"status": "UNAVAILABLE"}
            )

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read(self, collection: str, order_by: Optional[str], descending: bool) -> List[DocumentSnapshot]:
        docs = [
            DocumentSnapshot(doc_id, copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]
        if order_by:
            # Documents without the ordering field are left out, as Firestore does.
            docs = [d for d in docs if d.data.get(order_by) is not None]
            docs.sort(key=lambda d: str(d.data[order_by]), reverse=descending)
        return docs

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
