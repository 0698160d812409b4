"""Cloud Firestore REST client implementing the document store interface.

The REST API has no push channel, so live subscriptions are emulated: each
subscription is an APScheduler interval job that re-reads the collection and
hands the listener a full snapshot whenever the contents changed. A
successful commit pulls the next poll of the affected collections forward so
the write shows up without waiting a full interval.
"""

import json
import re
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .base_client import BaseClient
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
from ..utils.config import get_config
from ..utils.exceptions import ConfigurationError, DocumentStoreError
from ..utils.logger import get_api_logger

FIRESTORE_HOST = "https://firestore.googleapis.com"

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


# ---------------------------------------------------------------------------
# Value codec
# ---------------------------------------------------------------------------

def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore ``Value`` object."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        text = value.isoformat()
        return {"timestampValue": text if value.tzinfo else f"{text}Z"}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise DocumentStoreError(f"Cannot encode value of type {type(value).__name__}")


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore ``Value`` object; timestamps stay ISO-8601 strings."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "stringValue" in value:
        return value["stringValue"]
    if "mapValue" in value:
        return {k: decode_value(v) for k, v in value["mapValue"].get("fields", {}).items()}
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    # referenceValue, geoPointValue, bytesValue: not used by this app
    return next(iter(value.values()), None)


def _field_path(name: str) -> str:
    return name if _SIMPLE_FIELD.match(name) else "`" + name.replace("`", "\\`") + "`"


def _split_fields(data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """Separate plain fields from server-timestamp transforms."""
    fields = {}
    transforms = []
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            transforms.append({"fieldPath": _field_path(key), "setToServerValue": "REQUEST_TIME"})
        else:
            fields[key] = encode_value(value)
    return fields, transforms


def _decode_document(document: Dict[str, Any]) -> DocumentSnapshot:
    doc_id = document["name"].rsplit("/", 1)[-1]
    data = {k: decode_value(v) for k, v in document.get("fields", {}).items()}
    return DocumentSnapshot(doc_id, data)


def _fs_error(response: httpx.Response) -> Tuple[str, str]:
    """Extract (status, message) from a Firestore error response."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return "", response.text
    return error.get("status", ""), error.get("message", "Unknown Firestore error")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

@dataclass
class _Subscription:
    job_id: str
    collection: str
    listener: SnapshotListener
    order_by: Optional[str]
    descending: bool
    signature: Optional[Tuple] = None


class FirestoreClient(BaseClient):
    """Client for the Cloud Firestore REST API (v1)."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the client from environment configuration.

        Raises:
            ConfigurationError: If no project id is configured.
        """
        config = get_config()
        project_id = config.env.firestore_project_id
        if not project_id:
            raise ConfigurationError(
                "Firestore is not configured: set FIRESTORE_PROJECT_ID",
                details={"setting": "firestore_project_id"}
            )

        headers = {}
        if config.env.firestore_access_token:
            headers["Authorization"] = f"Bearer {config.env.firestore_access_token}"

        super().__init__(base_url=FIRESTORE_HOST, headers=headers, transport=transport)
        self.logger = get_api_logger()
        self.api_key = config.env.firestore_api_key
        self.root = f"projects/{project_id}/databases/{config.env.firestore_database}/documents"
        self.page_size = config.store.page_size
        self.poll_interval = config.store.poll_interval_seconds
        self.max_batch_size = config.store.max_batch_size
        self.scheduler_config = config.scheduler

        self._scheduler: Optional[BackgroundScheduler] = None
        self._subscriptions: Dict[str, _Subscription] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Request wrapper
    # ------------------------------------------------------------------

    def _fs_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Issue a request, append the API key and translate failures.

        Raises:
            DocumentStoreError: On network errors or any non-2xx response.
        """
        params = kwargs.pop("params", None) or []
        if isinstance(params, dict):
            params = list(params.items())
        if self.api_key:
            params.append(("key", self.api_key))

        send = {"GET": self.get, "POST": self.post, "DELETE": self.delete}[method]
        try:
            response = send(endpoint, params=params, **kwargs)
        except httpx.HTTPError as e:
            raise DocumentStoreError(
                f"Network error calling Firestore: {str(e)}",
                details={"error": str(e)}
            )

        if not response.is_success:
            status, message = _fs_error(response)
            raise DocumentStoreError(
                f"Firestore {method} failed (HTTP {response.status_code} {status}): {message}",
                details={"status_code": response.status_code, "status": status}
            )

        return response.json() if response.content else {}

    def _doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self.root}/{collection}/{doc_id}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        """Read a whole collection, following page tokens."""
        endpoint = f"/v1/{self.root}/{collection}"
        documents: List[DocumentSnapshot] = []
        page_token: Optional[str] = None

        while True:
            params: List[Tuple[str, Any]] = [("pageSize", self.page_size)]
            if order_by:
                params.append(("orderBy", f"{order_by} desc" if descending else order_by))
            if page_token:
                params.append(("pageToken", page_token))

            data = self._fs_request("GET", endpoint, params=params)
            documents.extend(_decode_document(doc) for doc in data.get("documents", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        self.logger.debug(f"Read {len(documents)} documents from '{collection}'")
        return documents

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document and return the id Firestore assigned."""
        if any(value is SERVER_TIMESTAMP for value in data.values()):
            doc_id = auto_id()
            self.commit([Write("set", collection, doc_id, dict(data))])
            return doc_id

        fields, _ = _split_fields(data)
        document = self._fs_request("POST", f"/v1/{self.root}/{collection}", json={"fields": fields})
        doc_id = _decode_document(document).id
        self.logger.info(f"Created {collection}/{doc_id}")
        self._refresh(collection)
        return doc_id

    def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit([Write("update", collection, doc_id, dict(data))])

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._fs_request("DELETE", f"/v1/{self.root}/{collection}/{doc_id}")
        self.logger.info(f"Deleted {collection}/{doc_id}")
        self._refresh(collection)

    def batch(self) -> WriteBatch:
        return WriteBatch(self, max_size=self.max_batch_size)

    def commit(self, writes: List[Write]) -> None:
        """POST ``documents:commit``; Firestore applies all writes or none."""
        body = {"writes": [self._encode_write(write) for write in writes]}
        self._fs_request("POST", f"/v1/{self.root}:commit", json=body)
        self.logger.info(f"Committed batch of {len(writes)} write(s)")
        for collection in {write.collection for write in writes}:
            self._refresh(collection)

    def _encode_write(self, write: Write) -> Dict[str, Any]:
        name = self._doc_name(write.collection, write.doc_id)
        if write.op == "delete":
            return {"delete": name}

        fields, transforms = _split_fields(write.data or {})
        encoded: Dict[str, Any] = {"update": {"name": name, "fields": fields}}
        if write.op == "update":
            encoded["updateMask"] = {"fieldPaths": [_field_path(key) for key in fields]}
            encoded["currentDocument"] = {"exists": True}
        elif write.op != "set":
            raise DocumentStoreError(f"Unknown write operation: {write.op}")
        if transforms:
            encoded["updateTransforms"] = transforms
        return encoded

    # ------------------------------------------------------------------
    # Subscriptions (polling)
    # ------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        listener: SnapshotListener,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """Start polling ``collection``; the first snapshot is read right away."""
        subscription = _Subscription(
            job_id=f"snapshot:{collection}:{uuid.uuid4().hex[:8]}",
            collection=collection,
            listener=listener,
            order_by=order_by,
            descending=descending,
        )

        with self._lock:
            scheduler = self._ensure_scheduler()
            self._subscriptions[subscription.job_id] = subscription
            scheduler.add_job(
                func=self._poll,
                args=[subscription],
                trigger=IntervalTrigger(seconds=self.poll_interval),
                id=subscription.job_id,
                name=f"Snapshot poll for '{collection}'",
                next_run_time=datetime.now(timezone.utc),
                max_instances=1,
                coalesce=True,
            )

        self.logger.info(f"Subscribed to '{collection}' (poll every {self.poll_interval}s)")

        def unsubscribe() -> None:
            with self._lock:
                self._subscriptions.pop(subscription.job_id, None)
                if self._scheduler is not None:
                    try:
                        self._scheduler.remove_job(subscription.job_id)
                    except JobLookupError:
                        pass
            self.logger.info(f"Unsubscribed from '{collection}'")

        return unsubscribe

    def _poll(self, subscription: _Subscription) -> None:
        """Read the collection and notify the listener if it changed."""
        try:
            documents = self.list_documents(
                subscription.collection, subscription.order_by, subscription.descending
            )
        except DocumentStoreError as e:
            self.logger.error(f"Snapshot poll failed for '{subscription.collection}': {e.message}")
            subscription.signature = None
            subscription.listener(CollectionSnapshot(subscription.collection, error=e))
            return

        signature = tuple(
            (doc.id, json.dumps(doc.data, sort_keys=True, default=str)) for doc in documents
        )
        if signature == subscription.signature:
            return

        subscription.signature = signature
        subscription.listener(CollectionSnapshot(subscription.collection, documents))

    def _refresh(self, collection: str) -> None:
        """Run the pollers of ``collection`` now instead of at their next tick."""
        with self._lock:
            if self._scheduler is None:
                return
            for subscription in self._subscriptions.values():
                if subscription.collection != collection:
                    continue
                try:
                    self._scheduler.modify_job(subscription.job_id, next_run_time=datetime.now(timezone.utc))
                except JobLookupError:
                    pass

    def _ensure_scheduler(self) -> BackgroundScheduler:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone=self.scheduler_config.timezone)
            self._scheduler.start()
        return self._scheduler

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def close(self):
        """Stop every poller and close the HTTP client."""
        with self._lock:
            self._subscriptions.clear()
            if self._scheduler is not None and self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
        super().close()
