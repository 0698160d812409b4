"""One-time migration of legacy local snapshots into the remote store.

Installations that predate the remote store kept their product list and
sales history in local storage. On startup, once the first remote snapshot
has arrived and shows an empty inventory, every local record is copied into
the remote collections in one batch per collection and the local key is
erased. A failed commit leaves the local key in place so the next start
retries.

Two processes starting at the same time against an empty store can both
pass the empty-inventory check; no cross-process lock is taken.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .notifications import NotificationFeed
from .products import build_product_document, parse_draft
from .state import InventoryState
from ..api.document_store import DocumentStore
from ..api.local_storage import PRODUCTS_SNAPSHOT_KEY, SALES_SNAPSHOT_KEY, LocalSnapshotStorage
from ..models.results import MigrationResult
from ..utils.config import get_config
from ..utils.exceptions import BaseAppException, DocumentStoreError, MigrationError, ValidationError
from ..utils.logger import get_migration_logger, get_error_logger


def _strip_local_id(record: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(record)
    old_id = data.pop("id", None)
    if old_id is not None:
        data["oldId"] = str(old_id)
    return data


def _parse_sale_date(value: Any) -> datetime:
    """Parse a legacy ISO-8601 sale date; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        raise MigrationError(
            "Local sale record has no saleDate",
            details={"saleDate": value}
        )
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise MigrationError(
            f"Invalid sale date in local record: {value!r}",
            details={"saleDate": value}
        )
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _sale_document(record: Any) -> Dict[str, Any]:
    # saleDate is stored as a timestamp, the same type live sales get.
    if not isinstance(record, dict):
        raise MigrationError(
            "Local sale record must be an object",
            details={"type": type(record).__name__}
        )
    document = _strip_local_id(record)
    document["saleDate"] = _parse_sale_date(record.get("saleDate"))
    return document


class MigrationReconciler:
    """Moves local snapshots into empty remote collections exactly once."""

    def __init__(
        self,
        store: DocumentStore,
        state: InventoryState,
        local_storage: LocalSnapshotStorage,
        notifications: Optional[NotificationFeed] = None,
    ):
        self.config = get_config()
        self.logger = get_migration_logger()
        self.error_logger = get_error_logger()
        self.store = store
        self.state = state
        self.local_storage = local_storage
        self.notifications = notifications or NotificationFeed()
        self._in_flight = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._in_flight.locked()

    def run(self, delay: float = 0.0) -> MigrationResult:
        """
        Run the migration if it is not already running.

        Args:
            delay: Seconds to wait before starting, letting the snapshot
                listeners attach first.

        Returns:
            MigrationResult; ``skipped_reason`` is set when nothing was
            attempted.
        """
        result = MigrationResult()
        if not self._in_flight.acquire(blocking=False):
            self.logger.info("Migration already in progress, skipping")
            return result.skip("migration already in progress")

        try:
            if delay > 0:
                time.sleep(delay)
            self._run(result)
        finally:
            self._in_flight.release()

        if not result.skipped:
            self.logger.info(result.get_summary())
        return result

    def _run(self, result: MigrationResult) -> None:
        migration = self.config.migration
        if not migration.enabled:
            result.skip("migration disabled")
            return

        if not self.state.wait_until_loaded(migration.load_timeout_seconds):
            result.skip("remote inventory did not finish loading")
            return
        if self.state.config_error:
            result.skip("document store is not configured")
            return
        if self.state.last_error:
            result.skip("remote inventory is unavailable")
            return
        if self.state.products:
            result.skip("remote inventory is not empty")
            return

        result.migrated_products = self._migrate_products(result)
        result.migrated_sales = self._migrate_sales(result)

        if not result.migrated_products and not result.migrated_sales and result.success:
            result.skip("no local data")
            return
        result.finalize()

    # ------------------------------------------------------------------
    # Per-collection steps
    # ------------------------------------------------------------------

    def _migrate_products(self, result: MigrationResult) -> int:
        records = self._load(PRODUCTS_SNAPSHOT_KEY, "products", result)
        if not records:
            return 0

        self.notifications.publish("Migration", "Local data detected. Uploading to the cloud...", "info")
        try:
            documents = [self._product_document(record) for record in records]
        except ValidationError as e:
            self._fail(result, "products", e)
            return 0

        if not self._commit(self.config.store.inventory_collection, documents, "products", result):
            return 0

        self.local_storage.remove(PRODUCTS_SNAPSHOT_KEY)
        self.notifications.success("Success", f"{len(documents)} products migrated to the cloud!")
        return len(documents)

    def _migrate_sales(self, result: MigrationResult) -> int:
        records = self._load(SALES_SNAPSHOT_KEY, "sales", result)
        if not records:
            return 0

        if not self.state.wait_until_sales_loaded(self.config.migration.load_timeout_seconds):
            self.logger.warning("Sales history did not finish loading, skipping sales migration")
            return 0
        if self.state.sales:
            self.logger.info("Remote sales history is not empty, skipping sales migration")
            return 0

        try:
            documents = [_sale_document(record) for record in records]
        except MigrationError as e:
            self._fail(result, "sales", e)
            return 0

        if not self._commit(self.config.store.sales_collection, documents, "sales", result):
            return 0

        self.local_storage.remove(SALES_SNAPSHOT_KEY)
        return len(documents)

    def _product_document(self, record: Any) -> Dict[str, Any]:
        document = build_product_document(
            parse_draft(record), self.state.today(), self.state.critical_days
        )
        old_id = record.get("id")
        if old_id is not None:
            document["oldId"] = str(old_id)
        return document

    def _load(self, key: str, scope: str, result: MigrationResult) -> List[Any]:
        try:
            return self.local_storage.load_array(key)
        except MigrationError as e:
            self._fail(result, scope, e)
            return []

    def _commit(self, collection: str, documents: List[Dict[str, Any]], scope: str, result: MigrationResult) -> bool:
        batch = self.store.batch()
        for document in documents:
            batch.set(collection, document)

        try:
            batch.commit()
        except DocumentStoreError as e:
            self._fail(result, scope, e)
            return False

        self.logger.info(f"Migrated {len(documents)} {scope} into '{collection}'")
        return True

    def _fail(self, result: MigrationResult, scope: str, error: BaseAppException) -> None:
        result.add_error(scope, type(error).__name__, error.message, error.details)
        self.error_logger.error(f"Migration of local {scope} failed: {error.message}")
        self.notifications.error("Migration error", f"Failed to migrate local {scope}.")
