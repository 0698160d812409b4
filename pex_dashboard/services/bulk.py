"""Multi-document mutations, each committed as one all-or-nothing batch."""

from typing import Any, Dict, Iterable, List, Optional

from .notifications import NotificationFeed
from ..api.document_store import DocumentStore
from ..utils.config import get_config
from ..utils.exceptions import BatchTooLargeError, DocumentStoreError, ValidationError
from ..utils.logger import get_inventory_logger, get_error_logger

# Fields a bulk edit may touch; derived and identity fields are excluded.
BULK_EDITABLE_FIELDS = ("registration", "section", "transfer", "notes")


def _unique(ids: Iterable[str]) -> List[str]:
    seen = {}
    for doc_id in ids:
        if doc_id:
            seen.setdefault(doc_id, None)
    return list(seen)


def _normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(fields) - set(BULK_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Fields cannot be bulk edited: {', '.join(unknown)}",
            details={"fields": unknown, "allowed": list(BULK_EDITABLE_FIELDS)}
        )
    if not fields:
        raise ValidationError("No fields to update")

    normalized = {}
    for key, value in fields.items():
        text = "" if value is None else str(value)
        normalized[key] = text if key == "notes" else text.upper().strip()
    return normalized


class BulkMutationService:
    """Batch deletes and edits over the inventory and sales collections."""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationFeed] = None):
        self.config = get_config()
        self.logger = get_inventory_logger()
        self.error_logger = get_error_logger()
        self.store = store
        self.notifications = notifications or NotificationFeed()

    def _check_size(self, count: int) -> None:
        limit = self.config.store.max_batch_size
        if count > limit:
            raise BatchTooLargeError(
                f"Operation touches {count} documents, limit is {limit}",
                details={"writes": count, "limit": limit}
            )

    def _commit(self, batch, action: str) -> None:
        try:
            batch.commit()
        except DocumentStoreError as e:
            self.error_logger.error(f"Bulk {action} failed: {e.message}", extra={"details": e.details})
            self.notifications.error("Error", f"Bulk {action} failed.")
            raise

    def delete_products(self, ids: Iterable[str]) -> int:
        """
        Delete every product in ``ids`` in one batch.

        Returns:
            Number of distinct ids deleted (0 for an empty selection).

        Raises:
            BatchTooLargeError: If the selection exceeds the batch limit.
            DocumentStoreError: If the batch is rejected; nothing is deleted.
        """
        unique_ids = _unique(ids)
        if not unique_ids:
            return 0
        self._check_size(len(unique_ids))

        batch = self.store.batch()
        for doc_id in unique_ids:
            batch.delete(self.config.store.inventory_collection, doc_id)
        self._commit(batch, "delete")

        self.logger.info(f"Bulk deleted {len(unique_ids)} products")
        self.notifications.publish("Bulk delete", f"{len(unique_ids)} items removed.", "warning")
        return len(unique_ids)

    def update_products(self, ids: Iterable[str], fields: Dict[str, Any]) -> int:
        """Apply the same tag/notes edit to every product in ``ids``."""
        normalized = _normalize_fields(fields)
        unique_ids = _unique(ids)
        if not unique_ids:
            return 0
        self._check_size(len(unique_ids))

        batch = self.store.batch()
        for doc_id in unique_ids:
            batch.update(self.config.store.inventory_collection, doc_id, normalized)
        self._commit(batch, "update")

        self.logger.info(f"Bulk updated {len(unique_ids)} products: {sorted(normalized)}")
        self.notifications.success("Bulk update", f"{len(unique_ids)} items updated.")
        return len(unique_ids)

    def clear_sales_history(self, sale_ids: Iterable[str]) -> int:
        """Delete the given sale records in one batch."""
        unique_ids = _unique(sale_ids)
        if not unique_ids:
            return 0
        self._check_size(len(unique_ids))

        batch = self.store.batch()
        for doc_id in unique_ids:
            batch.delete(self.config.store.sales_collection, doc_id)
        self._commit(batch, "sales cleanup")

        self.logger.info(f"Cleared {len(unique_ids)} sale records")
        self.notifications.publish("Sales history", f"{len(unique_ids)} records removed.", "warning")
        return len(unique_ids)
