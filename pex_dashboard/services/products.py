"""Product create/edit/delete and the EAN catalog.

Creating a product with an EAN that has no catalog entry yet is a two-step
operation: the product is written first, then ``ensure_catalog_entry``
writes the catalog duplicate. The second step failing leaves the product in
place and is reported on the ``CreateResult``.
"""

from datetime import date
from typing import Any, Dict, Optional

import pydantic

from .notifications import NotificationFeed
from .state import InventoryState
from ..api.document_store import DocumentStore
from ..engine.status import CRITICAL_DAYS, compute_status
from ..models.product import CATALOG_BATCH, CATALOG_DAYS_REMAINING, Product, ProductStatus
from ..models.results import CreateResult
from ..models.schemas import CatalogEntryRequest, ProductDraft
from ..utils.config import get_config
from ..utils.exceptions import DocumentStoreError, DuplicateEanError, ValidationError
from ..utils.logger import get_inventory_logger, get_error_logger


def validation_error_from(error: pydantic.ValidationError, what: str = "product") -> ValidationError:
    """Convert a pydantic error into the application's ValidationError."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value").replace("Value error, ", "")
        problems.append(f"{location}: {message}" if location else message)

    return ValidationError(
        f"Invalid {what}: {'; '.join(problems)}",
        details={"errors": problems}
    )


def parse_draft(data: Any) -> ProductDraft:
    """
    Validate raw product input.

    Raises:
        ValidationError: On missing required fields, a bad quantity or a
            malformed expiry date.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            "Product record must be an object",
            details={"type": type(data).__name__}
        )
    try:
        return ProductDraft.model_validate(data)
    except pydantic.ValidationError as e:
        raise validation_error_from(e)


def build_product_document(
    draft: ProductDraft,
    today: Optional[date] = None,
    critical_days: int = CRITICAL_DAYS,
) -> Dict[str, Any]:
    """Stored body for a validated draft, with status derived from the expiry date."""
    if draft.is_catalog:
        days_remaining, status = CATALOG_DAYS_REMAINING, ProductStatus.SAFE
    else:
        result = compute_status(draft.expiry_date, today, critical_days)
        days_remaining, status = result.days_remaining, result.status

    return {
        "name": draft.name,
        "batch": draft.batch,
        "quantity": draft.quantity,
        "expiryDate": draft.expiry_date,
        "daysRemaining": days_remaining,
        "status": status.value,
        "ean": draft.ean,
        "registration": draft.registration,
        "section": draft.section,
        "transfer": draft.transfer,
        "notes": draft.notes,
    }


def catalog_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Catalog duplicate of a product body."""
    return {
        **document,
        "batch": CATALOG_BATCH,
        "quantity": 0,
        "status": ProductStatus.SAFE.value,
        "daysRemaining": CATALOG_DAYS_REMAINING,
    }


class ProductService:
    """Single-product writes against the inventory collection."""

    def __init__(
        self,
        store: DocumentStore,
        state: InventoryState,
        notifications: Optional[NotificationFeed] = None,
    ):
        self.config = get_config()
        self.logger = get_inventory_logger()
        self.error_logger = get_error_logger()
        self.store = store
        self.state = state
        self.notifications = notifications or NotificationFeed()
        self.collection = self.config.store.inventory_collection

    def _document_for(self, data: Any) -> Dict[str, Any]:
        draft = parse_draft(data)
        return build_product_document(draft, self.state.today(), self.state.critical_days)

    def _write_failed(self, action: str, error: DocumentStoreError) -> None:
        self.error_logger.error(f"Failed to {action}: {error.message}", extra={"details": error.details})
        self.notifications.error("Error", f"Failed to {action}.")

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    def create_product(self, data: Any) -> CreateResult:
        """
        Validate and write a new product, then make sure its EAN has a
        catalog entry.

        Raises:
            ValidationError: If the input is rejected; nothing is written.
            DocumentStoreError: If the product write fails.
        """
        document = self._document_for(data)

        try:
            product_id = self.store.create_document(self.collection, document)
        except DocumentStoreError as e:
            self._write_failed("save product", e)
            raise

        self.logger.info(f"Created product {product_id} ({document['name']})")
        result = CreateResult(product_id=product_id)

        try:
            result.catalog_id = self.ensure_catalog_entry(document)
        except DocumentStoreError as e:
            self._write_failed("register catalog entry", e)
            result.catalog_error = e.message

        self.notifications.success("Saved", f"{document['name']} saved.")
        return result

    def ensure_catalog_entry(self, document: Dict[str, Any]) -> Optional[str]:
        """
        Write the catalog duplicate for ``document`` unless one exists.

        Returns:
            The new catalog entry id, or None when nothing was written.
        """
        ean = document.get("ean") or ""
        if not ean or document.get("batch") == CATALOG_BATCH:
            return None
        if self.catalog_entry_exists(ean):
            return None

        catalog_id = self.store.create_document(self.collection, catalog_document(document))
        self.logger.info(f"Auto-registered catalog entry {catalog_id} for EAN {ean}")
        self.notifications.publish("Catalog", "Item registered automatically.", "info")
        return catalog_id

    def catalog_entry_exists(self, ean: str) -> bool:
        return self.state.find_by_ean(ean, batch=CATALOG_BATCH) is not None

    def update_product(self, product_id: str, data: Any) -> Dict[str, Any]:
        """
        Replace the editable fields of an existing product.

        Raises:
            ProductNotFoundError: If ``product_id`` is not in the snapshot.
            ValidationError: If the input is rejected.
            DocumentStoreError: If the write fails.
        """
        self.state.get_product(product_id)
        document = self._document_for(data)

        try:
            self.store.update_document(self.collection, product_id, document)
        except DocumentStoreError as e:
            self._write_failed("update product", e)
            raise

        self.logger.info(f"Updated product {product_id}")
        self.notifications.success("Success", "Product updated.")
        return document

    def delete_product(self, product_id: str) -> None:
        try:
            self.store.delete_document(self.collection, product_id)
        except DocumentStoreError as e:
            self._write_failed("delete product", e)
            raise

        self.logger.info(f"Deleted product {product_id}")
        self.notifications.publish("Removed", "Product deleted.", "warning")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register_catalog_entry(self, data: Any) -> str:
        """
        Register an EAN -> name reference entry.

        Raises:
            ValidationError: If EAN or name is blank.
            DuplicateEanError: If any product already carries the EAN.
        """
        try:
            request = CatalogEntryRequest.model_validate(data)
        except pydantic.ValidationError as e:
            raise validation_error_from(e, "catalog entry")

        existing = self.state.find_by_ean(request.ean)
        if existing is not None:
            raise DuplicateEanError(
                f"EAN {request.ean} is already registered as {existing.name}",
                details={"ean": request.ean, "product_id": existing.id}
            )

        document = catalog_document({
            "name": request.name,
            "expiryDate": "",
            "ean": request.ean,
            "registration": "",
            "section": "",
            "transfer": "",
            "notes": "",
        })
        try:
            catalog_id = self.store.create_document(self.collection, document)
        except DocumentStoreError as e:
            self._write_failed("register catalog entry", e)
            raise

        self.logger.info(f"Registered catalog entry {catalog_id} for EAN {request.ean}")
        self.notifications.success("Catalog", f"{request.name} registered.")
        return catalog_id

    def lookup_ean(self, ean: str) -> Optional[Product]:
        """First product carrying ``ean``, used to pre-fill the product form."""
        return self.state.find_by_ean(ean)
