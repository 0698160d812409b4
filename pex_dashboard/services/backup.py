"""JSON backup export and import."""

import json
from datetime import date
from typing import Any, Dict, List, Optional, Union

import pydantic

from .notifications import NotificationFeed
from .products import build_product_document, parse_draft
from .state import InventoryState
from ..api.document_store import DocumentStore
from ..models.schemas import ImportEnvelope
from ..utils.config import get_config
from ..utils.exceptions import DocumentStoreError, ImportParseError, ValidationError
from ..utils.logger import get_inventory_logger, get_error_logger


def backup_filename(today: Optional[date] = None) -> str:
    return f"pex_cloud_backup_{(today or date.today()).isoformat()}.json"


def extract_products(payload: Any) -> List[Any]:
    """
    Pull the product list out of a parsed backup.

    Accepts a bare array or an object with a ``products`` array.

    Raises:
        ImportParseError: For any other shape or an empty list.
    """
    if isinstance(payload, list):
        products = payload
    elif isinstance(payload, dict):
        try:
            products = ImportEnvelope.model_validate(payload).products
        except pydantic.ValidationError:
            products = None
    else:
        products = None

    if not products:
        raise ImportParseError("Empty or invalid backup file", details={"type": type(payload).__name__})
    return products


class BackupService:
    """Exports the current snapshot and imports backup files."""

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

    def export_backup(self) -> Dict[str, Any]:
        """
        Build ``{"products": [...], "salesHistory": [...]}`` from the snapshot.

        Raises:
            ValidationError: If there are no products to export.
        """
        products = self.state.products
        if not products:
            raise ValidationError("There is no data to export")

        payload = {
            "products": [product.to_dict() for product in products],
            "salesHistory": [sale.to_dict() for sale in self.state.sales],
        }
        self.logger.info(
            f"Exported backup: {len(payload['products'])} products, "
            f"{len(payload['salesHistory'])} sales"
        )
        self.notifications.success("Download", "Cloud backup exported.")
        return payload

    def import_backup(self, content: Union[str, bytes]) -> int:
        """
        Import products from a backup file in a single batch.

        Every record is validated before anything is written; identity and
        derived fields in the file are ignored and status is recomputed.

        Returns:
            Number of products written.

        Raises:
            ImportParseError: On malformed JSON, an unexpected shape or an
                invalid record. Nothing is written.
            DocumentStoreError: If the batch is rejected.
        """
        try:
            payload = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportParseError(f"Backup file is not valid JSON: {str(e)}")

        records = extract_products(payload)

        documents = []
        for index, record in enumerate(records):
            try:
                draft = parse_draft(record)
            except ValidationError as e:
                raise ImportParseError(
                    f"Record {index + 1}: {e.message}",
                    details={"index": index, **e.details}
                )
            documents.append(build_product_document(draft, self.state.today(), self.state.critical_days))

        batch = self.store.batch()
        for document in documents:
            batch.set(self.config.store.inventory_collection, document)

        try:
            batch.commit()
        except DocumentStoreError as e:
            self.error_logger.error(f"Import failed: {e.message}", extra={"details": e.details})
            self.notifications.error("Error", "Failed to import file.")
            raise

        self.logger.info(f"Imported {len(documents)} products")
        self.notifications.success("Import", f"{len(documents)} products sent to the cloud.")
        return len(documents)
