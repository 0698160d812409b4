"""Main dashboard service orchestrator."""

from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

from .backup import BackupService
from .bulk import BulkMutationService
from .migration import MigrationReconciler
from .notifications import NotificationFeed
from .products import ProductService
from .reports import Report, catalog_report, inventory_report, sales_report
from .sales import SaleService
from .state import InventoryState
from ..api.document_store import DocumentStore, Unsubscribe
from ..api.local_storage import LocalSnapshotStorage
from ..engine.filters import FilterCriteria
from ..models.results import MigrationResult, SaleResult
from ..utils.config import AppConfig, get_config
from ..utils.exceptions import BaseAppException, ConfigurationError, ValidationError
from ..utils.logger import get_inventory_logger, get_error_logger

REPORT_KINDS = ("inventory", "catalog", "sales")


def create_store(config: Optional[AppConfig] = None) -> DocumentStore:
    """
    Build the document store selected by ``STORE_BACKEND``.

    Raises:
        ConfigurationError: On an unknown backend or missing Firestore settings.
    """
    config = config or get_config()
    backend = config.env.store_backend.lower()

    if backend == "memory":
        from ..api.memory_store import MemoryDocumentStore
        return MemoryDocumentStore(max_batch_size=config.store.max_batch_size)
    if backend == "firestore":
        from ..api.firestore_client import FirestoreClient
        return FirestoreClient()

    raise ConfigurationError(
        f"Unknown store backend: {config.env.store_backend}",
        details={"allowed": ["firestore", "memory"]}
    )


class DashboardService:
    """
    Main orchestrator for the dashboard.

    Owns the document store, the snapshot subscriptions feeding
    ``InventoryState`` and the services that write to the store. A store
    that cannot be configured is recorded as the state's config error and
    every write raises ``ConfigurationError``.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        local_storage: Optional[LocalSnapshotStorage] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.config = get_config()
        self.logger = get_inventory_logger()
        self.error_logger = get_error_logger()
        self.notifications = NotificationFeed()
        self.state = InventoryState(self.config.status.critical_days, today)
        self.local_storage = local_storage or LocalSnapshotStorage(self.config.env.local_snapshot_dir)
        self._unsubscribes: List[Unsubscribe] = []
        self._started = False

        if store is None:
            try:
                store = create_store(self.config)
            except ConfigurationError as e:
                self.error_logger.error(f"Document store unavailable: {e.message}")
                self.state.set_config_error(e.message)
        self.store = store

        if self.store is not None:
            self._products = ProductService(self.store, self.state, self.notifications)
            self._sales = SaleService(self.store, self.notifications)
            self._bulk = BulkMutationService(self.store, self.notifications)
            self._backup = BackupService(self.store, self.state, self.notifications)
            self._migration = MigrationReconciler(self.store, self.state, self.local_storage, self.notifications)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Attach the inventory and sales subscriptions."""
        if self._started or self.store is None:
            return

        store_config = self.config.store
        self._unsubscribes.append(
            self.store.subscribe(store_config.inventory_collection, self.state.apply_inventory_snapshot)
        )
        self._unsubscribes.append(
            self.store.subscribe(
                store_config.sales_collection,
                self.state.apply_sales_snapshot,
                order_by="saleDate",
                descending=True,
            )
        )
        self._started = True
        self.logger.info("Dashboard subscriptions attached")

    def stop(self) -> None:
        """Release subscriptions and close the store."""
        while self._unsubscribes:
            self._unsubscribes.pop()()
        if self.store is not None:
            self.store.close()
        self._started = False
        self.logger.info("Dashboard stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def _require_store(self) -> None:
        if self.store is None:
            raise ConfigurationError(self.state.config_error or "Document store is not configured")

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @property
    def products(self) -> ProductService:
        self._require_store()
        return self._products

    @property
    def sales(self) -> SaleService:
        self._require_store()
        return self._sales

    @property
    def bulk(self) -> BulkMutationService:
        self._require_store()
        return self._bulk

    @property
    def backup(self) -> BackupService:
        self._require_store()
        return self._backup

    @property
    def migration(self) -> MigrationReconciler:
        self._require_store()
        return self._migration

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def sell(self, product_id: str, quantity: Any, seller_id: Any) -> SaleResult:
        product = self.state.get_product(product_id)
        return self.sales.sell(product, quantity, seller_id)

    def delete_products(self, ids: Iterable[str]) -> int:
        return self.bulk.delete_products(ids)

    def clear_sales_history(self) -> int:
        return self.bulk.clear_sales_history(sale.id for sale in self.state.sales)

    def migrate(self, delay: float = 0.0) -> MigrationResult:
        """Run the local snapshot migration; failures never propagate."""
        try:
            return self.migration.run(delay=delay)
        except BaseAppException as e:
            self.error_logger.error(f"Migration could not run: {e.message}")
            result = MigrationResult(success=False)
            result.add_error("system", type(e).__name__, e.message, e.details)
            result.finalize()
            return result

    def refresh_status(self) -> None:
        self.state.refresh_status()

    def report(self, kind: str, criteria: Optional[FilterCriteria] = None) -> Report:
        """
        Build one of the fixed reports.

        ``inventory`` covers the filtered table, ``catalog`` every catalog
        entry and ``sales`` the whole sales history.
        """
        if kind == "inventory":
            return inventory_report(self.state.filtered(criteria))
        if kind == "catalog":
            return catalog_report(self.state.products)
        if kind == "sales":
            return sales_report(self.state.sales, self.config.scheduler.timezone)
        raise ValidationError(f"Unknown report: {kind}", details={"allowed": list(REPORT_KINDS)})

    def status(self) -> Dict[str, Any]:
        return {
            "loaded": self.state.is_loaded,
            "config_error": self.state.config_error,
            "listener_error": self.state.last_error,
            "products": len(self.state.products),
            "sales": len(self.state.sales),
            "migration_in_progress": self.store is not None and self._migration.in_progress,
        }

    def test_connection(self) -> Dict[str, Any]:
        """Read the inventory collection once to check connectivity."""
        backend = self.config.env.store_backend
        self.logger.info(f"Testing document store connection ({backend})...")
        result = {"backend": backend, "success": False, "error": None, "documents": None}

        try:
            self._require_store()
            documents = self.store.list_documents(self.config.store.inventory_collection)
            result["success"] = True
            result["documents"] = len(documents)
            self.logger.info(f"✓ Document store reachable ({len(documents)} inventory documents)")
        except BaseAppException as e:
            result["error"] = e.message
            self.logger.error(f"✗ Document store connection failed: {e.message}")

        return result
