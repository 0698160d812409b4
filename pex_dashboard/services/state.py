"""In-memory view of the remote collections.

``InventoryState`` has a single writer, the snapshot subscription callback,
which replaces the product or sale tuple wholesale on every snapshot.
Request handlers, CLI commands and scheduled jobs only read. Every
non-catalog product gets its ``daysRemaining``/``status`` recomputed on
arrival, so stored values written on an earlier day never leak into the
counts.
"""

import threading
from datetime import date
from typing import Callable, List, Optional, Tuple

from ..api.document_store import CollectionSnapshot
from ..engine.filters import FilterCriteria, filter_products
from ..engine.stats import DashboardStats, aggregate_stats
from ..engine.status import CRITICAL_DAYS, compute_status
from ..models.product import Product, SaleRecord
from ..utils.exceptions import InvalidExpiryDateError, ProductNotFoundError
from ..utils.logger import get_inventory_logger

StateObserver = Callable[[str], None]


class InventoryState:
    """Latest product and sales snapshots plus the loading/error flags."""

    def __init__(self, critical_days: int = CRITICAL_DAYS, today: Optional[Callable[[], date]] = None):
        self.logger = get_inventory_logger()
        self.critical_days = critical_days
        self._today = today or date.today
        self._lock = threading.Lock()
        self._products: Tuple[Product, ...] = ()
        self._sales: Tuple[SaleRecord, ...] = ()
        self._loaded = threading.Event()
        self._sales_loaded = threading.Event()
        self._observers: List[StateObserver] = []

        self.config_error: Optional[str] = None
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Snapshot handlers (the only writers)
    # ------------------------------------------------------------------

    def apply_inventory_snapshot(self, snapshot: CollectionSnapshot) -> None:
        if snapshot.error is not None:
            self._record_listener_error("inventory", snapshot.error)
            self._loaded.set()
            self._notify("inventory")
            return

        products = tuple(
            self._annotate(Product.from_document(doc.id, doc.data))
            for doc in snapshot.documents
        )
        with self._lock:
            self._products = products
            self.last_error = None

        self.logger.debug(f"Inventory snapshot: {len(products)} products")
        self._loaded.set()
        self._notify("inventory")

    def apply_sales_snapshot(self, snapshot: CollectionSnapshot) -> None:
        if snapshot.error is not None:
            self._record_listener_error("sales", snapshot.error)
            self._sales_loaded.set()
            self._notify("sales")
            return

        sales = tuple(SaleRecord.from_document(doc.id, doc.data) for doc in snapshot.documents)
        with self._lock:
            self._sales = sales

        self.logger.debug(f"Sales snapshot: {len(sales)} records")
        self._sales_loaded.set()
        self._notify("sales")

    def refresh_status(self) -> None:
        """Re-derive every status against today's date."""
        with self._lock:
            self._products = tuple(self._annotate(p) for p in self._products)
        self.logger.info("Recomputed expiry status for the current snapshot")
        self._notify("inventory")

    def set_config_error(self, message: str) -> None:
        """Record a configuration failure shown as a persistent banner."""
        self.config_error = message
        self.logger.error(f"Configuration error: {message}")
        self._loaded.set()
        self._sales_loaded.set()
        self._notify("config")

    def today(self) -> date:
        return self._today()

    def _annotate(self, product: Product) -> Product:
        if product.is_catalog:
            return product
        try:
            result = compute_status(product.expiry_date, self.today(), self.critical_days)
        except InvalidExpiryDateError as e:
            self.logger.warning(f"Keeping stored status for {product.id}: {e.message}")
            return product
        return product.with_status(result.days_remaining, result.status)

    def _record_listener_error(self, collection: str, error: Exception) -> None:
        message = getattr(error, "message", str(error))
        self.last_error = message
        self.logger.error(f"Listener error on '{collection}': {message}")

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, what: str) -> None:
        for observer in list(self._observers):
            observer(what)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def products(self) -> Tuple[Product, ...]:
        with self._lock:
            return self._products

    @property
    def sales(self) -> Tuple[SaleRecord, ...]:
        with self._lock:
            return self._sales

    @property
    def is_loaded(self) -> bool:
        return self._loaded.is_set()

    def wait_until_loaded(self, timeout: Optional[float] = None) -> bool:
        return self._loaded.wait(timeout)

    def wait_until_sales_loaded(self, timeout: Optional[float] = None) -> bool:
        return self._sales_loaded.wait(timeout)

    def get_product(self, product_id: str) -> Product:
        for product in self.products:
            if product.id == product_id:
                return product
        raise ProductNotFoundError(
            f"Product not found: {product_id}",
            details={"product_id": product_id}
        )

    def find_by_ean(self, ean: str, batch: Optional[str] = None) -> Optional[Product]:
        """First product carrying ``ean`` (optionally restricted to a batch)."""
        ean = (ean or "").strip()
        if not ean:
            return None
        for product in self.products:
            if product.ean == ean and (batch is None or product.batch == batch):
                return product
        return None

    def stats(self) -> DashboardStats:
        return aggregate_stats(self.products)

    def filtered(self, criteria: Optional[FilterCriteria] = None) -> List[Product]:
        return filter_products(self.products, criteria)
