"""Sale transaction: sale record + stock decrement in one batch."""

from typing import Any, Optional

import pydantic

from .notifications import NotificationFeed
from .products import validation_error_from
from ..api.document_store import SERVER_TIMESTAMP, DocumentStore, auto_id
from ..models.product import Product
from ..models.results import SaleResult
from ..models.schemas import SaleRequest
from ..utils.config import get_config
from ..utils.exceptions import DocumentStoreError, OversellError, ValidationError
from ..utils.logger import get_inventory_logger, get_error_logger


class SaleService:
    """Records sales against the inventory."""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationFeed] = None):
        self.config = get_config()
        self.logger = get_inventory_logger()
        self.error_logger = get_error_logger()
        self.store = store
        self.notifications = notifications or NotificationFeed()

    def sell(self, product: Product, quantity_sold: Any, seller_id: Any) -> SaleResult:
        """
        Record a sale and decrement the product's stock atomically.

        The sale document is a snapshot of the product plus the sale
        metadata; ``saleDate`` is set by the store. A product that reaches
        zero stays listed as sold out.

        Args:
            product: Product as currently shown in the snapshot.
            quantity_sold: Units sold, must be positive and at most the stock.
            seller_id: Seller registration, required.

        Returns:
            SaleResult with the new sale id and the remaining stock.

        Raises:
            ValidationError: On a catalog entry, a non-positive quantity or a
                blank seller id.
            OversellError: If more units are sold than are in stock.
            DocumentStoreError: If the batch is rejected; nothing is written.
        """
        try:
            request = SaleRequest(quantity=quantity_sold, sellerId=seller_id)
        except pydantic.ValidationError as e:
            raise validation_error_from(e, "sale")

        if product.is_catalog:
            raise ValidationError(
                "Catalog entries cannot be sold",
                details={"product_id": product.id}
            )
        if request.quantity > product.quantity:
            raise OversellError(
                f"Cannot sell {request.quantity} of {product.name}: only {product.quantity} in stock",
                details={"product_id": product.id, "requested": request.quantity, "available": product.quantity}
            )

        seller = request.seller_id.upper()
        remaining = max(0, product.quantity - request.quantity)

        sale_id = auto_id()
        sale_document = {
            **product.to_document(),
            "id": sale_id,
            "quantitySold": request.quantity,
            "sellerId": seller,
            "saleDate": SERVER_TIMESTAMP,
        }
        batch = self.store.batch()
        batch.set(self.config.store.sales_collection, sale_document, doc_id=sale_id)
        batch.update(self.config.store.inventory_collection, product.id, {"quantity": remaining})

        try:
            batch.commit()
        except DocumentStoreError as e:
            self.error_logger.error(
                f"Sale of {product.id} failed: {e.message}",
                extra={"details": e.details}
            )
            self.notifications.error("Error", "Failed to record sale.")
            raise

        result = SaleResult(
            sale_id=sale_id,
            product_id=product.id,
            quantity_sold=request.quantity,
            remaining_quantity=remaining,
        )
        self.logger.info(
            f"Sale {sale_id}: {request.quantity}x {product.name} ({product.batch}) "
            f"by {seller}, {remaining} left"
        )
        if result.sold_out:
            self.notifications.publish("Sold out", f"Product sold out by: {seller}", "warning")
        else:
            self.notifications.success("Sale", "Sale recorded.")
        return result
