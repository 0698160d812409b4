"""Tests for the sale transaction."""

import pytest

from pex_dashboard.models.product import CATALOG_BATCH
from pex_dashboard.utils.exceptions import (
    DocumentStoreError,
    OversellError,
    ProductNotFoundError,
    ValidationError,
)


class TestSell:
    """Tests for DashboardService.sell / SaleService.sell."""

    def test_selling_entire_stock_marks_sold_out(self, service, seed):
        (product_id,) = seed({"quantity": 5})

        result = service.sell(product_id, 5, "m100")

        assert result.sold_out
        product = service.state.get_product(product_id)
        assert product.quantity == 0
        assert product.is_sold_out
        assert len(service.state.sales) == 1
        sale = service.state.sales[0]
        assert sale.quantity_sold == 5
        assert sale.id == result.sale_id

    def test_partial_sale(self, service, seed):
        (product_id,) = seed({"quantity": 5})

        result = service.sell(product_id, 3, "m100")

        assert result.remaining_quantity == 2
        product = service.state.get_product(product_id)
        assert product.quantity == 2
        assert not product.is_sold_out

    def test_sale_record_snapshots_product(self, service, seed, store):
        (product_id,) = seed({"quantity": 5, "name": "BUSCOPAN", "batch": "L9"})

        result = service.sell(product_id, 1, " m7 ")

        data = {d.id: d.data for d in store.list_documents("sales")}[result.sale_id]
        assert data["id"] == result.sale_id
        assert data["name"] == "BUSCOPAN"
        assert data["batch"] == "L9"
        assert data["quantity"] == 5
        assert data["quantitySold"] == 1
        assert data["sellerId"] == "M7"
        assert data["saleDate"]

    def test_oversell_is_rejected_before_any_write(self, service, seed, store):
        (product_id,) = seed({"quantity": 2})

        with pytest.raises(OversellError):
            service.sell(product_id, 3, "m1")

        assert store.list_documents("sales") == []
        assert service.state.get_product(product_id).quantity == 2

    @pytest.mark.parametrize("quantity, seller", [(0, "m1"), (-1, "m1"), (1, ""), (1, "   "), (None, "m1")])
    def test_invalid_input(self, service, seed, quantity, seller):
        (product_id,) = seed({"quantity": 2})

        with pytest.raises(ValidationError):
            service.sell(product_id, quantity, seller)

    def test_catalog_entries_cannot_be_sold(self, service, seed):
        (catalog_id,) = seed({"batch": CATALOG_BATCH, "quantity": 0})

        with pytest.raises(ValidationError, match="Catalog"):
            service.sell(catalog_id, 1, "m1")

    def test_unknown_product(self, service):
        with pytest.raises(ProductNotFoundError):
            service.sell("missing", 1, "m1")

    def test_rejected_batch_writes_nothing(self, service, seed, store):
        (product_id,) = seed({"quantity": 5})
        store.fail_next_commit()

        with pytest.raises(DocumentStoreError):
            service.sell(product_id, 2, "m1")

        assert store.list_documents("sales") == []
        assert service.state.get_product(product_id).quantity == 5

    def test_product_deleted_after_sale_keeps_history(self, service, seed):
        (product_id,) = seed({"quantity": 5})
        service.sell(product_id, 5, "m1")

        service.products.delete_product(product_id)

        assert service.state.products == ()
        assert len(service.state.sales) == 1
