"""Tests for the local snapshot migration."""

import pytest

from pex_dashboard.api.local_storage import PRODUCTS_SNAPSHOT_KEY, SALES_SNAPSHOT_KEY
from pex_dashboard.models.product import ProductStatus
from pex_dashboard.utils.exceptions import MigrationError

from conftest import days_from_today


def local_product(old_id, **overrides):
    record = {
        "id": old_id,
        "name": "dipirona",
        "batch": "l1",
        "quantity": 3,
        "expiryDate": days_from_today(10),
        "status": "safe",
        "daysRemaining": 400,
    }
    record.update(overrides)
    return record


class TestProductMigration:
    """Tests for migrating the local product snapshot."""

    def test_migrates_into_empty_store_once(self, service, local_storage, store):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(i) for i in (1, 2, 3)])

        result = service.migrate()

        assert result.success
        assert result.migrated_products == 3
        assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is None
        documents = store.list_documents("inventory")
        assert sorted(d.data["oldId"] for d in documents) == ["1", "2", "3"]
        assert all(d.id not in ("1", "2", "3") for d in documents)
        assert len(service.state.products) == 3

        second = service.migrate()

        assert second.skipped
        assert len(store.list_documents("inventory")) == 3

    def test_recomputes_derived_fields(self, service, local_storage):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])

        service.migrate()

        product = service.state.products[0]
        assert product.name == "DIPIRONA"
        assert product.days_remaining == 10
        assert product.status == ProductStatus.CRITICAL

    def test_skipped_when_remote_not_empty(self, service, seed, local_storage, store):
        seed({})
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])

        result = service.migrate()

        assert result.skipped_reason == "remote inventory is not empty"
        assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is not None
        assert len(store.list_documents("inventory")) == 1

    def test_skipped_while_another_run_is_in_flight(self, service, local_storage, store):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])
        service.migration._in_flight.acquire()
        try:
            assert service.status()["migration_in_progress"]
            result = service.migrate()
        finally:
            service.migration._in_flight.release()

        assert result.skipped_reason == "migration already in progress"
        assert store.list_documents("inventory") == []

    def test_failed_commit_keeps_local_key(self, service, local_storage, store):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1), local_product(2)])
        store.fail_next_commit()

        result = service.migrate()

        assert not result.success
        assert result.errors[0].scope == "products"
        assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is not None
        assert store.list_documents("inventory") == []

        retry = service.migrate()

        assert retry.migrated_products == 2
        assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is None

    def test_invalid_record_aborts_products(self, service, local_storage, store):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1), local_product(2, expiryDate="31/02/2025")])

        result = service.migrate()

        assert not result.success
        assert result.errors[0].error_type == "ValidationError"
        assert store.list_documents("inventory") == []
        assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is not None

    def test_corrupt_local_key(self, service, local_storage):
        local_storage.directory.mkdir(parents=True, exist_ok=True)
        (local_storage.directory / f"{PRODUCTS_SNAPSHOT_KEY}.json").write_text("{not json", encoding="utf-8")

        result = service.migrate()

        assert not result.success
        assert result.errors[0].error_type == "MigrationError"

    def test_no_local_data(self, service):
        result = service.migrate()

        assert result.skipped_reason == "no local data"

    def test_disabled(self, service, local_storage, monkeypatch):
        monkeypatch.setattr(service.migration.config.migration, "enabled", False)
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])

        result = service.migrate()

        assert result.skipped_reason == "migration disabled"

    def test_skipped_after_listener_error(self, service, local_storage):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])
        service.state.last_error = "PERMISSION_DENIED"

        result = service.migrate()

        assert result.skipped_reason == "remote inventory is unavailable"


class TestSalesMigration:
    """Tests for migrating the local sales snapshot."""

    def test_sales_migrate_with_products(self, service, local_storage, store):
        local_storage.set(PRODUCTS_SNAPSHOT_KEY, [local_product(1)])
        local_storage.set(SALES_SNAPSHOT_KEY, [
            {"id": 77, "name": "DIPIRONA", "quantitySold": 2, "sellerId": "M1", "saleDate": "2025-05-30T10:00:00Z"},
        ])

        result = service.migrate()

        assert result.migrated_products == 1
        assert result.migrated_sales == 1
        (sale,) = store.list_documents("sales")
        assert sale.data["oldId"] == "77"
        assert "id" not in sale.data
        assert sale.data["saleDate"] == "2025-05-30T10:00:00+00:00"
        assert local_storage.get(SALES_SNAPSHOT_KEY) is None
        assert len(service.state.sales) == 1

    def test_sales_skipped_when_remote_history_exists(self, service, seed, local_storage, store):
        (product_id,) = seed({"quantity": 5})
        service.sell(product_id, 1, "m1")
        service.products.delete_product(product_id)
        local_storage.set(SALES_SNAPSHOT_KEY, [{"id": 1, "quantitySold": 1}])

        result = service.migrate()

        assert result.migrated_sales == 0
        assert len(store.list_documents("sales")) == 1
        assert local_storage.get(SALES_SNAPSHOT_KEY) is not None

    def test_non_object_sale_record(self, service, local_storage, store):
        local_storage.set(SALES_SNAPSHOT_KEY, ["oops"])

        result = service.migrate()

        assert not result.success
        assert result.errors[0].scope == "sales"
        assert store.list_documents("sales") == []

    @pytest.mark.parametrize("sale_date", ["30/05/2025", "", None])
    def test_unreadable_sale_date_keeps_local_sales(self, service, local_storage, store, sale_date):
        local_storage.set(SALES_SNAPSHOT_KEY, [
            {"id": 1, "quantitySold": 1, "saleDate": "2025-05-30T10:00:00-03:00"},
            {"id": 2, "quantitySold": 1, "saleDate": sale_date},
        ])

        result = service.migrate()

        assert not result.success
        assert result.errors[0].scope == "sales"
        assert store.list_documents("sales") == []
        assert local_storage.get(SALES_SNAPSHOT_KEY) is not None

    def test_sale_dates_keep_their_instant(self, service, local_storage, store):
        local_storage.set(SALES_SNAPSHOT_KEY, [
            {"id": 1, "quantitySold": 1, "saleDate": "2025-05-30T07:00:00-03:00"},
            {"id": 2, "quantitySold": 1, "saleDate": "2025-05-30T09:00:00"},
        ])

        service.migrate()

        dates = [d.data["saleDate"] for d in store.list_documents("sales", order_by="saleDate")]
        assert dates == ["2025-05-30T09:00:00+00:00", "2025-05-30T10:00:00+00:00"]


def test_load_array_rejects_non_array(local_storage):
    local_storage.set(PRODUCTS_SNAPSHOT_KEY, {"products": []})

    with pytest.raises(MigrationError, match="array"):
        local_storage.load_array(PRODUCTS_SNAPSHOT_KEY)
