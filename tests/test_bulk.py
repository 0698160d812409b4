"""Tests for batch deletes and edits."""

import pytest

from pex_dashboard.utils.exceptions import BatchTooLargeError, DocumentStoreError, ValidationError


class TestDeleteProducts:
    """Tests for BulkMutationService.delete_products."""

    def test_deletes_in_one_batch(self, service, seed, store, monkeypatch):
        ids = seed(*[{"name": f"P{i}"} for i in range(12)])
        commits = []
        original_commit = store.commit
        monkeypatch.setattr(store, "commit", lambda writes: commits.append(len(writes)) or original_commit(writes))

        deleted = service.delete_products(ids[:10])

        assert deleted == 10
        assert commits == [10]
        assert {p.id for p in service.state.products} == set(ids[10:])

    def test_rejected_batch_deletes_nothing(self, service, seed, store):
        ids = seed(*[{"name": f"P{i}"} for i in range(10)])
        store.fail_next_commit()

        with pytest.raises(DocumentStoreError):
            service.delete_products(ids)

        assert len(store.list_documents("inventory")) == 10
        assert len(service.state.products) == 10

    def test_duplicates_collapse(self, service, seed):
        ids = seed({}, {})

        assert service.delete_products([ids[0], ids[0], ids[1]]) == 2

    def test_empty_selection_is_noop(self, service, store, monkeypatch):
        monkeypatch.setattr(store, "commit", lambda writes: pytest.fail("commit should not be called"))

        assert service.delete_products([]) == 0

    def test_oversized_selection_is_rejected(self, service, store, monkeypatch):
        monkeypatch.setattr(service.bulk.config.store, "max_batch_size", 3)

        with pytest.raises(BatchTooLargeError):
            service.delete_products(["a", "b", "c", "d"])


class TestUpdateProducts:
    """Tests for BulkMutationService.update_products."""

    def test_applies_normalized_fields(self, service, seed):
        ids = seed({}, {})

        assert service.bulk.update_products(ids, {"section": " b7 ", "notes": "Check"}) == 2

        for product in service.state.products:
            assert product.section == "B7"
            assert product.notes == "Check"

    def test_rejects_derived_fields(self, service, seed):
        ids = seed({})

        with pytest.raises(ValidationError, match="status"):
            service.bulk.update_products(ids, {"status": "safe"})

    def test_requires_fields(self, service):
        with pytest.raises(ValidationError):
            service.bulk.update_products(["a"], {})


class TestClearSalesHistory:
    """Tests for clearing the sales ledger."""

    def test_clears_all_sales(self, service, seed):
        (product_id,) = seed({"quantity": 5})
        service.sell(product_id, 1, "m1")
        service.sell(product_id, 1, "m2")

        assert service.clear_sales_history() == 2
        assert service.state.sales == ()
        assert service.state.get_product(product_id).quantity == 3
