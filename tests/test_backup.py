"""Tests for backup export and import."""

import json
from datetime import date

import pytest

from pex_dashboard.models.product import ProductStatus
from pex_dashboard.services.backup import backup_filename, extract_products
from pex_dashboard.utils.exceptions import DocumentStoreError, ImportParseError, ValidationError

from conftest import days_from_today


def test_backup_filename():
    assert backup_filename(date(2025, 6, 1)) == "pex_cloud_backup_2025-06-01.json"


class TestExtractProducts:
    """Tests for the accepted backup shapes."""

    def test_bare_array(self):
        assert extract_products([{"name": "A"}]) == [{"name": "A"}]

    def test_wrapped_object(self):
        assert extract_products({"products": [{"name": "A"}], "salesHistory": []}) == [{"name": "A"}]

    @pytest.mark.parametrize("payload", [[], {}, {"products": []}, {"products": "x"}, "text", 3])
    def test_rejects_other_shapes(self, payload):
        with pytest.raises(ImportParseError, match="Empty or invalid"):
            extract_products(payload)


class TestExport:
    """Tests for BackupService.export_backup."""

    def test_exports_products_and_sales(self, service, seed):
        ids = seed({"quantity": 5}, {"name": "OTHER"})
        service.sell(ids[0], 2, "m1")

        payload = service.backup.export_backup()

        assert {p["id"] for p in payload["products"]} == set(ids)
        assert len(payload["salesHistory"]) == 1
        assert payload["salesHistory"][0]["quantitySold"] == 2
        json.dumps(payload)

    def test_nothing_to_export(self, service):
        with pytest.raises(ValidationError, match="no data"):
            service.backup.export_backup()


class TestImport:
    """Tests for BackupService.import_backup."""

    def test_round_trip_recomputes_status(self, service, seed, store):
        (original_id,) = seed({"expiryDate": days_from_today(-1), "status": "safe", "daysRemaining": 50})
        content = json.dumps(service.backup.export_backup())

        assert service.backup.import_backup(content) == 1

        assert len(store.list_documents("inventory")) == 2
        (imported,) = [p for p in service.state.products if p.id != original_id]
        assert imported.status == ProductStatus.EXPIRED
        assert imported.days_remaining == -1

    def test_ignores_identity_and_derived_fields(self, service, store):
        content = json.dumps([
            {"id": "keep-me", "name": "a", "expiryDate": days_from_today(100), "status": "expired", "daysRemaining": -9}
        ])

        service.backup.import_backup(content)

        (document,) = store.list_documents("inventory")
        assert document.id != "keep-me"
        assert document.data["status"] == "safe"
        assert document.data["daysRemaining"] == 100

    def test_malformed_json(self, service, store):
        with pytest.raises(ImportParseError, match="not valid JSON"):
            service.backup.import_backup("{oops")

        assert store.list_documents("inventory") == []

    def test_invalid_record_imports_nothing(self, service, store):
        content = json.dumps({"products": [
            {"name": "A", "expiryDate": days_from_today(5)},
            {"name": "", "expiryDate": days_from_today(5)},
        ]})

        with pytest.raises(ImportParseError, match="Record 2"):
            service.backup.import_backup(content)

        assert store.list_documents("inventory") == []

    def test_rejected_batch(self, service, store):
        store.fail_next_commit()

        with pytest.raises(DocumentStoreError):
            service.backup.import_backup(json.dumps([{"name": "A", "expiryDate": days_from_today(5)}]))

        assert service.notifications.recent()[-1].level == "error"
