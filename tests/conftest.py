"""Pytest configuration and fixtures."""

from datetime import date, timedelta

import pytest

from pex_dashboard.api.local_storage import LocalSnapshotStorage
from pex_dashboard.api.memory_store import MemoryDocumentStore
from pex_dashboard.models.product import CATALOG_BATCH, Product, ProductStatus
from pex_dashboard.services.dashboard import DashboardService
from pex_dashboard.utils.config import get_config

TODAY = date(2025, 6, 1)


def days_from_today(days: int) -> str:
    return (TODAY + timedelta(days=days)).isoformat()


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch):
    """Run every test against the in-memory backend with a fresh config."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.delenv("FIRESTORE_PROJECT_ID", raising=False)
    monkeypatch.delenv("FIRESTORE_API_KEY", raising=False)
    monkeypatch.delenv("FIRESTORE_ACCESS_TOKEN", raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    """Create an empty in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def local_storage(tmp_path):
    return LocalSnapshotStorage(str(tmp_path / "local"))


@pytest.fixture
def service(store, local_storage):
    """Create a started dashboard over the memory store."""
    dashboard = DashboardService(store=store, local_storage=local_storage, today=lambda: TODAY)
    dashboard.start()
    yield dashboard
    dashboard.stop()


@pytest.fixture
def product_document():
    """Build a stored product body; keyword arguments override fields."""
    def build(**overrides):
        document = {
            "name": "DIPIRONA 500MG",
            "batch": "L001",
            "quantity": 5,
            "expiryDate": days_from_today(90),
            "daysRemaining": 90,
            "status": "safe",
            "ean": "7891234567890",
            "registration": "M100",
            "section": "A1",
            "transfer": "",
            "notes": "",
        }
        document.update(overrides)
        return document

    return build


@pytest.fixture
def seed(store, product_document):
    """Insert product documents into the inventory collection; returns ids."""
    def insert(*documents):
        return [store.create_document("inventory", product_document(**doc)) for doc in documents]

    return insert


@pytest.fixture
def sample_products():
    """Create a mixed product list: one per status plus a catalog entry."""
    return [
        Product(id="p1", name="AMOXICILINA", batch="A1", quantity=10, expiry_date=days_from_today(-3),
                days_remaining=-3, status=ProductStatus.EXPIRED, ean="111", section="FARMA"),
        Product(id="p2", name="dipirona", batch="B2", quantity=4, expiry_date=days_from_today(15),
                days_remaining=15, status=ProductStatus.CRITICAL, ean="222", registration="M200"),
        Product(id="p3", name="Buscopan", batch="C3", quantity=0, expiry_date=days_from_today(120),
                days_remaining=120, status=ProductStatus.SAFE, ean="333", transfer="LOJA 2"),
        Product(id="c1", name="AMOXICILINA", batch=CATALOG_BATCH, quantity=0, expiry_date="",
                days_remaining=999, status=ProductStatus.SAFE, ean="111"),
    ]
