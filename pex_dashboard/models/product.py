"""Product and sale record data models."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Dict, Any

# Lot value that marks an EAN -> name reference entry with no real stock.
CATALOG_BATCH = "CATÁLOGO"

# daysRemaining written on auto-created catalog duplicates.
CATALOG_DAYS_REMAINING = 999


class ProductStatus(str, Enum):
    """Expiry status derived from the expiry date."""

    SAFE = "safe"
    CRITICAL = "critical"
    EXPIRED = "expired"


# Stored (camelCase) field name -> dataclass attribute
_PRODUCT_FIELDS = {
    "name": "name",
    "batch": "batch",
    "quantity": "quantity",
    "expiryDate": "expiry_date",
    "daysRemaining": "days_remaining",
    "status": "status",
    "ean": "ean",
    "registration": "registration",
    "section": "section",
    "transfer": "transfer",
    "notes": "notes",
    "oldId": "old_id",
}

_SALE_FIELDS = {
    "quantitySold": "quantity_sold",
    "sellerId": "seller_id",
    "saleDate": "sale_date",
}


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_status(value: Any) -> ProductStatus:
    try:
        return ProductStatus(value)
    except ValueError:
        return ProductStatus.SAFE


@dataclass
class Product:
    """A stocked product (or catalog reference entry) as held by the store."""

    id: str
    name: str
    batch: str = ""
    quantity: int = 0
    expiry_date: str = ""
    days_remaining: int = 0
    status: ProductStatus = ProductStatus.SAFE
    ean: str = ""
    registration: str = ""
    section: str = ""
    transfer: str = ""
    notes: str = ""
    old_id: Optional[str] = None

    def __post_init__(self):
        """Validate and normalize data."""
        if self.quantity < 0:
            raise ValueError("Quantity cannot be negative")

        if not isinstance(self.status, ProductStatus):
            self.status = ProductStatus(self.status)

    @property
    def is_catalog(self) -> bool:
        return self.batch == CATALOG_BATCH

    @property
    def is_sold_out(self) -> bool:
        return not self.is_catalog and self.quantity == 0

    def with_status(self, days_remaining: int, status: ProductStatus) -> "Product":
        """Return a copy carrying a freshly derived status."""
        return replace(self, days_remaining=days_remaining, status=status)

    def to_document(self) -> Dict[str, Any]:
        """Convert to the stored document body (no id)."""
        data = {}
        for key, attr in _PRODUCT_FIELDS.items():
            value = getattr(self, attr)
            if attr == "old_id" and value is None:
                continue
            data[key] = value.value if isinstance(value, ProductStatus) else value
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, id included."""
        return {"id": self.id, **self.to_document()}

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Product":
        """Create instance from a stored document.

        Store data is not validated at the source, so missing or mistyped
        fields fall back to neutral defaults instead of failing the snapshot.
        """
        return cls(**_common_kwargs(doc_id, data))


@dataclass
class SaleRecord(Product):
    """Snapshot of a product at sale time plus the sale metadata."""

    quantity_sold: int = 0
    seller_id: str = ""
    sale_date: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        data = super().to_document()
        for key, attr in _SALE_FIELDS.items():
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "SaleRecord":
        kwargs = _common_kwargs(doc_id, data)
        kwargs["quantity_sold"] = _to_int(data.get("quantitySold"))
        kwargs["seller_id"] = str(data.get("sellerId") or "")
        sale_date = data.get("saleDate")
        kwargs["sale_date"] = str(sale_date) if sale_date else None
        return cls(**kwargs)


def _common_kwargs(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"id": doc_id}
    for key, attr in _PRODUCT_FIELDS.items():
        if key not in data or data[key] is None:
            continue
        value = data[key]
        if attr in ("quantity", "days_remaining"):
            value = _to_int(value)
        elif attr == "status":
            value = _to_status(value)
        else:
            value = str(value)
        kwargs[attr] = value
    kwargs["quantity"] = max(0, kwargs.get("quantity", 0))
    kwargs.setdefault("name", "")
    return kwargs
