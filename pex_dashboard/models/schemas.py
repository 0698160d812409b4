"""Input schemas for product data entering the system.

Form submissions, uploaded backups and legacy local snapshots all pass
through ``ProductDraft`` before anything is written: identity and derived
fields (``id``, ``daysRemaining``, ``status``) are dropped, free-text tags
are normalized and required fields are enforced.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .product import CATALOG_BATCH
from ..engine.status import parse_expiry_date
from ..utils.exceptions import InvalidExpiryDateError


def _upper(value: Any) -> str:
    return str(value or "").upper().strip()


class ProductDraft(BaseModel):
    """A product as submitted by a user or read from a file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    batch: str = ""
    quantity: int = 0
    expiry_date: str = Field(default="", alias="expiryDate")
    ean: str = ""
    registration: str = ""
    section: str = ""
    transfer: str = ""
    notes: str = ""

    @field_validator("name", "batch", "registration", "section", "transfer", mode="before")
    @classmethod
    def normalize_tag(cls, value: Any) -> str:
        return _upper(value)

    @field_validator("ean", mode="before")
    @classmethod
    def normalize_ean(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("notes", mode="before")
    @classmethod
    def normalize_notes(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def parse_quantity(cls, value: Any) -> int:
        if value is None or value == "":
            return 0
        if isinstance(value, bool):
            raise ValueError("quantity must be a number")
        try:
            quantity = int(float(value))
        except (TypeError, ValueError):
            raise ValueError(f"quantity must be a number, got {value!r}")
        if quantity < 0:
            raise ValueError("quantity cannot be negative")
        return quantity

    @field_validator("expiry_date", mode="before")
    @classmethod
    def check_expiry(cls, value: Any) -> str:
        text = str(value or "").strip()
        if text:
            try:
                parse_expiry_date(text)
            except InvalidExpiryDateError as e:
                raise ValueError(e.message)
        return text

    @model_validator(mode="after")
    def require_fields(self) -> "ProductDraft":
        if not self.name:
            raise ValueError("name is required")
        if not self.expiry_date and self.batch != CATALOG_BATCH:
            raise ValueError("expiryDate is required")
        return self

    @property
    def is_catalog(self) -> bool:
        return self.batch == CATALOG_BATCH


class CatalogEntryRequest(BaseModel):
    """EAN -> name reference registration."""

    ean: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @field_validator("ean", mode="before")
    @classmethod
    def strip_ean(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: Any) -> str:
        return _upper(value)


class SaleRequest(BaseModel):
    """Sale form submission."""

    model_config = ConfigDict(populate_by_name=True)

    quantity: int = Field(gt=0)
    seller_id: str = Field(alias="sellerId", min_length=1)

    @field_validator("seller_id", mode="before")
    @classmethod
    def strip_seller(cls, value: Any) -> str:
        return str(value or "").strip()


class BulkDeleteRequest(BaseModel):
    """Multi-select deletion."""

    ids: List[str]


class ImportEnvelope(BaseModel):
    """Backup file wrapper shape: ``{"products": [...], ...}``."""

    model_config = ConfigDict(extra="ignore")

    products: Optional[List[Any]] = None


class BulkUpdateRequest(BaseModel):
    """Same field edit applied to many products."""

    ids: List[str]
    fields: Dict[str, Any]
