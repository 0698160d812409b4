"""Tabular reports: inventory, catalog and sales."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from ..engine.status import parse_expiry_date
from ..models.product import Product, ProductStatus, SaleRecord
from ..utils.config import get_config
from ..utils.exceptions import InvalidExpiryDateError, ValidationError

INVENTORY_COLUMNS = ("EAN", "Name", "Batch", "Qty", "Expiry", "Status")
CATALOG_COLUMNS = ("EAN", "Name", "Batch", "Section", "Registration")
SALES_COLUMNS = ("Date", "Seller", "Name", "Batch", "QtySold")

STATUS_LABELS = {
    ProductStatus.EXPIRED: "EXPIRED",
    ProductStatus.CRITICAL: "CRITICAL",
    ProductStatus.SAFE: "SAFE",
}


@dataclass
class Report:
    """A titled table ready for a renderer."""

    title: str
    columns: Sequence[str]
    rows: List[List[Any]]
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def total(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "generated_at": self.generated_at.isoformat(),
            "total": self.total,
            "columns": list(self.columns),
            "rows": self.rows,
        }

    def to_text(self) -> str:
        """Plain fixed-width rendering for terminals."""
        cells = [list(self.columns)] + [[str(value) for value in row] for row in self.rows]
        widths = [max(len(row[i]) for row in cells) for i in range(len(self.columns))]

        def line(row):
            return "  ".join(value.ljust(width) for value, width in zip(row, widths)).rstrip()

        out = [
            f"PEX - {self.title.upper()}",
            f"Generated: {self.generated_at.strftime('%d/%m/%Y %H:%M:%S')}",
            f"Total: {self.total}",
            "",
            line(cells[0]),
            "  ".join("-" * width for width in widths),
        ]
        out.extend(line(row) for row in cells[1:])
        return "\n".join(out)


def _format_expiry(value: str) -> str:
    try:
        return parse_expiry_date(value).strftime("%d/%m/%Y")
    except InvalidExpiryDateError:
        return "-"


def _parse_sale_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _require_rows(items: Sequence[Any]) -> None:
    if not items:
        raise ValidationError("No data for the report")


def inventory_report(products: Iterable[Product]) -> Report:
    """Report over the given (usually filtered) product list."""
    products = list(products)
    _require_rows(products)
    rows = [
        [
            p.ean or "N/A",
            p.name,
            p.batch,
            p.quantity,
            _format_expiry(p.expiry_date),
            STATUS_LABELS[p.status],
        ]
        for p in products
    ]
    return Report("Inventory Report", INVENTORY_COLUMNS, rows)


def catalog_report(products: Iterable[Product]) -> Report:
    """Report over the catalog entries among ``products``."""
    entries = [p for p in products if p.is_catalog]
    _require_rows(entries)
    rows = [
        [p.ean or "N/A", p.name, p.batch, p.section or "-", p.registration or "-"]
        for p in entries
    ]
    return Report("Product Catalog", CATALOG_COLUMNS, rows)


def sales_report(sales: Iterable[SaleRecord], tz: Optional[str] = None) -> Report:
    """Sales history, newest first; dates shown in the configured timezone."""
    sales = list(sales)
    _require_rows(sales)
    zone = ZoneInfo(tz or get_config().scheduler.timezone)
    oldest = datetime.min.replace(tzinfo=timezone.utc)

    ordered = sorted(
        sales,
        key=lambda s: _parse_sale_date(s.sale_date) or oldest,
        reverse=True,
    )

    rows = []
    for sale in ordered:
        sold_at = _parse_sale_date(sale.sale_date)
        shown = sold_at.astimezone(zone).strftime("%d/%m %H:%M") if sold_at else "-"
        rows.append([shown, sale.seller_id, sale.name, sale.batch, sale.quantity_sold])
    return Report("Sales Report", SALES_COLUMNS, rows)
