"""Product table filtering and sorting.

Filtering runs five conjunctive steps over the snapshot:

  1. Catalog partition: the ``catalog`` view shows only reference entries,
     every other view hides them.
  2. Free-text search over name, batch and EAN.
  3. Status match (skipped for ``all`` and ``catalog``).
  4. Expiry date range, compared as ``YYYY-MM-DD`` strings.
  5. Registration / section / transfer tag substrings.

Sorting by name is a separate, optional pass.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .status import parse_expiry_date
from ..models.product import Product
from ..utils.exceptions import InvalidExpiryDateError, ValidationError

STATUS_FILTERS = ("all", "catalog", "expired", "critical", "safe")
SORT_ORDERS = ("default", "asc", "desc")


@dataclass(frozen=True)
class FilterCriteria:
    """User-selected filters for the product table."""

    search_term: str = ""
    status_filter: str = "all"
    start_date: str = ""
    end_date: str = ""
    vendor: str = ""
    section: str = ""
    transfer: str = ""
    sort_order: str = "default"

    def __post_init__(self):
        if self.status_filter not in STATUS_FILTERS:
            raise ValidationError(
                f"Unknown status filter: {self.status_filter}",
                details={"allowed": list(STATUS_FILTERS)},
            )
        if self.sort_order not in SORT_ORDERS:
            raise ValidationError(
                f"Unknown sort order: {self.sort_order}",
                details={"allowed": list(SORT_ORDERS)},
            )
        for field_name in ("start_date", "end_date"):
            value = getattr(self, field_name)
            if not value:
                continue
            try:
                parse_expiry_date(value)
            except InvalidExpiryDateError:
                raise ValidationError(
                    f"Invalid {field_name.replace('_', ' ')}: {value!r} (expected YYYY-MM-DD)",
                    details={field_name: value},
                )


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.upper() in (haystack or "").upper()


def _matches(product: Product, criteria: FilterCriteria) -> bool:
    term = criteria.search_term.lower()
    if term:
        hit = (
            term in product.name.lower()
            or term in product.batch.lower()
            or term in (product.ean or "").lower()
        )
        if not hit:
            return False

    if criteria.status_filter not in ("all", "catalog"):
        if product.status.value != criteria.status_filter:
            return False

    if criteria.start_date and product.expiry_date < criteria.start_date:
        return False
    if criteria.end_date and product.expiry_date > criteria.end_date:
        return False

    if criteria.vendor and not _contains(product.registration, criteria.vendor):
        return False
    if criteria.section and not _contains(product.section, criteria.section):
        return False
    if criteria.transfer and not _contains(product.transfer, criteria.transfer):
        return False

    return True


def filter_products(products: Iterable[Product], criteria: Optional[FilterCriteria] = None) -> List[Product]:
    """Apply the filter steps, then the optional name sort."""
    criteria = criteria or FilterCriteria()
    want_catalog = criteria.status_filter == "catalog"

    filtered = [
        p for p in products
        if p.is_catalog == want_catalog and _matches(p, criteria)
    ]
    return sort_products(filtered, criteria.sort_order)


def sort_products(products: List[Product], order: str = "default") -> List[Product]:
    """Sort by name; ``default`` keeps arrival order."""
    if order == "default":
        return list(products)
    return sorted(products, key=lambda p: p.name.casefold(), reverse=(order == "desc"))


def next_sort_order(order: str) -> str:
    """Cycle the sort toggle: default -> asc -> desc -> default."""
    return {"default": "asc", "asc": "desc"}.get(order, "default")
