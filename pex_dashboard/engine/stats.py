"""Dashboard tile counts."""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable

from ..models.product import Product, ProductStatus


@dataclass(frozen=True)
class DashboardStats:
    """Inventory counts per status; catalog entries are never counted."""

    total: int = 0
    expired: int = 0
    critical: int = 0
    safe: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def aggregate_stats(products: Iterable[Product]) -> DashboardStats:
    """Partition non-catalog products by their stored status."""
    counts = {status: 0 for status in ProductStatus}
    total = 0
    for product in products:
        if product.is_catalog:
            continue
        counts[product.status] += 1
        total += 1

    return DashboardStats(
        total=total,
        expired=counts[ProductStatus.EXPIRED],
        critical=counts[ProductStatus.CRITICAL],
        safe=counts[ProductStatus.SAFE],
    )
