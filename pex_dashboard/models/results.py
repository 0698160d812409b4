"""Result data models for write operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional


@dataclass
class OperationError:
    """Represents a failed step of a multi-step operation."""

    scope: str  # "products", "sales", ...
    error_type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "scope": self.scope,
            "error_type": self.error_type,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class MigrationResult:
    """Represents the outcome of a local snapshot migration run."""

    success: bool = True
    migrated_products: int = 0
    migrated_sales: int = 0
    skipped_reason: Optional[str] = None
    errors: List[OperationError] = field(default_factory=list)
    duration: float = 0.0  # seconds
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        """Initialize timestamps if not set."""
        if self.start_time is None:
            self.start_time = datetime.utcnow()

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def skip(self, reason: str) -> "MigrationResult":
        """Mark the run as skipped and finalize it."""
        self.skipped_reason = reason
        self.finalize()
        return self

    def add_error(self, scope: str, error_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        """Add an error to the result."""
        self.errors.append(OperationError(
            scope=scope,
            error_type=error_type,
            message=message,
            details=details
        ))
        self.success = False

    def finalize(self):
        """Finalize the result with end time and duration."""
        self.end_time = datetime.utcnow()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "migrated_products": self.migrated_products,
            "migrated_sales": self.migrated_sales,
            "skipped_reason": self.skipped_reason,
            "duration": round(self.duration, 2),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "errors": [error.to_dict() for error in self.errors]
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        if self.skipped:
            return f"Migration skipped: {self.skipped_reason}"

        summary_lines = [
            f"Migration completed in {self.duration:.2f}s",
            f"Products migrated: {self.migrated_products}",
            f"Sales migrated: {self.migrated_sales}",
        ]

        if self.errors:
            summary_lines.append(f"\nErrors ({len(self.errors)}):")
            for error in self.errors:
                summary_lines.append(f"  - {error.scope}: {error.message}")

        return "\n".join(summary_lines)


@dataclass
class SaleResult:
    """Outcome of a committed sale."""

    sale_id: str
    product_id: str
    quantity_sold: int
    remaining_quantity: int

    @property
    def sold_out(self) -> bool:
        return self.remaining_quantity == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity_sold": self.quantity_sold,
            "remaining_quantity": self.remaining_quantity,
            "sold_out": self.sold_out,
        }


@dataclass
class CreateResult:
    """Ids written by the create-product transaction."""

    product_id: str
    catalog_id: Optional[str] = None
    catalog_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "catalog_id": self.catalog_id,
            "catalog_error": self.catalog_error,
        }
