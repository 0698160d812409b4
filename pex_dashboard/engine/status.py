"""Expiry status derivation.

The expiry date is a plain calendar date. It is split into its year, month
and day components and compared against today's local date, so a stored
``2025-03-01`` never shifts by a day the way a UTC-midnight instant would
on a client west of Greenwich.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from ..models.product import ProductStatus
from ..utils.exceptions import InvalidExpiryDateError

CRITICAL_DAYS = 30

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


@dataclass(frozen=True)
class StatusResult:
    """Days until expiry and the status bucket they fall in."""

    days_remaining: int
    status: ProductStatus


def parse_expiry_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` into a date.

    Raises:
        InvalidExpiryDateError: If the string is not a real calendar date.
    """
    match = _ISO_DATE.match(value.strip())
    if not match:
        raise InvalidExpiryDateError(
            f"Invalid expiry date: {value!r} (expected YYYY-MM-DD)",
            details={"expiry_date": value},
        )

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidExpiryDateError(
            f"Invalid expiry date: {value!r} ({e})",
            details={"expiry_date": value},
        )


def classify(days_remaining: int, critical_days: int = CRITICAL_DAYS) -> ProductStatus:
    if days_remaining < 0:
        return ProductStatus.EXPIRED
    if days_remaining <= critical_days:
        return ProductStatus.CRITICAL
    return ProductStatus.SAFE


def compute_status(
    expiry_date: Union[str, date, None],
    today: Optional[date] = None,
    critical_days: int = CRITICAL_DAYS,
) -> StatusResult:
    """
    Derive days remaining and status from an expiry date.

    Args:
        expiry_date: ``YYYY-MM-DD`` string or date. Empty means the entry has
            no real expiry (catalog/reference data).
        today: Reference date, defaults to the local current date.
        critical_days: Upper bound (inclusive) of the critical window.

    Returns:
        StatusResult; ``(0, safe)`` for an empty expiry date.

    Raises:
        InvalidExpiryDateError: If a non-empty string is not a valid date.
    """
    if not expiry_date:
        return StatusResult(days_remaining=0, status=ProductStatus.SAFE)

    expiry = expiry_date if isinstance(expiry_date, date) else parse_expiry_date(expiry_date)
    reference = today or date.today()

    days_remaining = (expiry - reference).days
    return StatusResult(days_remaining=days_remaining, status=classify(days_remaining, critical_days))
