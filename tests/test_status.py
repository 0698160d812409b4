"""Tests for expiry status derivation."""

from datetime import date, timedelta

import pytest

from pex_dashboard.engine.status import classify, compute_status, parse_expiry_date
from pex_dashboard.models.product import ProductStatus
from pex_dashboard.utils.exceptions import InvalidExpiryDateError, ValidationError

TODAY = date(2025, 6, 1)


def in_days(days: int) -> str:
    return (TODAY + timedelta(days=days)).isoformat()


class TestComputeStatus:
    """Tests for compute_status."""

    def test_fifteen_days_is_critical(self):
        result = compute_status(in_days(15), TODAY)

        assert result.days_remaining == 15
        assert result.status == ProductStatus.CRITICAL

    def test_yesterday_is_expired(self):
        result = compute_status(in_days(-1), TODAY)

        assert result.days_remaining == -1
        assert result.status == ProductStatus.EXPIRED

    @pytest.mark.parametrize("days, status", [
        (-400, ProductStatus.EXPIRED),
        (-1, ProductStatus.EXPIRED),
        (0, ProductStatus.CRITICAL),
        (30, ProductStatus.CRITICAL),
        (31, ProductStatus.SAFE),
        (365, ProductStatus.SAFE),
    ])
    def test_thresholds(self, days, status):
        result = compute_status(in_days(days), TODAY)

        assert result.days_remaining == days
        assert result.status == status

    @pytest.mark.parametrize("empty", ["", None])
    def test_empty_expiry_is_safe(self, empty):
        result = compute_status(empty, TODAY)

        assert result.days_remaining == 0
        assert result.status == ProductStatus.SAFE

    def test_accepts_date_objects(self):
        assert compute_status(TODAY + timedelta(days=2), TODAY).days_remaining == 2

    def test_custom_critical_window(self):
        assert compute_status(in_days(45), TODAY, critical_days=60).status == ProductStatus.CRITICAL

    def test_year_boundary_uses_calendar_days(self):
        result = compute_status("2026-01-01", date(2025, 12, 31))
        assert result.days_remaining == 1

    def test_malformed_expiry_raises(self):
        with pytest.raises(InvalidExpiryDateError):
            compute_status("31/12/2025", TODAY)


class TestParseExpiryDate:
    """Tests for parse_expiry_date."""

    def test_parses_components(self):
        assert parse_expiry_date("2025-03-01") == date(2025, 3, 1)

    def test_invalid_calendar_date(self):
        with pytest.raises(InvalidExpiryDateError, match="Invalid expiry date"):
            parse_expiry_date("2025-02-29")

    def test_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            parse_expiry_date("tomorrow")


def test_classify_partition():
    """Every day count falls in exactly one bucket."""
    for days in range(-60, 90):
        status = classify(days)
        assert (status == ProductStatus.EXPIRED) == (days < 0)
        assert (status == ProductStatus.CRITICAL) == (0 <= days <= 30)
        assert (status == ProductStatus.SAFE) == (days > 30)
