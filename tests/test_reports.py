"""Tests for report building."""

import pytest

from pex_dashboard.engine.filters import FilterCriteria
from pex_dashboard.models.product import SaleRecord
from pex_dashboard.services.reports import (
    CATALOG_COLUMNS,
    INVENTORY_COLUMNS,
    catalog_report,
    inventory_report,
    sales_report,
)
from pex_dashboard.utils.exceptions import ValidationError


def test_inventory_report(sample_products):
    report = inventory_report(sample_products[:2])

    assert tuple(report.columns) == INVENTORY_COLUMNS
    assert report.total == 2
    expiry = sample_products[0].expiry_date
    assert report.rows[0] == ["111", "AMOXICILINA", "A1", 10, f"{expiry[8:]}/{expiry[5:7]}/{expiry[:4]}", "EXPIRED"]
    assert report.rows[1][-1] == "CRITICAL"


def test_inventory_report_fallbacks(sample_products):
    product = sample_products[2]
    product.ean = ""
    product.expiry_date = "bad"

    (row,) = inventory_report([product]).rows

    assert row[0] == "N/A"
    assert row[4] == "-"


def test_catalog_report_only_lists_catalog_entries(sample_products):
    report = catalog_report(sample_products)

    assert tuple(report.columns) == CATALOG_COLUMNS
    assert report.rows == [["111", "AMOXICILINA", "CATÁLOGO", "-", "-"]]


def test_sales_report_newest_first_in_local_time():
    sales = [
        SaleRecord(id="s1", name="A", batch="L1", quantity_sold=1, seller_id="M1", sale_date="2025-06-01T12:00:00Z"),
        SaleRecord(id="s2", name="B", batch="L2", quantity_sold=2, seller_id="M2", sale_date=None),
        SaleRecord(id="s3", name="C", batch="L3", quantity_sold=3, seller_id="M3", sale_date="2025-06-02T09:30:00+00:00"),
    ]

    report = sales_report(sales, "America/Sao_Paulo")

    assert [row[2] for row in report.rows] == ["C", "A", "B"]
    assert report.rows[0][0] == "02/06 06:30"
    assert report.rows[2][0] == "-"


@pytest.mark.parametrize("builder", [inventory_report, catalog_report, sales_report])
def test_empty_report(builder):
    with pytest.raises(ValidationError, match="No data"):
        builder([])


def test_text_rendering(sample_products):
    text = inventory_report(sample_products[:1]).to_text()

    lines = text.splitlines()
    assert lines[0] == "PEX - INVENTORY REPORT"
    assert lines[2] == "Total: 1"
    assert lines[4].split() == list(INVENTORY_COLUMNS)
    assert "AMOXICILINA" in lines[6]


def test_dashboard_report_uses_filters(service, seed):
    seed({"name": "ALPHA"}, {"name": "BETA"})

    report = service.report("inventory", FilterCriteria(search_term="alp"))

    assert [row[1] for row in report.rows] == ["ALPHA"]
    with pytest.raises(ValidationError, match="Unknown report"):
        service.report("pdf")
