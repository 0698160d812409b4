"""Command-line interface for dashboard operations."""

import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click

from .engine.filters import SORT_ORDERS, STATUS_FILTERS, FilterCriteria
from .services.backup import backup_filename
from .services.dashboard import REPORT_KINDS, DashboardService
from .utils.config import get_config
from .utils.exceptions import BaseAppException, ConfigurationError


@contextmanager
def _dashboard():
    """Start a dashboard, wait for the first snapshot and stop it afterwards."""
    config = get_config()
    service = DashboardService()
    if service.state.config_error:
        raise ConfigurationError(service.state.config_error)

    service.start()
    try:
        if not service.state.wait_until_loaded(config.migration.load_timeout_seconds):
            raise ConfigurationError("Timed out waiting for the inventory snapshot")
        service.state.wait_until_sales_loaded(config.migration.load_timeout_seconds)
        if service.state.last_error:
            raise ConfigurationError(f"Inventory unavailable: {service.state.last_error}")
        yield service
    finally:
        service.stop()


def _fail(error: Exception) -> None:
    message = error.message if isinstance(error, BaseAppException) else str(error)
    label = "Configuration error" if isinstance(error, ConfigurationError) else "Error"
    click.echo(click.style(f"✗ {label}: {message}", fg="red"), err=True)
    sys.exit(1)


def _filter_options(func):
    options = [
        click.option("--search", default="", help="Substring of name, batch or EAN"),
        click.option("--status", "status_filter", type=click.Choice(STATUS_FILTERS), default="all",
                     help="Status view"),
        click.option("--from", "start_date", default="", help="Earliest expiry date (YYYY-MM-DD)"),
        click.option("--to", "end_date", default="", help="Latest expiry date (YYYY-MM-DD)"),
        click.option("--vendor", default="", help="Registration tag"),
        click.option("--section", default="", help="Section tag"),
        click.option("--transfer", default="", help="Transfer tag"),
        click.option("--sort", "sort_order", type=click.Choice(SORT_ORDERS), default="default",
                     help="Sort by name"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _criteria(search, status_filter, start_date, end_date, vendor, section, transfer, sort_order) -> FilterCriteria:
    return FilterCriteria(
        search_term=search,
        status_filter=status_filter,
        start_date=start_date,
        end_date=end_date,
        vendor=vendor,
        section=section,
        transfer=transfer,
        sort_order=sort_order,
    )


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """
    PEX Dashboard CLI.

    Inspect and manage the pharmacy inventory stored in the document store.
    """
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", type=int, default=None, help="Port (defaults to PORT)")
def serve(host: str, port: Optional[int]):
    """Run the HTTP server with the embedded scheduler."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "pex_dashboard.server:app",
        host=host,
        port=port or config.env.port,
        reload=not config.is_production
    )


@cli.command()
def stats():
    """Show the dashboard tile counts."""
    try:
        with _dashboard() as service:
            counts = service.state.stats()
    except BaseAppException as e:
        _fail(e)

    click.echo(f"Total:     {counts.total}")
    click.echo(click.style(f"Expired:   {counts.expired}", fg="red" if counts.expired else None))
    click.echo(click.style(f"Critical:  {counts.critical}", fg="yellow" if counts.critical else None))
    click.echo(click.style(f"Safe:      {counts.safe}", fg="green"))


@cli.command("list")
@_filter_options
def list_products(**filters):
    """List products matching the filters."""
    try:
        criteria = _criteria(**filters)
        with _dashboard() as service:
            products = service.state.filtered(criteria)
    except BaseAppException as e:
        _fail(e)

    colors = {"expired": "red", "critical": "yellow", "safe": "green"}
    for p in products:
        status = "CATALOG" if p.is_catalog else p.status.value.upper()
        line = f"{p.id:<22} {p.name:<30} {p.batch:<12} {p.quantity:>5}  {p.expiry_date or '-':<10}  {status}"
        if p.is_sold_out:
            line += "  (sold out)"
        click.echo(click.style(line, fg=None if p.is_catalog else colors[p.status.value]))

    click.echo("─" * 60)
    click.echo(f"{len(products)} product(s)")


@cli.command()
@click.argument("product_id")
@click.option("--quantity", "-q", type=int, required=True, help="Units sold")
@click.option("--seller", "-s", required=True, help="Seller registration")
def sell(product_id: str, quantity: int, seller: str):
    """
    Record a sale for PRODUCT_ID.

    The sale record and the stock decrement are written in one batch.
    """
    try:
        with _dashboard() as service:
            result = service.sell(product_id, quantity, seller)
    except BaseAppException as e:
        _fail(e)

    click.echo(click.style(f"✓ Sale recorded ({result.sale_id})", fg="green", bold=True))
    if result.sold_out:
        click.echo(click.style("Product is now sold out", fg="yellow"))
    else:
        click.echo(f"Remaining stock: {result.remaining_quantity}")


@cli.command()
@click.argument("product_ids", nargs=-1, required=True)
@click.confirmation_option(prompt="Delete the selected products?")
def delete(product_ids):
    """Delete one or more products in a single batch."""
    try:
        with _dashboard() as service:
            deleted = service.delete_products(product_ids)
    except BaseAppException as e:
        _fail(e)

    click.echo(click.style(f"✓ {deleted} product(s) deleted", fg="green"))


@cli.command("clear-sales")
@click.confirmation_option(prompt="Delete the whole sales history?")
def clear_sales():
    """Delete every sale record in a single batch."""
    try:
        with _dashboard() as service:
            deleted = service.clear_sales_history()
    except BaseAppException as e:
        _fail(e)

    click.echo(click.style(f"✓ {deleted} sale record(s) deleted", fg="green"))


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Output file (defaults to pex_cloud_backup_<date>.json)")
def export(output: Optional[str]):
    """Export products and sales history to a JSON backup."""
    try:
        with _dashboard() as service:
            payload = service.backup.export_backup()
    except BaseAppException as e:
        _fail(e)

    path = Path(output or backup_filename())
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    click.echo(click.style(
        f"✓ Exported {len(payload['products'])} products and "
        f"{len(payload['salesHistory'])} sales to {path}",
        fg="green"
    ))


@cli.command("import")
@click.argument("backup_file", type=click.Path(exists=True, dir_okay=False))
@click.confirmation_option(prompt="This adds the file's products to the current database. Continue?")
def import_backup(backup_file: str):
    """Import products from a JSON backup (array or {products: [...]})."""
    try:
        content = Path(backup_file).read_bytes()
        with _dashboard() as service:
            imported = service.backup.import_backup(content)
    except BaseAppException as e:
        _fail(e)

    click.echo(click.style(f"✓ {imported} product(s) imported", fg="green"))


@cli.command()
def migrate():
    """
    Migrate legacy local snapshots into the remote store.

    Runs only when the remote inventory is empty; local data is erased only
    after its batch is committed.
    """
    config = get_config()
    try:
        with _dashboard() as service:
            result = service.migrate(delay=config.migration.grace_period_seconds)
    except BaseAppException as e:
        _fail(e)

    if result.skipped:
        click.echo(click.style(f"Migration skipped: {result.skipped_reason}", fg="yellow"))
        sys.exit(0)

    color = "green" if result.success else "red"
    click.echo(click.style(result.get_summary(), fg=color))
    sys.exit(0 if result.success else 1)


@cli.command()
@click.argument("kind", type=click.Choice(REPORT_KINDS))
@_filter_options
def report(kind: str, **filters):
    """Print the inventory, catalog or sales report."""
    try:
        criteria = _criteria(**filters)
        with _dashboard() as service:
            table = service.report(kind, criteria)
    except BaseAppException as e:
        _fail(e)

    click.echo(table.to_text())


@cli.command("test-connection")
def test_connection():
    """
    Test connectivity to the document store.

    Reads the inventory collection once.
    """
    click.echo("Testing document store connection...")
    click.echo()

    service = DashboardService()
    try:
        result = service.test_connection()
    finally:
        service.stop()

    click.echo(f"Backend: {result['backend']}")
    if result["success"]:
        click.echo(click.style(
            f"  ✓ Connected successfully ({result['documents']} inventory documents)", fg="green"
        ))
        sys.exit(0)

    click.echo(click.style(f"  ✗ Connection failed: {result['error']}", fg="red"))
    sys.exit(1)


@cli.command()
def config_info():
    """Display current configuration settings."""
    try:
        config = get_config()

        click.echo("Configuration Settings:")
        click.echo("=" * 60)
        click.echo()

        click.echo("Environment:")
        click.echo(f"  Environment:     {config.env.environment}")
        click.echo(f"  Log level:       {config.logging.level}")
        click.echo()

        click.echo("Document store:")
        click.echo(f"  Backend:         {config.env.store_backend}")
        click.echo(f"  Project:         {config.env.firestore_project_id or '-'}")
        click.echo(f"  Database:        {config.env.firestore_database}")
        api_key = config.env.firestore_api_key
        click.echo(f"  API key:         {api_key[:6] + '...' if api_key else '-'}")
        click.echo(f"  Collections:     {config.store.inventory_collection}, {config.store.sales_collection}")
        click.echo(f"  Poll interval:   {config.store.poll_interval_seconds}s")
        click.echo()

        click.echo("Status & migration:")
        click.echo(f"  Critical window: {config.status.critical_days} days")
        click.echo(f"  Migration:       {'enabled' if config.migration.enabled else 'disabled'}")
        click.echo(f"  Local snapshots: {config.env.local_snapshot_dir}")
        click.echo()

    except Exception as e:
        click.echo(click.style(f"✗ Error loading config: {str(e)}", fg="red"), err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
