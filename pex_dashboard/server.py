"""FastAPI server for the inventory dashboard.

The background scheduler (startup migration, nightly status refresh) is
embedded in this process and started by the ``lifespan`` handler, together
with the snapshot subscriptions of ``DashboardService``.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .engine.filters import FilterCriteria
from .models.schemas import BulkDeleteRequest, BulkUpdateRequest
from .scheduler import create_background_scheduler
from .services.backup import backup_filename
from .services.dashboard import DashboardService
from .utils.config import get_config
from .utils.exceptions import (
    BaseAppException,
    ConfigurationError,
    DocumentStoreError,
    DuplicateEanError,
    ImportParseError,
    MigrationError,
    OversellError,
    ProductNotFoundError,
    ValidationError,
)
from .utils.logger import get_server_logger

config = get_config()
logger = get_server_logger()

# Most specific first; the first isinstance match wins.
ERROR_STATUS = (
    (DuplicateEanError, 409),
    (OversellError, 409),
    (ValidationError, 422),
    (ProductNotFoundError, 404),
    (ImportParseError, 400),
    (ConfigurationError, 503),
    (DocumentStoreError, 502),
    (MigrationError, 500),
)


def status_code_for(exc: BaseAppException) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return 500


def _criteria(
    search: str = "",
    status: str = "all",
    start_date: str = "",
    end_date: str = "",
    vendor: str = "",
    section: str = "",
    transfer: str = "",
    sort: str = "default",
) -> FilterCriteria:
    return FilterCriteria(
        search_term=search,
        status_filter=status,
        start_date=start_date,
        end_date=end_date,
        vendor=vendor,
        section=section,
        transfer=transfer,
        sort_order=sort,
    )


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------

def create_app(service: Optional[DashboardService] = None, with_scheduler: bool = True) -> FastAPI:
    """Create the FastAPI application.

    Args:
        service: Dashboard to serve; built from configuration on startup
            when omitted.
        with_scheduler: Start the embedded background scheduler.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup / shutdown of the application."""
        # ── Startup ───────────────────────────────────────────────────
        logger.info("=" * 60)
        logger.info("PEX Dashboard Server Starting")
        logger.info("=" * 60)
        logger.info(f"Environment:          {config.env.environment}")
        logger.info(f"Port:                 {config.env.port}")
        logger.info(f"Store backend:        {config.env.store_backend}")
        logger.info(f"Critical window:      {config.status.critical_days} days")
        logger.info("=" * 60)

        dashboard = service or DashboardService()
        dashboard.start()
        app.state.service = dashboard

        scheduler = None
        if with_scheduler:
            scheduler = create_background_scheduler(dashboard)
            scheduler.start()
            logger.info("Background scheduler started")

        yield

        # ── Shutdown ──────────────────────────────────────────────────
        if scheduler is not None:
            logger.info("Shutting down background scheduler...")
            scheduler.shutdown(wait=True)
        dashboard.stop()
        logger.info("Dashboard server shut down.")

    app = FastAPI(
        title="PEX Dashboard",
        description="Pharmacy inventory, expiry status and sales ledger",
        version="1.0.0",
        lifespan=lifespan,
    )

    def dashboard_of(request: Request) -> DashboardService:
        return request.app.state.service

    # --------------------------------------------------------------
    # Service endpoints
    # --------------------------------------------------------------

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "service": "PEX Dashboard",
            "version": "1.0.0",
            "status": "running"
        }

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint, including a store round trip."""
        connection = dashboard_of(request).test_connection()
        return JSONResponse(
            status_code=200 if connection["success"] else 503,
            content={
                "status": "healthy" if connection["success"] else "degraded",
                "timestamp": datetime.utcnow().isoformat(),
                "environment": config.env.environment,
                "store": connection,
            }
        )

    @app.get("/api/status")
    def dashboard_status(request: Request):
        """Loading flag, persistent config banner and listener errors."""
        return dashboard_of(request).status()

    @app.get("/api/notifications")
    def notifications(request: Request, since: int = 0):
        feed = dashboard_of(request).notifications
        return {"notifications": [n.to_dict() for n in feed.recent(since)]}

    # --------------------------------------------------------------
    # Products
    # --------------------------------------------------------------

    @app.get("/api/stats")
    def stats(request: Request):
        return dashboard_of(request).state.stats().to_dict()

    @app.get("/api/products")
    def list_products(
        request: Request,
        search: str = "",
        status: str = "all",
        start_date: str = "",
        end_date: str = "",
        vendor: str = "",
        section: str = "",
        transfer: str = "",
        sort: str = "default",
    ):
        """Filtered, optionally sorted product table."""
        criteria = _criteria(search, status, start_date, end_date, vendor, section, transfer, sort)
        products = dashboard_of(request).state.filtered(criteria)
        return {
            "total": len(products),
            "products": [p.to_dict() for p in products],
        }

    @app.get("/api/products/{product_id}")
    def get_product(request: Request, product_id: str):
        return dashboard_of(request).state.get_product(product_id).to_dict()

    @app.post("/api/products", status_code=201)
    def create_product(request: Request, payload: Dict[str, Any]):
        return dashboard_of(request).products.create_product(payload).to_dict()

    @app.put("/api/products/{product_id}")
    def update_product(request: Request, product_id: str, payload: Dict[str, Any]):
        document = dashboard_of(request).products.update_product(product_id, payload)
        return {"id": product_id, **document}

    @app.delete("/api/products/{product_id}")
    def delete_product(request: Request, product_id: str):
        dashboard_of(request).products.delete_product(product_id)
        return {"deleted": 1}

    @app.post("/api/products/bulk-delete")
    def bulk_delete(request: Request, payload: BulkDeleteRequest):
        return {"deleted": dashboard_of(request).delete_products(payload.ids)}

    @app.post("/api/products/bulk-update")
    def bulk_update(request: Request, payload: BulkUpdateRequest):
        return {"updated": dashboard_of(request).bulk.update_products(payload.ids, payload.fields)}

    @app.post("/api/products/{product_id}/sell")
    def sell_product(request: Request, product_id: str, payload: Dict[str, Any]):
        result = dashboard_of(request).sell(
            product_id, payload.get("quantity"), payload.get("sellerId")
        )
        return result.to_dict()

    # --------------------------------------------------------------
    # Catalog
    # --------------------------------------------------------------

    @app.get("/api/ean/{ean}")
    def lookup_ean(request: Request, ean: str):
        """Form autocomplete: name and location tags of the first match."""
        product = dashboard_of(request).products.lookup_ean(ean)
        if product is None:
            raise HTTPException(status_code=404, detail=f"EAN not found: {ean}")
        return {
            "ean": product.ean,
            "name": product.name,
            "section": product.section,
            "transfer": product.transfer,
        }

    @app.post("/api/catalog", status_code=201)
    def register_catalog_entry(request: Request, payload: Dict[str, Any]):
        return {"id": dashboard_of(request).products.register_catalog_entry(payload)}

    # --------------------------------------------------------------
    # Sales
    # --------------------------------------------------------------

    @app.get("/api/sales")
    def list_sales(request: Request):
        sales = dashboard_of(request).state.sales
        return {"total": len(sales), "sales": [s.to_dict() for s in sales]}

    @app.delete("/api/sales")
    def clear_sales(request: Request):
        return {"deleted": dashboard_of(request).clear_sales_history()}

    # --------------------------------------------------------------
    # Backup, migration, reports
    # --------------------------------------------------------------

    @app.get("/api/backup/export")
    def export_backup(request: Request):
        payload = dashboard_of(request).backup.export_backup()
        return JSONResponse(
            content=payload,
            headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'}
        )

    @app.post("/api/backup/import")
    async def import_backup(request: Request):
        body = await request.body()
        imported = await run_in_threadpool(dashboard_of(request).backup.import_backup, body)
        return {"imported": imported}

    @app.post("/api/migrate")
    def migrate(request: Request):
        return dashboard_of(request).migrate().to_dict()

    @app.get("/api/reports/{kind}")
    def report(
        request: Request,
        kind: str,
        search: str = "",
        status: str = "all",
        start_date: str = "",
        end_date: str = "",
        vendor: str = "",
        section: str = "",
        transfer: str = "",
        sort: str = "default",
    ):
        criteria = _criteria(search, status, start_date, end_date, vendor, section, transfer, sort)
        return dashboard_of(request).report(kind, criteria).to_dict()

    # --------------------------------------------------------------
    # Exception handlers
    # --------------------------------------------------------------

    @app.exception_handler(BaseAppException)
    async def app_exception_handler(request: Request, exc: BaseAppException):
        status_code = status_code_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(f"HTTP {status_code}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.message,
                "type": type(exc).__name__,
                "details": exc.details,
                "status_code": status_code
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Custom HTTP exception handler."""
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """General exception handler for unexpected errors."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if not config.is_production else "An error occurred"
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pex_dashboard.server:app",
        host="0.0.0.0",
        port=config.env.port,
        reload=not config.is_production
    )
