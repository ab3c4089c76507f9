"""
FastAPI Application Entry Point

Pastificio Backend - orders, reports and backups for a fresh-pasta shop.

Endpoints:
    - POST /api/orders: Book an order
    - GET /api/orders: List orders
    - GET /api/orders/search: Search orders by customer, phone or product
    - PATCH /api/orders/{id}/status: Move an order through its lifecycle
    - DELETE /api/orders/{id}: Delete an order (admin)
    - /api/customers: Customer registry, loyalty points, order history
    - GET /api/dashboard, /trend, /alerts: Production overview
    - GET /api/reports/...: Daily, weekly, monthly, top products, categories
    - GET /api/reports/export/{fmt}/{kind}: Excel / CSV / PDF download
    - POST /api/backup, GET /api/backup, POST /api/backup/restore: Admin backups
    - GET /health: System health check

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import secrets
import sys
from collections import Counter
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from pastificio.core.config import get_settings, setup_logging
from pastificio.core.exceptions import (
    ArchiveNotFoundError,
    BackupError,
    ConfigError,
    CorruptArchiveError,
    DecryptionError,
    LoyaltyPointsError,
    ReportValidationError,
)
from pastificio.database import engine, get_db, init_db
from pastificio.models import Customer, Order, OrderStatus, ProductCategory
from pastificio.schemas import (
    ArchiveResponse,
    BackupCreateRequest,
    BackupCreateResponse,
    BackupListResponse,
    BackupRestoreRequest,
    BackupRestoreResponse,
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdate,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PointsUpdate,
    ReportResponse,
)
from pastificio.services.backup import Archive, ArchiveType, ChangeSet, Snapshot
from pastificio.services.backup.schemas import COLLECTIONS, utcnow
from pastificio.services.customers import BaseCustomerRepository, SqlCustomerRepository
from pastificio.services.reports import (
    BaseOrderSource,
    ReportExporter,
    ReportKind,
    ReportService,
    SqlOrderSource,
)
from pastificio.services.reports.aggregator import MAX_PERIOD_DAYS
from pastificio.services.snapshot import apply_snapshot, capture_snapshot
from pastificio.state import ServiceState, get_services

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def require_admin(
    x_admin_token: Optional[str] = Header(None, alias="x-admin-token"),
) -> None:
    """Guard for admin endpoints when ADMIN_API_TOKEN is configured."""
    token = get_settings().admin_api_token
    if token and not (x_admin_token and secrets.compare_digest(x_admin_token, token)):
        raise HTTPException(status_code=403, detail="Admin token required")


async def get_snapshot(db: AsyncSession = Depends(get_db)) -> Snapshot:
    return await capture_snapshot(db)


async def get_order_source(db: AsyncSession = Depends(get_db)) -> BaseOrderSource:
    return SqlOrderSource(db)


async def get_report_service(source: BaseOrderSource = Depends(get_order_source)) -> ReportService:
    return ReportService(
        source,
        top_products_days=get_settings().top_products_days,
    )


async def get_customer_repository(db: AsyncSession = Depends(get_db)) -> BaseCustomerRepository:
    return SqlCustomerRepository(db)


def archive_response(archive: Archive) -> ArchiveResponse:
    return ArchiveResponse(
        filename=archive.filename,
        created_at=archive.created_at,
        size=archive.size,
        metadata=archive.metadata,
        read_error=archive.read_error,
    )


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    services: Optional[ServiceState] = None,
    init_database: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service state (defaults to one from settings)
        init_database: Create tables at startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"Starting {settings.app_name}")
        logger.info(f"   Version: {settings.app_version}")
        logger.info(f"   Environment: {settings.env_mode.value}")
        logger.info("=" * 60)

        if init_database:
            await init_db()
            logger.info("Database initialized")

        state = app.state.services
        await state.startup()

        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

        yield

        logger.info("Shutting down...")
        await state.shutdown()
        if init_database:
            await engine.dispose()
        logger.info("Cleanup complete")

    app = FastAPI(
        title=settings.app_name,
        description="Order management, reporting and backups for a fresh-pasta shop.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services or ServiceState.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    register_error_handlers(app)
    return app


def register_routes(app: FastAPI) -> None:

    # =========================================================================
    # ROOT & HEALTH
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """API root with navigation links."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.env_mode.value,
            "documentation": "/docs",
            "health": "/health",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(
        db: AsyncSession = Depends(get_db),
        services: ServiceState = Depends(get_services),
    ) -> HealthResponse:
        """Verify all system components are operational."""
        db_status = "healthy"
        try:
            await db.execute(select(func.now()))
        except Exception as e:
            db_status = f"unhealthy: {e}"
            logger.error(f"Database health check failed: {e}")

        redis_status = "healthy"
        try:
            r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
            r.ping()
            r.close()
        except Exception as e:
            redis_status = f"unhealthy: {e}"
            logger.error(f"Redis health check failed: {e}")

        backup_status = "healthy" if services.codec.backup_dir.is_dir() else "missing"

        overall = "operational" if all(
            s == "healthy" for s in [db_status, redis_status, backup_status]
        ) else "degraded"

        return HealthResponse(
            status=overall,
            database=db_status,
            redis=redis_status,
            backup_directory=backup_status,
            timestamp=datetime.now(),
        )

    # =========================================================================
    # ORDERS
    # =========================================================================

    @app.post(
        "/api/orders",
        response_model=OrderResponse,
        status_code=201,
        responses={400: {"model": ErrorResponse}},
        tags=["Orders"],
    )
    async def create_order(
        order_data: OrderCreate,
        db: AsyncSession = Depends(get_db),
    ) -> OrderResponse:
        """Book a new order. The total is computed from the product lines."""
        logger.info(f"Creating order for: {order_data.customer_name}")

        if order_data.customer_id is not None and await db.get(Customer, order_data.customer_id) is None:
            raise HTTPException(status_code=404, detail=f"Customer #{order_data.customer_id} not found")

        order = Order(
            customer_id=order_data.customer_id,
            customer_name=order_data.customer_name,
            phone=order_data.phone,
            pickup_date=datetime.combine(order_data.pickup_date, datetime.min.time()),
            pickup_time=order_data.pickup_time,
            takeaway=order_data.takeaway,
            notes=order_data.notes,
            items=[item.model_dump(mode="json") for item in order_data.items],
            total=order_data.total,
            status=OrderStatus.NEW,
        )
        db.add(order)
        await db.commit()
        await db.refresh(order)

        logger.info(f"Order #{order.id} created ({order.total:.2f})")
        return OrderResponse.model_validate(order)

    @app.get("/api/orders", response_model=OrderListResponse, tags=["Orders"])
    async def list_orders(
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        status: Optional[OrderStatus] = Query(None),
        day: Optional[date] = Query(None, description="Only orders picked up on this day"),
        db: AsyncSession = Depends(get_db),
    ) -> OrderListResponse:
        """Paginated list of orders, by pickup date."""
        query = select(Order).order_by(Order.pickup_date, Order.pickup_time)
        count_query = select(func.count(Order.id))

        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)
        if day is not None:
            start = datetime.combine(day, datetime.min.time())
            window = (Order.pickup_date >= start) & (Order.pickup_date < start + timedelta(days=1))
            query = query.where(window)
            count_query = count_query.where(window)

        total = (await db.execute(count_query)).scalar() or 0
        result = await db.execute(query.offset(skip).limit(limit))

        return OrderListResponse(
            total=total,
            orders=[OrderResponse.model_validate(o) for o in result.scalars().all()],
        )

    @app.get("/api/orders/search", response_model=OrderListResponse, tags=["Orders"])
    async def search_orders(
        q: Optional[str] = Query(None, max_length=100, description="Customer name, phone or product"),
        start: Optional[date] = Query(None),
        end: Optional[date] = Query(None, description="Last pickup day included"),
        category: Optional[ProductCategory] = Query(None),
        source: BaseOrderSource = Depends(get_order_source),
    ) -> OrderListResponse:
        """Latest matching orders first, at most 100."""
        window_start = datetime.combine(start, datetime.min.time()) if start else None
        window_end = datetime.combine(end, datetime.min.time()) + timedelta(days=1) if end else None
        if window_start and window_end and window_start >= window_end:
            raise ReportValidationError("Search start must not be after its end")

        orders = await source.search_orders(
            q,
            start=window_start,
            end=window_end,
            category=category.value if category else None,
        )
        logger.info(f"Order search {q!r}: {len(orders)} results")
        return OrderListResponse(
            total=len(orders),
            orders=[OrderResponse.model_validate(o) for o in orders],
        )

    @app.get("/api/orders/{order_id}", response_model=OrderResponse, tags=["Orders"])
    async def get_order(order_id: int, db: AsyncSession = Depends(get_db)) -> OrderResponse:
        order = await db.get(Order, order_id)
        if not order:
            raise HTTPException(status_code=404, detail=f"Order #{order_id} not found")
        return OrderResponse.model_validate(order)

    @app.patch("/api/orders/{order_id}/status", response_model=OrderResponse, tags=["Orders"])
    async def update_order_status(
        order_id: int,
        update: OrderStatusUpdate,
        db: AsyncSession = Depends(get_db),
    ) -> OrderResponse:
        order = await db.get(Order, order_id)
        if not order:
            raise HTTPException(status_code=404, detail=f"Order #{order_id} not found")

        previous = order.status
        order.status = update.status
        await db.commit()
        await db.refresh(order)

        logger.info(f"Order #{order_id}: {previous.value} -> {order.status.value}")
        return OrderResponse.model_validate(order)

    @app.delete(
        "/api/orders/{order_id}",
        dependencies=[Depends(require_admin)],
        tags=["Orders"],
    )
    async def delete_order(order_id: int, db: AsyncSession = Depends(get_db)) -> dict:
        order = await db.get(Order, order_id)
        if not order:
            raise HTTPException(status_code=404, detail=f"Order #{order_id} not found")

        await db.delete(order)
        await db.commit()

        logger.info(f"Order #{order_id} deleted")
        return {"success": True, "deleted": order_id}

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    @app.get("/api/customers", response_model=CustomerListResponse, tags=["Customers"])
    async def list_customers(
        search: Optional[str] = Query(None, max_length=100, description="Name, phone or email"),
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> CustomerListResponse:
        found = await customers.list_customers(search)
        return CustomerListResponse(
            total=len(found),
            customers=[CustomerResponse.model_validate(c) for c in found],
        )

    @app.post("/api/customers", response_model=CustomerResponse, status_code=201, tags=["Customers"])
    async def create_customer(
        data: CustomerCreate,
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> CustomerResponse:
        created = await customers.create(data.model_dump())
        return CustomerResponse.model_validate(created)

    @app.get("/api/customers/{customer_id}", response_model=CustomerResponse, tags=["Customers"])
    async def get_customer(
        customer_id: int,
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> CustomerResponse:
        customer = await customers.get(customer_id)
        if customer is None:
            raise HTTPException(status_code=404, detail=f"Customer #{customer_id} not found")
        return CustomerResponse.model_validate(customer)

    @app.put("/api/customers/{customer_id}", response_model=CustomerResponse, tags=["Customers"])
    async def update_customer(
        customer_id: int,
        data: CustomerUpdate,
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> CustomerResponse:
        customer = await customers.update(customer_id, data.model_dump(exclude_unset=True))
        if customer is None:
            raise HTTPException(status_code=404, detail=f"Customer #{customer_id} not found")
        return CustomerResponse.model_validate(customer)

    @app.post("/api/customers/{customer_id}/points", response_model=CustomerResponse, tags=["Customers"])
    async def add_points(
        customer_id: int,
        update: PointsUpdate,
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> CustomerResponse:
        """Add loyalty points, or redeem them with a negative amount."""
        customer = await customers.add_points(customer_id, update.points)
        if customer is None:
            raise HTTPException(status_code=404, detail=f"Customer #{customer_id} not found")
        return CustomerResponse.model_validate(customer)

    @app.get("/api/customers/{customer_id}/orders", response_model=OrderListResponse, tags=["Customers"])
    async def customer_orders(
        customer_id: int,
        customers: BaseCustomerRepository = Depends(get_customer_repository),
    ) -> OrderListResponse:
        if await customers.get(customer_id) is None:
            raise HTTPException(status_code=404, detail=f"Customer #{customer_id} not found")
        orders = await customers.orders_for(customer_id)
        return OrderListResponse(
            total=len(orders),
            orders=[OrderResponse.model_validate(o) for o in orders],
        )

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    @app.get("/api/dashboard", response_model=ReportResponse, tags=["Dashboard"])
    async def dashboard(reports: ReportService = Depends(get_report_service)) -> ReportResponse:
        """Today's production: counts, revenue, orders per hour, next pickups."""
        return ReportResponse(data=await reports.dashboard())

    @app.get("/api/dashboard/trend", response_model=ReportResponse, tags=["Dashboard"])
    async def dashboard_trend(
        days: int = Query(7, le=90),
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.trend(days))

    @app.get("/api/dashboard/alerts", response_model=ReportResponse, tags=["Dashboard"])
    async def dashboard_alerts(
        reports: ReportService = Depends(get_report_service),
        services: ServiceState = Depends(get_services),
    ) -> ReportResponse:
        backups = await services.store.list_backups()
        latest = next((b for b in backups if b.metadata is not None), None)
        backup_age = utcnow() - latest.created_at if latest else None
        return ReportResponse(data=await reports.alerts(backup_age))

    # =========================================================================
    # REPORTS
    # =========================================================================

    @app.get("/api/reports/daily", response_model=ReportResponse, tags=["Reports"])
    async def daily_report(
        day: Optional[date] = Query(None),
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.daily(day))

    @app.get("/api/reports/weekly", response_model=ReportResponse, tags=["Reports"])
    async def weekly_report(
        day: Optional[date] = Query(None),
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.weekly(day))

    @app.get("/api/reports/monthly/{year}/{month}", response_model=ReportResponse, tags=["Reports"])
    async def monthly_report(
        year: int,
        month: int,
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.monthly(year, month))

    @app.get("/api/reports/top-products", response_model=ReportResponse, tags=["Reports"])
    async def top_products_report(
        days: Optional[int] = Query(None, le=MAX_PERIOD_DAYS),
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.top_products(days))

    @app.get("/api/reports/categories", response_model=ReportResponse, tags=["Reports"])
    async def categories_report(
        start: Optional[datetime] = Query(None),
        end: Optional[datetime] = Query(None),
        reports: ReportService = Depends(get_report_service),
    ) -> ReportResponse:
        return ReportResponse(data=await reports.categories(start, end))

    @app.get("/api/reports/export/{fmt}/{kind}", tags=["Reports"])
    async def export_report(
        fmt: str,
        kind: str,
        reports: ReportService = Depends(get_report_service),
    ) -> Response:
        """Download a default-window report as xlsx, csv or pdf."""
        try:
            report_kind = ReportKind(kind)
        except ValueError:
            raise ReportValidationError(
                f"Invalid report type. Options: {[k.value for k in ReportKind]}"
            )

        result = await reports.build(report_kind)
        content = ReportExporter.render(
            report_kind.value,
            result,
            fmt,
            title=f"{settings.shop_name} - {report_kind.value} report",
        )
        filename = ReportExporter.filename(report_kind.value, fmt)
        return Response(
            content=content,
            media_type=ReportExporter.MEDIA_TYPES[fmt],
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    # =========================================================================
    # BACKUPS (admin)
    # =========================================================================

    @app.post(
        "/api/backup",
        response_model=BackupCreateResponse,
        dependencies=[Depends(require_admin)],
        tags=["Backup"],
    )
    async def create_backup(
        request: BackupCreateRequest,
        snapshot: Snapshot = Depends(get_snapshot),
        services: ServiceState = Depends(get_services),
    ) -> BackupCreateResponse:
        """Capture the database and write a full or incremental archive."""
        if request.type == ArchiveType.INCREMENTAL:
            archive = await services.incremental.compute_incremental(snapshot, "manual-backup")
            if archive is None:
                return BackupCreateResponse(success=True, message="No changes since the last backup")
        else:
            timestamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            archive = await services.codec.create_backup(
                snapshot,
                f"full-backup-{timestamp}",
                type=ArchiveType.FULL,
                compress=request.compress,
                encrypt=request.encrypt,
                compression_level=request.compression_level,
            )

        return BackupCreateResponse(
            success=True,
            message=f"Backup created: {archive.filename}",
            archive=archive_response(archive),
        )

    @app.get(
        "/api/backup",
        response_model=BackupListResponse,
        dependencies=[Depends(require_admin)],
        tags=["Backup"],
    )
    async def list_backups(services: ServiceState = Depends(get_services)) -> BackupListResponse:
        backups = await services.store.list_backups()
        return BackupListResponse(
            total=len(backups),
            summary=services.store.summarize(backups),
            backups=[archive_response(b) for b in backups],
        )

    @app.post(
        "/api/backup/restore",
        response_model=BackupRestoreResponse,
        dependencies=[Depends(require_admin)],
        tags=["Backup"],
    )
    async def restore_backup(
        request: BackupRestoreRequest,
        services: ServiceState = Depends(get_services),
        db: AsyncSession = Depends(get_db),
    ) -> BackupRestoreResponse:
        """
        Read an archive. With `apply`, the state it represents (full, or
        full + incremental) replaces the database contents.
        """
        try:
            payload = await services.codec.restore_backup(request.filename)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if isinstance(payload, ChangeSet):
            ops = Counter(delta.op.value for delta in payload.changes)
            record_counts = dict(ops)
        else:
            record_counts = {name: len(payload.collection(name)) for name in COLLECTIONS}

        applied = None
        if request.apply:
            snapshot = await services.incremental.restore_state(request.filename)
            applied = await apply_snapshot(db, snapshot)

        return BackupRestoreResponse(
            success=True,
            message="Restore completed" if request.apply else "Archive read successfully",
            filename=request.filename,
            kind=payload.kind,
            record_counts=record_counts,
            applied=applied,
        )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def backup_error_status(exc: BackupError) -> int:
    if isinstance(exc, ArchiveNotFoundError):
        return 404
    if isinstance(exc, (CorruptArchiveError, DecryptionError)):
        return 422
    return 500


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(BackupError)
    async def backup_exception_handler(request: Request, exc: BackupError) -> JSONResponse:
        status_code = backup_error_status(exc)
        if isinstance(exc, ConfigError):
            logger.error(f"Backup configuration error: {exc}")
        else:
            logger.warning(f"Backup error ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": type(exc).__name__, "detail": str(exc)},
        )

    @app.exception_handler(ReportValidationError)
    async def report_exception_handler(request: Request, exc: ReportValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid report request", "detail": str(exc)},
        )

    @app.exception_handler(LoyaltyPointsError)
    async def points_exception_handler(request: Request, exc: LoyaltyPointsError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid points change", "detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )


app = create_app()
