"""
FarmLink - Application Entry Point
====================================
FastAPI app initialization, middleware, exception handlers and router registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine
from common.exceptions import MarketplaceError, RateLimitError
from common.rate_limit import InMemoryRateLimiter, NoopRateLimiter
from common.security import get_real_ip

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("farmlink.app")
scheduler_logger = logging.getLogger("farmlink.scheduler")


# ==========================================
# Import ALL models so Base can see them
# ==========================================
from modules.user.models import User  # noqa: F401, E402
from modules.account.models import BuyerProfile, ProducerProfile  # noqa: F401, E402
from modules.catalog.models import Product  # noqa: F401, E402
from modules.cart.models import CartItem  # noqa: F401, E402
from modules.order.models import Order, OrderItem  # noqa: F401, E402

# ==========================================
# Import routers
# ==========================================
from modules.order.routes import router as order_router  # noqa: E402
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.catalog.routes import router as catalog_router  # noqa: E402


# ==========================================
# Background Scheduler
# ==========================================
def _prune_rate_limiter():
    """Background job: drop counters whose window has passed."""
    try:
        removed = app.state.rate_limiter.prune()
        if removed:
            scheduler_logger.info(f"Pruned {removed} idle rate-limit keys")
    except Exception as e:
        scheduler_logger.error(f"Rate limiter prune error: {e}")


def _report_reconciliation_orders():
    """Background job: surface partially created orders for manual follow-up."""
    db = SessionLocal()
    try:
        from modules.order.service import order_service
        orders = order_service.find_orders_needing_reconciliation(db)
        for order in orders:
            scheduler_logger.warning(
                f"Order {order.order_number} (#{order.id}) needs reconciliation, "
                f"buyer #{order.buyer_id}, created {order.created_at}"
            )
    except Exception as e:
        scheduler_logger.error(f"Reconciliation report error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    scheduler.add_job(_prune_rate_limiter, 'interval', minutes=5, id='rate_limit_prune')
    scheduler.add_job(
        _report_reconciliation_orders, 'interval',
        minutes=settings.RECONCILIATION_REPORT_MINUTES, id='reconciliation_report',
    )
    scheduler.start()
    scheduler_logger.info(
        f"Background scheduler started (rate limit prune: 5m, "
        f"reconciliation report: {settings.RECONCILIATION_REPORT_MINUTES}m)"
    )
    yield
    scheduler.shutdown()
    scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="FarmLink API",
    description="Farm-to-buyer marketplace: catalog, cart and order placement",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

if settings.RATE_LIMIT_ENABLED:
    app.state.rate_limiter = InMemoryRateLimiter(
        settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS,
    )
else:
    app.state.rate_limiter = NoopRateLimiter()


# ==========================================
# Exception handlers
# ==========================================
@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        errors.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(
        {"success": False, "message": "Validation failed", "errors": errors},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if settings.DEBUG else "Internal server error"
    return JSONResponse({"success": False, "message": message}, status_code=500)


# ==========================================
# Middleware: Rate Limiting
# ==========================================
_SKIP_PATHS = ("/health",)


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    if request.url.path.startswith(_SKIP_PATHS):
        return await call_next(request)

    ip = get_real_ip(request)
    if not request.app.state.rate_limiter.hit(ip):
        logger.warning(f"Rate limit exceeded for {ip} on {request.url.path}")
        exc = RateLimitError()
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)
    return await call_next(request)


# ==========================================
# Register Routers
# ==========================================
app.include_router(order_router)
app.include_router(cart_router)
app.include_router(catalog_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}
