"""
Storefront API: FastAPI application entry point.

Main application module with lifespan management, middleware configuration,
error envelopes and router registration. Startup work (schema check, optional
POS sync, scheduler) runs in the background so the port opens immediately.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.utils.config import settings
from app.utils.structured_logging import configure_logging
from app.routers import (
    admin,
    cart,
    category,
    discount,
    health,
    order,
    pos,
    product,
    user,
    wishlist,
)
from app.routers import settings as settings_router
from app.middleware.request_logging import RequestLoggingMiddleware
from app.scheduler.cron_tasks import (
    configure_scheduler,
    pos_sync_job,
    shutdown_scheduler,
    start_scheduler,
)
from app.services.auto_migration import run_auto_migration
from app.services.cache_service import cache_service
from app.services.realtime_service import sio

logger = logging.getLogger(__name__)

# -------------------------------------------------
# Rate Limiting
# -------------------------------------------------

def get_rate_limit_key(request: Request) -> str:
    """Rate limit key based on client IP."""
    return get_remote_address(request)

limiter = Limiter(key_func=get_rate_limit_key)


# -------------------------------------------------
# Lifespan
# -------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle.
    - Do NOT block startup
    - /health returns 503 until background startup marks the app ready
    """
    configure_logging()

    app.state.is_ready = False
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    async def background_startup():
        try:
            await run_auto_migration()
        except Exception as e:
            logger.error(f"Auto-migration failed: {e}")

        if settings.POS_SYNC_ON_STARTUP:
            await pos_sync_job()

        try:
            if configure_scheduler():
                start_scheduler()
        except Exception as e:
            logger.warning(f"Scheduler failed: {e}")

        app.state.is_ready = True
        logger.info("Application is READY to accept traffic")

    startup_task = asyncio.create_task(background_startup())
    app.state.startup_task = startup_task

    yield

    logger.info("Shutting down application")
    if not startup_task.done():
        startup_task.cancel()

    try:
        shutdown_scheduler()
    except Exception as e:
        logger.warning(f"Scheduler shutdown error: {e}")

    await cache_service.close()
    logger.info(f"Shut down {settings.APP_NAME}")


# -------------------------------------------------
# FastAPI App
# -------------------------------------------------

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# -------------------------------------------------
# Error envelopes: {success: false, message}
# -------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    response = JSONResponse(
        status_code=429,
        content={"success": False, "message": f"Too many requests: {exc.detail}"},
    )
    return request.app.state.limiter._inject_headers(response, getattr(request.state, "view_rate_limit", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# -------------------------------------------------
# Middleware
# -------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

# Rate limiting
app.state.limiter = limiter

# -------------------------------------------------
# Routers
# -------------------------------------------------

app.include_router(health.router, tags=["Health"])
app.include_router(user.router, prefix="/api/user", tags=["User"])
app.include_router(product.router, prefix="/api/product", tags=["Product"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(order.router, prefix="/api/order", tags=["Order"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(wishlist.router, prefix="/api/wishlist", tags=["Wishlist"])
app.include_router(category.router, prefix="/api/category", tags=["Category"])
app.include_router(settings_router.router, prefix="/api/settings", tags=["Settings"])
app.include_router(discount.router, prefix="/api/discount", tags=["Discount"])
app.include_router(pos.router, prefix="/api/clover", tags=["POS"])


# -------------------------------------------------
# Root
# -------------------------------------------------

@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"{settings.APP_NAME} v{settings.APP_VERSION} is running",
        "docs": "/docs",
    }


# Socket.IO shares the HTTP port; uvicorn serves this wrapper
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
