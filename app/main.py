import logging

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.rate_limiter import limiter
from app.middleware.request_logger import RequestLoggerMiddleware
from app.web.routers import availability_web, booking_web, calendar_sync_web, feed_web


# -------------------------------------------------
# Logging
# -------------------------------------------------

setup_logging()
logger = logging.getLogger(__name__)

logger.info("Starting application")


# -------------------------------------------------
# FastAPI
# -------------------------------------------------

app = FastAPI(
    title=settings.project_name,
    description="Beach house bookings, owner calendar and iCal feeds",
    version="0.1.0",
)

# -------------------------------------------------
# Rate Limiting (slowapi)
# -------------------------------------------------
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestLoggerMiddleware)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}


app.include_router(feed_web.router)
app.include_router(availability_web.router)
app.include_router(booking_web.router)
app.include_router(calendar_sync_web.router)


# -------------------------------------------------
# Lifecycle
# -------------------------------------------------


@app.on_event("startup")
async def on_startup():
    logger.info("FastAPI startup")

    from app.database import init_db

    await init_db()

    from app.services.feed_loader import feed_loader

    await feed_loader.ensure_property_feed()

    from app.services.scheduler_service import scheduler_service

    scheduler_service.start()


@app.on_event("shutdown")
async def on_shutdown():
    logger.info("FastAPI shutdown")

    from app.services.scheduler_service import scheduler_service

    scheduler_service.shutdown()

    from app.database import engine

    await engine.dispose()
