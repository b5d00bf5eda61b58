"""FastAPI application entry point"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core import otel
from app.core.config import settings
from app.core.logging import setup_logging
from app.core.middleware import access_log_middleware, setup_cors_middleware
from app.db.session import engine, init_db
from app.models import Base  # Import all models to register with Base.metadata

# Import routers
from app.api import admin, monitoring, policy, royalties, webhooks

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if otel.initialize_otel():
        if otel.setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    otel.instrument_sqlalchemy(engine)

    retry_task = None
    if settings.WEBHOOK_RETRY_INTERVAL_SECONDS > 0:
        from app.tasks.webhook_retry import webhook_retry_task
        retry_task = asyncio.create_task(webhook_retry_task())
        logger.info("Webhook retry task started")
    else:
        logger.info("In-process webhook retry loop disabled - use the cron script or admin trigger")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if retry_task:
        retry_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await retry_task


# Create FastAPI app
app = FastAPI(
    title="Cameo Backend",
    description="Webhook reliability and revenue distribution for the creator marketplace",
    version="1.0.0",
    lifespan=lifespan
)

# Instrument FastAPI and HTTPX with OpenTelemetry
otel.instrument_fastapi(app)
otel.instrument_httpx()

setup_cors_middleware(app)
app.middleware("http")(access_log_middleware)

# Include routers
app.include_router(webhooks.router)
app.include_router(admin.router)
app.include_router(policy.router)
app.include_router(royalties.router)
app.include_router(monitoring.router)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )
