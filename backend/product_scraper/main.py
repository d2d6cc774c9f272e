"""Product Scraper -- FastAPI Application Entry Point."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from product_scraper.api.v1.router import api_v1_router
from product_scraper.config import settings
from product_scraper.core.logging_config import configure_logging
from product_scraper.scrapers.scraper_service import build_scraper_service
from product_scraper.services.export_service import ExportScheduler, ExportService

configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    # Startup
    logger.info("Starting product scraper API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Fetch mode: {settings.FETCH_MODE}, cache backend: {settings.CACHE_BACKEND}")

    service = build_scraper_service(settings)
    service.scheduler.start()
    app.state.scraper_service = service

    try:
        loaded = await service.cache.warm()
        logger.info(f"Result cache warmed with {loaded} entries")
    except Exception as e:
        logger.warning(f"Result cache warm-up failed: {e}")

    export_service = ExportService(service.cache, settings.EXPORT_DIR)
    app.state.export_service = export_service

    # Start export scheduler (only in non-test environments)
    export_scheduler = None
    if settings.ENVIRONMENT != "test":
        export_scheduler = ExportScheduler(export_service, settings.EXPORT_INTERVAL_MINUTES)
        export_scheduler.start()
    else:
        logger.info("Export scheduler disabled (test environment)")

    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(service.handle_loop_exception)

    yield

    # Shutdown
    logger.info("Shutting down product scraper API server...")
    loop.set_exception_handler(previous_handler)

    if export_scheduler:
        logger.info("Stopping export scheduler...")
        export_scheduler.stop()

    try:
        await service.shutdown()
        logger.info("Scraper service stopped")
    except Exception as e:
        logger.warning(f"Error stopping scraper service: {e}")


app = FastAPI(
    title="Product Scraper API",
    description="Cached, rate-limited product page scraping",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    """Tag every log line of a request with one request id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Product Scraper API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
        "scrape": "/api/v1/scrape",
    }
