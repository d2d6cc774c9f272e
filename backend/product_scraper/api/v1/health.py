"""Health check endpoint."""

from fastapi import APIRouter, Depends

from product_scraper.dependencies import get_scraper_service
from product_scraper.schemas import HealthCheckResponse
from product_scraper.scrapers.scraper_service import ScraperService

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(service: ScraperService = Depends(get_scraper_service)):
    """Return service health status.

    The browser engine is launched lazily, so "idle" before the first
    scrape is healthy.
    """
    stats = service.stats()
    pool = stats["pool"]
    engine = pool["engine"] if pool else "disabled"
    if pool and engine == "disconnected":
        engine = "idle"

    return HealthCheckResponse(
        status="ok",
        engine=engine,
        cache_backend=stats["cache"]["backend"],
        queue_pending=stats["queue_pending"],
        services={"pool": pool, "cache": stats["cache"], "inflight": stats["inflight"]},
    )
