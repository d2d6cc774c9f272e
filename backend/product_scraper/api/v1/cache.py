"""Cache inspection and combined export endpoints."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from product_scraper.dependencies import get_export_service, get_scraper_service
from product_scraper.schemas import CacheEntriesResponse, CacheEntryResponse, ExportResponse
from product_scraper.scrapers.scraper_service import ScraperService
from product_scraper.services.export_service import ExportService

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/cache/entries", response_model=CacheEntriesResponse)
async def list_cache_entries(service: ScraperService = Depends(get_scraper_service)):
    """List every cached product, fresh or stale."""
    cache = service.cache
    now = cache.now()
    entries = [
        CacheEntryResponse(key=entry.key, timestamp=entry.timestamp, fresh=entry.is_fresh(now), data=entry.data)
        for entry in sorted(cache.entries(), key=lambda e: e.timestamp, reverse=True)
    ]
    return CacheEntriesResponse(entries=entries, stats=cache.stats())


@router.post("/export", response_model=ExportResponse, response_model_exclude_none=True)
async def run_export(export_service: ExportService = Depends(get_export_service)):
    """Regenerate products.json and products.csv now."""
    try:
        result = await export_service.build_combined_export()
    except OSError as e:
        logger.error("export_failed", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ExportResponse(
                success=False,
                error="Failed to regenerate products export",
                details=str(e),
            ).model_dump(exclude_none=True),
        )
    return ExportResponse(success=True, **result)
