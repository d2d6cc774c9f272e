"""FastAPI dependency injection providers."""

from fastapi import HTTPException, Request, status

from product_scraper.scrapers.scraper_service import ScraperService
from product_scraper.services.export_service import ExportService


def get_scraper_service(request: Request) -> ScraperService:
    """Return the ScraperService created during application startup.

    Usage:
        @router.get("/scrape")
        async def scrape(service: ScraperService = Depends(get_scraper_service)):
            ...
    """
    service = getattr(request.app.state, "scraper_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scraper service is not initialized",
        )
    return service


def get_export_service(request: Request) -> ExportService:
    service = getattr(request.app.state, "export_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Export service is not initialized",
        )
    return service
