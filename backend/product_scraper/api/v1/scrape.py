"""Product scrape endpoints.

GET takes the target as query parameters, POST as a JSON body. Both
return the ``{success, data}`` / ``{success, error, details}`` envelope;
only invalid input maps to a 400, every other failure is reported in
the body with a 200.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from product_scraper.core.exceptions import InvalidTargetError
from product_scraper.dependencies import get_scraper_service
from product_scraper.schemas import ScrapeRequest, ScrapeResponse
from product_scraper.scrapers.base import FetchResult
from product_scraper.scrapers.scraper_service import ScraperService

router = APIRouter()
logger = structlog.get_logger(__name__)


def _to_response(result: FetchResult) -> JSONResponse:
    payload = result.to_dict()
    payload["cached"] = result.cached
    if result.attempts:
        payload["attempts"] = len(result.attempts)
    status_code = 400 if result.error == InvalidTargetError.category else 200
    return JSONResponse(status_code=status_code, content=ScrapeResponse(**payload).model_dump(exclude_none=True))


@router.get("", response_model=ScrapeResponse, response_model_exclude_none=True)
async def scrape_get(
    url: Optional[str] = Query(None, description="Product URL or product id"),
    site: Optional[str] = Query(None, description="Site id, e.g. myntra"),
    service: ScraperService = Depends(get_scraper_service),
):
    """Scrape a product given as query parameters."""
    logger.info("scrape_requested", url=url, site=site, method="GET")
    result = await service.scrape_product(site, url)
    return _to_response(result)


@router.post("", response_model=ScrapeResponse, response_model_exclude_none=True)
async def scrape_post(
    body: ScrapeRequest,
    service: ScraperService = Depends(get_scraper_service),
):
    """Scrape a product given as a JSON body."""
    logger.info("scrape_requested", url=body.url, site=body.site, method="POST")
    result = await service.scrape_product(body.site, body.url)
    return _to_response(result)
