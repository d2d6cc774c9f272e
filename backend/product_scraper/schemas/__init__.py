"""Pydantic schemas for the product scraper API.

All request/response models are defined here for easy import.
"""

from product_scraper.schemas.health import HealthCheckResponse
from product_scraper.schemas.scrape import (
    CacheEntriesResponse,
    CacheEntryResponse,
    ExportResponse,
    ProductData,
    ScrapeRequest,
    ScrapeResponse,
)

__all__ = [
    # Health
    "HealthCheckResponse",
    # Scrape
    "CacheEntriesResponse",
    "CacheEntryResponse",
    "ExportResponse",
    "ProductData",
    "ScrapeRequest",
    "ScrapeResponse",
]
