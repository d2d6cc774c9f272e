"""Services module for result caching, persistence and export.

The scrape orchestration itself lives in
product_scraper.scrapers.scraper_service.
"""

from product_scraper.services.cache_service import CacheEntry, ResultCache
from product_scraper.services.export_service import ExportScheduler, ExportService
from product_scraper.services.result_store import (
    JsonFileResultStore,
    RedisResultStore,
    ResultStore,
    build_result_store,
)

__all__ = [
    "CacheEntry",
    "ResultCache",
    "ExportScheduler",
    "ExportService",
    "JsonFileResultStore",
    "RedisResultStore",
    "ResultStore",
    "build_result_store",
]
