"""Scrape orchestration core.

This package provides:
- Extractor base class and the product data structures
- Factory for registering and looking up extractors by site id
- Session pool, scheduler, fetch executors and retry controller
  (imported from their own modules)
"""

from .base import (
    Availability,
    BaseExtractor,
    FetchAttempt,
    FetchRequest,
    FetchResult,
    ProductRecord,
)
from .factory import ExtractorFactory

__all__ = [
    # Base classes
    "BaseExtractor",
    # Data structures
    "Availability",
    "FetchAttempt",
    "FetchRequest",
    "FetchResult",
    "ProductRecord",
    # Factory
    "ExtractorFactory",
]
