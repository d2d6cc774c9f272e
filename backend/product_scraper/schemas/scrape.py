"""Scrape request/response schemas."""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class ScrapeRequest(BaseModel):
    """Body of POST /scrape. ``website`` is accepted as an alias of ``site``."""

    url: Optional[str] = None
    site: Optional[str] = Field(default=None, validation_alias=AliasChoices("site", "website"))


class ProductData(BaseModel):
    """Extracted product attributes."""

    title: str
    brand: str
    price: str
    description: str = ""
    availability: str
    images: List[str] = []
    sizes: List[str] = []
    site: str = ""
    source_id: str = ""


class ScrapeResponse(BaseModel):
    """Envelope returned by the scrape endpoints.

    ``data`` is present on success; ``error`` and ``details`` on failure.
    """

    success: bool
    data: Optional[ProductData] = None
    error: Optional[str] = None
    details: Optional[str] = None
    cached: bool = False
    attempts: Optional[int] = None


class CacheEntryResponse(BaseModel):
    """One cached product as listed by GET /cache/entries."""

    key: str
    timestamp: float
    fresh: bool
    data: Dict[str, Any]


class CacheEntriesResponse(BaseModel):
    entries: List[CacheEntryResponse]
    stats: Dict[str, Any]


class ExportResponse(BaseModel):
    """Result of a combined export run."""

    success: bool
    count: int = 0
    json_path: Optional[str] = None
    csv_path: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None
