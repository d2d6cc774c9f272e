"""Core scrape data structures and the base extractor interface.

All site-specific extractors should inherit from BaseExtractor and
implement parse(). The orchestration core (pool, scheduler, retry,
cache) only ever talks to extractors through this interface.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup

from product_scraper.core.exceptions import InvalidTargetError
from product_scraper.scrapers.utils.normalizer import last_path_segment, normalize_url

T = TypeVar("T")

DEFAULT_TITLE = "Unknown Product"
DEFAULT_BRAND = "Unknown Brand"
DEFAULT_PRICE = "N/A"


class Availability(str, Enum):
    """Stock status of a product."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"


@dataclass
class ProductRecord:
    """Structured product data returned by every extractor.

    Every field has a default so a page with no recognizable markup still
    produces a complete record.
    """

    title: str = DEFAULT_TITLE
    brand: str = DEFAULT_BRAND
    price: str = DEFAULT_PRICE  # Numeric string, currency-free
    description: str = ""
    availability: Availability = Availability.UNKNOWN
    images: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    site: str = ""
    source_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["availability"] = self.availability.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductRecord":
        """Rebuild a record from its to_dict() form, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for name in ("images", "sizes"):
            if name in known:
                known[name] = list(known[name])
        if "availability" in known:
            try:
                known["availability"] = Availability(known["availability"])
            except ValueError:
                known["availability"] = Availability.UNKNOWN
        return cls(**known)


@dataclass
class FetchRequest:
    """One logical request to obtain a product's current data."""

    url: str
    key: str
    site: str
    deadline: float  # Seconds for the whole request, retries included
    max_attempts: int
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def domain(self) -> str:
        return urlparse(self.url).netloc


@dataclass
class FetchAttempt:
    """One concrete try at fulfilling a FetchRequest."""

    number: int
    started_at: float
    elapsed: float = 0.0
    success: bool = False
    error: Optional[str] = None


@dataclass
class FetchResult:
    """Outcome of a scrape, always returned as a value and never raised."""

    success: bool
    record: Optional[ProductRecord] = None
    error: Optional[str] = None
    details: Optional[str] = None
    attempts: List[FetchAttempt] = field(default_factory=list)
    cached: bool = False

    @classmethod
    def ok(cls, record: ProductRecord, attempts: Optional[List[FetchAttempt]] = None) -> "FetchResult":
        return cls(success=True, record=record, attempts=attempts or [])

    @classmethod
    def failure(
        cls, error: str, details: str, attempts: Optional[List[FetchAttempt]] = None
    ) -> "FetchResult":
        return cls(success=False, error=error, details=details, attempts=attempts or [])

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON envelope handed to callers."""
        if self.success:
            return {"success": True, "data": self.record.to_dict()}
        return {"success": False, "error": self.error, "details": self.details}


class BaseExtractor(ABC):
    """Abstract base class for all site extractors.

    Subclasses set ``site_id``/``domains`` and implement parse(). The
    public extract() never raises: any failure inside parse() leaves the
    record with whatever fields were filled in so far.
    """

    site_id: str = ""  # Must be overridden in subclass (e.g., "myntra")
    site_name: str = ""
    domains: tuple = ()  # Accepted hostnames; empty accepts any host
    base_url: str = ""  # Used to turn bare ids into URLs
    wait_selector: Optional[str] = None  # CSS selector signalling the product section rendered

    # Lower-case phrases that mark a product as unavailable
    OUT_OF_STOCK_MARKERS = ("out of stock", "sold out", "currently unavailable")

    def __init__(self, default_availability: Availability = Availability.UNKNOWN):
        self.default_availability = default_availability
        self.logger = structlog.get_logger(extractor=self.site_id)

    def extract(self, content: str, url: str = "") -> ProductRecord:
        """Convert raw page markup into a ProductRecord.

        Args:
            content: Full rendered HTML of the product page
            url: URL the content was fetched from

        Returns:
            ProductRecord, with defaults for anything that could not be parsed
        """
        record = ProductRecord(availability=self.default_availability, site=self.site_id)
        if url:
            record.source_id = self._field(lambda: self.derive_key(url), "")
        if not content:
            return record

        try:
            soup = BeautifulSoup(content, "html.parser")
            self.parse(soup, content, record)
        except Exception as e:
            self.logger.warning("extraction_failed", url=url, error=str(e))
        return record

    @abstractmethod
    def parse(self, soup: BeautifulSoup, html: str, record: ProductRecord) -> None:
        """Fill ``record`` in place from the parsed page.

        Args:
            soup: Parsed document
            html: Raw markup, for regex-based fallbacks
            record: Record pre-populated with defaults
        """
        pass

    def derive_key(self, url: str) -> str:
        """Derive the canonical product identifier for a URL.

        The default rule takes the final non-empty path segment with the
        query string and fragment stripped.
        """
        segment = last_path_segment(url)
        if not segment:
            raise InvalidTargetError(f"Cannot derive a product id from '{url}'")
        return segment

    def build_url(self, url_or_id: str) -> str:
        """Turn a URL, path or bare product id into a full product URL."""
        value = (url_or_id or "").strip()
        if not value:
            raise InvalidTargetError("URL parameter is required")
        if value.startswith(("http://", "https://")):
            return normalize_url(value)
        if not self.base_url:
            raise InvalidTargetError(f"Not a URL: '{value}'")
        return f"{self.base_url.rstrip('/')}/{value.lstrip('/')}"

    def validate_url(self, url: str) -> None:
        """Raise InvalidTargetError unless ``url`` belongs to this site."""
        host = urlparse(url).netloc.lower()
        if not host:
            raise InvalidTargetError(f"Invalid URL: '{url}'")
        if self.domains and not any(host == d or host.endswith("." + d) for d in self.domains):
            raise InvalidTargetError(f"Invalid {self.site_name or self.site_id} URL or product ID: '{url}'")

    def _field(self, getter: Callable[[], T], default: T) -> T:
        """Run one field getter, substituting ``default`` on any error or empty value."""
        try:
            value = getter()
        except Exception as e:
            self.logger.debug("field_extraction_failed", error=str(e))
            return default
        return value if value else default

    @staticmethod
    def _select_text(soup: BeautifulSoup, selectors: List[str]) -> str:
        """Text of the first element matching any selector, in order."""
        for selector in selectors:
            element = soup.select_one(selector)
            if element is not None:
                text = element.get_text(" ", strip=True)
                if text:
                    return text
        return ""

    def _availability_from_text(self, text: str) -> Availability:
        lowered = (text or "").lower()
        if any(marker in lowered for marker in self.OUT_OF_STOCK_MARKERS):
            return Availability.OUT_OF_STOCK
        return self.default_availability
