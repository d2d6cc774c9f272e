"""Amazon product page extractor."""

import re
from typing import List

from bs4 import BeautifulSoup

from product_scraper.core.exceptions import InvalidTargetError
from product_scraper.scrapers.base import DEFAULT_BRAND, DEFAULT_PRICE, DEFAULT_TITLE, Availability, ProductRecord
from product_scraper.scrapers.extractors.generic import GenericExtractor
from product_scraper.scrapers.utils.normalizer import PriceNormalizer

_ASIN_IN_PATH = re.compile(r"/(?:dp|gp/product|gp/aw/d)/([A-Z0-9]{10})(?:[/?#]|$)", re.IGNORECASE)
_ASIN = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)
_BYLINE_PREFIX = re.compile(r"^(visit the|brand:)\s*|\s*store$", re.IGNORECASE)

PRICE_SELECTORS = [
    "#corePrice_feature_div .a-price .a-offscreen",
    "#corePriceDisplay_desktop_feature_div .a-price .a-offscreen",
    ".a-price .a-offscreen",
    "#priceblock_ourprice",
    "#priceblock_dealprice",
]


class AmazonExtractor(GenericExtractor):
    """Extractor for Amazon product detail pages (.com and .in)."""

    site_id = "amazon"
    site_name = "Amazon"
    domains = ("amazon.in", "amazon.com")
    base_url = "https://www.amazon.in/dp"
    wait_selector = "#productTitle"

    def parse(self, soup: BeautifulSoup, html: str, record: ProductRecord) -> None:
        record.title = self._field(lambda: self._select_text(soup, ["#productTitle", "#title"]), DEFAULT_TITLE)
        record.brand = self._field(lambda: self._brand_from_byline(soup), DEFAULT_BRAND)
        record.price = self._field(
            lambda: PriceNormalizer.extract_price_from_text(self._select_text(soup, PRICE_SELECTORS)),
            DEFAULT_PRICE,
        )
        record.description = self._field(
            lambda: "\n".join(
                li.get_text(" ", strip=True) for li in soup.select("#feature-bullets li") if li.get_text(strip=True)
            ),
            "",
        )
        record.images = self._field(lambda: self._images(soup), [])
        record.sizes = self._field(lambda: self._sizes(soup), [])
        record.availability = self._field(lambda: self._availability(soup), self.default_availability)

        self.parse_structured_data(soup, record)
        self.parse_page_text(soup, record)

    def derive_key(self, url: str) -> str:
        """Amazon keys products by ASIN."""
        value = (url or "").strip()
        if _ASIN.match(value):
            return value.upper()
        match = _ASIN_IN_PATH.search(value)
        if not match:
            raise InvalidTargetError(f"Cannot find an ASIN in '{url}'")
        return match.group(1).upper()

    @staticmethod
    def _brand_from_byline(soup: BeautifulSoup) -> str:
        byline = soup.select_one("#bylineInfo")
        if byline is None:
            return ""
        return _BYLINE_PREFIX.sub("", byline.get_text(" ", strip=True)).strip()

    @staticmethod
    def _images(soup: BeautifulSoup) -> List[str]:
        image = soup.select_one("#landingImage") or soup.select_one("#imgBlkFront")
        if image is None:
            return []
        url = image.get("data-old-hires") or image.get("src")
        return [url] if url else []

    @staticmethod
    def _sizes(soup: BeautifulSoup) -> List[str]:
        options = soup.select("#native_dropdown_selected_size_name option")
        return [
            o.get_text(strip=True)
            for o in options
            if o.get("value") not in (None, "", "-1") and o.get_text(strip=True)
        ]

    def _availability(self, soup: BeautifulSoup) -> Availability:
        text = self._select_text(soup, ["#availability", "#outOfStock"]).lower()
        if not text:
            return self.default_availability
        if "in stock" in text or "left in stock" in text:
            return Availability.IN_STOCK
        return self._availability_from_text(text)
