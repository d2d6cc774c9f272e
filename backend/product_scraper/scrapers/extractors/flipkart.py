"""Flipkart product page extractor."""

from typing import List
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from product_scraper.scrapers.base import DEFAULT_BRAND, DEFAULT_PRICE, DEFAULT_TITLE, Availability, ProductRecord
from product_scraper.scrapers.extractors.generic import GenericExtractor
from product_scraper.scrapers.utils.normalizer import PriceNormalizer

# Flipkart ships obfuscated class names; the stable ones are listed first
TITLE_SELECTORS = ["span.VU-ZEz", "span.B_NuCI", "h1 span", "h1"]
PRICE_SELECTORS = ["div.Nx9bqj.CxhGGd", "div._30jeq3._16Jk6d", "div.Nx9bqj", "div._30jeq3"]
BRAND_SELECTORS = ["span.mEh187", "span.G6XhRU"]


class FlipkartExtractor(GenericExtractor):
    """Extractor for www.flipkart.com product detail pages."""

    site_id = "flipkart"
    site_name = "Flipkart"
    domains = ("flipkart.com",)
    base_url = "https://www.flipkart.com"
    wait_selector = "h1"

    def parse(self, soup: BeautifulSoup, html: str, record: ProductRecord) -> None:
        record.title = self._field(lambda: self._select_text(soup, TITLE_SELECTORS), DEFAULT_TITLE)
        record.brand = self._field(lambda: self._select_text(soup, BRAND_SELECTORS), DEFAULT_BRAND)
        record.price = self._field(
            lambda: PriceNormalizer.extract_price_from_text(self._select_text(soup, PRICE_SELECTORS)),
            DEFAULT_PRICE,
        )
        record.sizes = self._field(lambda: self._sizes(soup), [])
        if soup.find(string=lambda s: s and "sold out" in s.lower()):
            record.availability = Availability.OUT_OF_STOCK
        elif soup.find("button", string=lambda s: s and "buy now" in s.lower()):
            record.availability = Availability.IN_STOCK

        self.parse_structured_data(soup, record)
        self.parse_page_text(soup, record)

    def derive_key(self, url: str) -> str:
        """Flipkart identifies products by the ``pid`` query parameter."""
        pid = parse_qs(urlparse(url).query).get("pid")
        if pid and pid[0]:
            return pid[0]
        return super().derive_key(url)

    @staticmethod
    def _sizes(soup: BeautifulSoup) -> List[str]:
        sizes = []
        for link in soup.select("a[id^='swatch-'][id$='-size']"):
            text = link.get_text(strip=True)
            if text and text not in sizes:
                sizes.append(text)
        return sizes
