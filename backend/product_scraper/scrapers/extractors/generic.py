"""Generic product extractor based on structured data.

Works on any site that publishes schema.org Product JSON-LD or
OpenGraph product meta tags. Site extractors subclass it and add their
own selectors ahead of the structured-data fallbacks.
"""

import json
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from product_scraper.scrapers.base import (
    DEFAULT_BRAND,
    DEFAULT_PRICE,
    DEFAULT_TITLE,
    Availability,
    BaseExtractor,
    ProductRecord,
)
from product_scraper.scrapers.utils.normalizer import PriceNormalizer


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening lists and @graph."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (TypeError, ValueError):
            continue
        stack = data if isinstance(data, list) else [data]
        while stack:
            item = stack.pop(0)
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                stack.extend(graph)
            yield item


def find_product_ld(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    """Return the first schema.org Product object, if any."""
    for item in iter_json_ld(soup):
        types = item.get("@type")
        if types == "Product" or (isinstance(types, list) and "Product" in types):
            return item
    return None


def _first_offer(product: Dict[str, Any]) -> Dict[str, Any]:
    offers = product.get("offers") or {}
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    return offers if isinstance(offers, dict) else {}


def _meta(soup: BeautifulSoup, *names: str) -> Optional[str]:
    for name in names:
        tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return None


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    result = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("url") or item.get("contentUrl")
        if isinstance(item, str) and item:
            result.append(item)
    return result


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class GenericExtractor(BaseExtractor):
    """Structured-data extractor usable for any site."""

    site_id = "generic"
    site_name = "Generic"

    def parse(self, soup: BeautifulSoup, html: str, record: ProductRecord) -> None:
        self.parse_structured_data(soup, record)
        self.parse_page_text(soup, record)

    def parse_structured_data(self, soup: BeautifulSoup, record: ProductRecord) -> None:
        """Fill still-default fields from JSON-LD, then OpenGraph tags."""
        product = self._field(lambda: find_product_ld(soup), {})
        offer = _first_offer(product) if product else {}

        if record.title == DEFAULT_TITLE:
            record.title = self._field(
                lambda: (product.get("name") or _meta(soup, "og:title") or "").strip(),
                DEFAULT_TITLE,
            )
        if record.brand == DEFAULT_BRAND:
            record.brand = self._field(lambda: self._brand_from_ld(product), DEFAULT_BRAND)
        if record.price == DEFAULT_PRICE:
            record.price = self._field(
                lambda: PriceNormalizer.to_price_string(
                    offer.get("price")
                    or offer.get("lowPrice")
                    or product.get("price")
                    or _meta(soup, "product:price:amount", "og:price:amount")
                ),
                DEFAULT_PRICE,
            )
        if not record.description:
            record.description = self._field(
                lambda: (product.get("description") or _meta(soup, "og:description", "description") or "").strip(),
                "",
            )
        if not record.images:
            record.images = self._field(
                lambda: _dedupe(_as_list(product.get("image")) or _as_list(_meta(soup, "og:image"))),
                [],
            )
        if not record.sizes:
            record.sizes = self._field(lambda: self._sizes_from_ld(product), [])
        if record.availability == self.default_availability:
            record.availability = self._field(
                lambda: self._availability_from_ld(offer, soup),
                self.default_availability,
            )

    def parse_page_text(self, soup: BeautifulSoup, record: ProductRecord) -> None:
        """Last-resort fallbacks from the document title and visible text."""
        if record.title == DEFAULT_TITLE:
            record.title = self._field(lambda: self._title_from_document(soup), DEFAULT_TITLE)
        if record.availability == self.default_availability:
            record.availability = self._field(
                lambda: self._availability_from_text(soup.get_text(" ", strip=True)),
                self.default_availability,
            )

    def _title_from_document(self, soup: BeautifulSoup) -> str:
        if soup.title and soup.title.string:
            return soup.title.string.split("|")[0].strip()
        h1 = soup.find("h1")
        return h1.get_text(strip=True) if h1 else ""

    @staticmethod
    def _brand_from_ld(product: Dict[str, Any]) -> str:
        brand = product.get("brand") if product else None
        if isinstance(brand, dict):
            brand = brand.get("name")
        return brand.strip() if isinstance(brand, str) else ""

    @staticmethod
    def _sizes_from_ld(product: Dict[str, Any]) -> List[str]:
        if not product:
            return []
        size = product.get("size")
        if isinstance(size, str):
            return [s.strip() for s in size.split(",") if s.strip()]
        return [str(s).strip() for s in size or [] if str(s).strip()]

    def _availability_from_ld(self, offer: Dict[str, Any], soup: BeautifulSoup) -> Availability:
        value = str(offer.get("availability") or _meta(soup, "product:availability", "og:availability") or "")
        value = value.lower()
        if not value:
            return self.default_availability
        if "outofstock" in value or "out of stock" in value or "soldout" in value or "discontinued" in value:
            return Availability.OUT_OF_STOCK
        if "instock" in value or "in stock" in value or "limitedavailability" in value:
            return Availability.IN_STOCK
        return self.default_availability
