"""Myntra product page extractor.

Myntra renders product data client-side from a ``window.__myx`` state
blob, so that is read first. Visible-markup selectors and the generic
structured-data rules fill whatever the blob did not provide.
"""

import json
import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup

from product_scraper.core.exceptions import InvalidTargetError
from product_scraper.scrapers.base import DEFAULT_BRAND, DEFAULT_PRICE, DEFAULT_TITLE, Availability, ProductRecord
from product_scraper.scrapers.extractors.generic import GenericExtractor
from product_scraper.scrapers.utils.normalizer import PriceNormalizer, last_path_segment

_MYX_PATTERN = re.compile(r"window\.__myx\s*=\s*(\{.*?\})\s*;?\s*</script>", re.DOTALL)
_BACKGROUND_URL = re.compile(r"url\([\"']?([^\"')]+)[\"']?\)")
_STYLE_ID = re.compile(r"^\d{5,}$")

TITLE_SELECTORS = [".pdp-name", ".pdp-title h1", ".title-container h1", "h1.title"]
BRAND_SELECTORS = [".pdp-title .brand-name", "h1.pdp-title", ".brand-name", ".pdp-product-brand"]
PRICE_SELECTORS = [
    ".pdp-price .selling-price strong",
    ".pdp-price strong",
    ".pdp-price",
    "span[class*='discountedPrice']",
]
DESCRIPTION_SELECTORS = [".pdp-product-description-content", ".pdp-product-description"]


class MyntraExtractor(GenericExtractor):
    """Extractor for www.myntra.com product detail pages."""

    site_id = "myntra"
    site_name = "Myntra"
    domains = ("myntra.com",)
    base_url = "https://www.myntra.com/products"
    wait_selector = "h1, .pdp-name, .pdp-title, div[class*='price']"

    def parse(self, soup: BeautifulSoup, html: str, record: ProductRecord) -> None:
        pdp = self._field(lambda: self._pdp_data(html), {})
        if pdp:
            self._parse_pdp_data(pdp, record)
        self._parse_markup(soup, record)
        self.parse_structured_data(soup, record)
        self.parse_page_text(soup, record)

    def derive_key(self, url: str) -> str:
        """Myntra keys products by their numeric style id."""
        value = (url or "").strip()
        if _STYLE_ID.match(value):
            return value
        path = value.split("?")[0].split("#")[0]
        for segment in reversed([s for s in path.split("/") if s]):
            if _STYLE_ID.match(segment):
                return segment
        segment = last_path_segment(value)
        if not segment:
            raise InvalidTargetError(f"Cannot derive a Myntra style id from '{url}'")
        return segment

    @staticmethod
    def _pdp_data(html: str) -> Dict[str, Any]:
        match = _MYX_PATTERN.search(html)
        if not match:
            return {}
        return json.loads(match.group(1)).get("pdpData") or {}

    def _parse_pdp_data(self, pdp: Dict[str, Any], record: ProductRecord) -> None:
        record.title = self._field(lambda: pdp["name"].strip(), record.title)
        record.brand = self._field(lambda: pdp["brand"]["name"].strip(), record.brand)
        record.price = self._field(
            lambda: PriceNormalizer.to_price_string(pdp["price"].get("discounted") or pdp["price"].get("mrp")),
            record.price,
        )
        record.description = self._field(lambda: self._description_from_pdp(pdp), record.description)
        record.images = self._field(lambda: self._images_from_pdp(pdp), record.images)

        sizes = pdp.get("sizes") or []
        record.sizes = self._field(
            lambda: [s["label"] for s in sizes if s.get("available") and s.get("label")],
            record.sizes,
        )
        if pdp.get("flags", {}).get("outOfStock") or (sizes and not any(s.get("available") for s in sizes)):
            record.availability = Availability.OUT_OF_STOCK
        elif record.sizes:
            record.availability = Availability.IN_STOCK

    @staticmethod
    def _description_from_pdp(pdp: Dict[str, Any]) -> str:
        parts = []
        for detail in pdp.get("productDetails") or []:
            text = BeautifulSoup(detail.get("description") or "", "html.parser").get_text(" ", strip=True)
            if text:
                parts.append(text)
        return "\n".join(parts)

    @staticmethod
    def _images_from_pdp(pdp: Dict[str, Any]) -> List[str]:
        images = []
        for album in (pdp.get("media") or {}).get("albums") or []:
            for image in album.get("images") or []:
                url = image.get("imageURL") or image.get("secureSrc")
                if url and url not in images:
                    images.append(url)
        return images

    def _parse_markup(self, soup: BeautifulSoup, record: ProductRecord) -> None:
        if record.title == DEFAULT_TITLE:
            record.title = self._field(lambda: self._select_text(soup, TITLE_SELECTORS), DEFAULT_TITLE)
        if record.brand == DEFAULT_BRAND:
            record.brand = self._field(lambda: self._select_text(soup, BRAND_SELECTORS), DEFAULT_BRAND)
        if record.price == DEFAULT_PRICE:
            record.price = self._field(
                lambda: PriceNormalizer.extract_price_from_text(self._select_text(soup, PRICE_SELECTORS)),
                DEFAULT_PRICE,
            )
        if not record.description:
            record.description = self._field(lambda: self._select_text(soup, DESCRIPTION_SELECTORS), "")
        if not record.images:
            record.images = self._field(lambda: self._images_from_grid(soup), [])
        if not record.sizes:
            record.sizes = self._field(lambda: self._sizes_from_buttons(soup), [])
        if soup.select_one(".size-buttons-out-of-stock"):
            record.availability = Availability.OUT_OF_STOCK

    @staticmethod
    def _images_from_grid(soup: BeautifulSoup) -> List[str]:
        images = []
        for element in soup.select(".image-grid-image"):
            match = _BACKGROUND_URL.search(element.get("style") or "")
            if match and match.group(1) not in images:
                images.append(match.group(1))
        return images

    @staticmethod
    def _sizes_from_buttons(soup: BeautifulSoup) -> List[str]:
        sizes = []
        for button in soup.select(".size-buttons-size-button"):
            if any("disabled" in cls for cls in button.get("class", [])):
                continue
            label = button.select_one(".size-buttons-unified-size") or button
            text = label.get_text(" ", strip=True)
            if text and text not in sizes:
                sizes.append(text)
        return sizes
