"""Data normalization utilities for price parsing and URL handling."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse


# Common tracking parameters to remove from product URLs
TRACKING_PARAMS = frozenset(
    [
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_content",
        "utm_term",
        "utm",
        "ref",
        "ref_",
        "source",
        "fbclid",
        "gclid",
        "mc_cid",
        "mc_eid",
    ]
)

# Trailing path segments that are actions rather than identifiers
_NON_ID_SEGMENTS = frozenset(["buy", "p", "dp", "product", "products", "index.html"])


class PriceNormalizer:
    """Price parsing utilities.

    Prices are stored as plain numeric strings without currency symbols
    or thousand separators (e.g., "Rs. 1,299" -> "1299").
    """

    _CURRENCY_TOKENS = ("rs.", "rs", "inr", "₹", "$", "€", "£", "¥", "₩", "원")

    @classmethod
    def clean_price_string(cls, raw) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "Rs. 1,299" -> 1299
        - "₹ 2,499.00" -> 2499.00
        - "$12.99" -> 12.99
        - 1299 (int/float from JSON-LD) -> 1299

        Args:
            raw: Raw price string or number

        Returns:
            Decimal price value, or None if parsing fails
        """
        if raw is None or raw == "":
            return None

        cleaned = str(raw).strip().lower()
        for token in cls._CURRENCY_TOKENS:
            cleaned = cleaned.replace(token, "")

        # Remove thousand separators (commas)
        cleaned = cleaned.replace(",", "")

        # Remove any remaining non-digit/non-decimal characters
        cleaned = re.sub(r"[^\d.]", "", cleaned).strip(".")

        if not cleaned:
            return None

        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @classmethod
    def to_price_string(cls, raw) -> Optional[str]:
        """Normalize a raw price into a currency-free numeric string.

        Whole amounts drop their decimal part ("2499.00" -> "2499").

        Returns:
            Numeric string, or None if no price could be parsed
        """
        price = cls.clean_price_string(raw)
        if price is None or price < 0:
            return None
        if price == price.to_integral_value():
            return str(price.quantize(Decimal("1")))
        return str(price.normalize())

    @staticmethod
    def extract_price_from_text(text: str) -> Optional[str]:
        """Extract first price-like number from text.

        Useful for extracting prices from HTML text nodes that
        contain additional text.

        Args:
            text: Text containing price information

        Returns:
            Extracted price as numeric string, or None if not found
        """
        if not text:
            return None

        # Look for patterns like "12,345" or "12345" or "12,345.67"
        for match in re.findall(r"\d[\d,]*\.?\d*", text):
            price = PriceNormalizer.to_price_string(match)
            if price and Decimal(price) > 0:
                return price

        return None


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and the fragment.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url.strip())
    query_params = parse_qs(parsed.query)

    # Remove tracking parameters
    filtered_params = {
        k: v for k, v in query_params.items() if k.lower() not in TRACKING_PARAMS
    }

    # Rebuild query string
    new_query = urlencode(filtered_params, doseq=True)

    # Rebuild URL
    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )


def last_path_segment(url: str) -> str:
    """Return the final meaningful path segment of a URL.

    Query string and fragment are ignored, as are trailing action segments
    such as "/buy". A bare value without slashes is returned as-is.

    Examples:
        "https://www.myntra.com/products/12345678?utm=x" -> "12345678"
        "https://www.myntra.com/tshirts/hrx/hrx-tee/12345678/buy" -> "12345678"
    """
    if not url:
        return ""

    path = urlparse(url.strip()).path if "://" in url else url.split("?")[0].split("#")[0]
    segments = [s for s in path.split("/") if s]
    while segments and segments[-1].lower() in _NON_ID_SEGMENTS:
        segments.pop()
    return segments[-1] if segments else ""
