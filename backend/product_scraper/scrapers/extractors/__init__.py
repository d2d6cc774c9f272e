"""Site extractors."""

from product_scraper.scrapers.extractors.amazon import AmazonExtractor
from product_scraper.scrapers.extractors.flipkart import FlipkartExtractor
from product_scraper.scrapers.extractors.generic import GenericExtractor
from product_scraper.scrapers.extractors.myntra import MyntraExtractor

__all__ = [
    "AmazonExtractor",
    "FlipkartExtractor",
    "GenericExtractor",
    "MyntraExtractor",
]
