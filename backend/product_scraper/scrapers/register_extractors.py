"""Register all site extractors with an extractor factory.

build_extractor_factory() is called while wiring the scraper service at
application startup.
"""

import structlog

from product_scraper.config import Settings
from product_scraper.scrapers.base import Availability
from product_scraper.scrapers.extractors import (
    AmazonExtractor,
    FlipkartExtractor,
    GenericExtractor,
    MyntraExtractor,
)
from product_scraper.scrapers.factory import ExtractorFactory

logger = structlog.get_logger(__name__)


EXTRACTORS = [
    ("myntra", MyntraExtractor),
    ("amazon", AmazonExtractor),
    ("flipkart", FlipkartExtractor),
    ("generic", GenericExtractor),
]


def register_all_extractors(factory: ExtractorFactory) -> None:
    """Register every built-in extractor with ``factory``."""
    for site_id, extractor_class in EXTRACTORS:
        try:
            factory.register_extractor(site_id, extractor_class)
        except Exception as e:
            logger.error(
                "extractor_registration_failed",
                site_id=site_id,
                error=str(e),
                exc_info=True,
            )

    logger.info(
        "all_extractors_registered",
        count=len(factory.get_registered_sites()),
        sites=factory.get_registered_sites(),
    )


def build_extractor_factory(settings: Settings) -> ExtractorFactory:
    factory = ExtractorFactory(default_availability=Availability(settings.DEFAULT_AVAILABILITY))
    register_all_extractors(factory)
    return factory
