"""Registry of site extractors keyed by site id."""

from typing import Dict, Type

import structlog

from product_scraper.core.exceptions import ExtractorNotFoundError
from product_scraper.scrapers.base import Availability, BaseExtractor


logger = structlog.get_logger(__name__)


class ExtractorFactory:
    """Factory for creating and caching extractor instances.

    Extractors are stateless, so one instance per site is created lazily
    and shared by every request for that site.
    """

    def __init__(self, default_availability: Availability = Availability.UNKNOWN):
        """Initialize the extractor factory.

        Args:
            default_availability: Availability reported when a page gives no stock signal
        """
        self.default_availability = default_availability
        self._registry: Dict[str, Type[BaseExtractor]] = {}
        self._instances: Dict[str, BaseExtractor] = {}

    def register_extractor(self, site_id: str, extractor_class: Type[BaseExtractor]) -> None:
        """Register an extractor class for a site.

        Args:
            site_id: Site identifier (e.g., "myntra")
            extractor_class: Extractor class (must inherit from BaseExtractor)
        """
        if not issubclass(extractor_class, BaseExtractor):
            raise ValueError(f"Extractor class must inherit from BaseExtractor: {extractor_class}")

        self._registry[site_id] = extractor_class
        self._instances.pop(site_id, None)
        logger.info("extractor_registered", site_id=site_id, extractor=extractor_class.__name__)

    def get(self, site_id: str) -> BaseExtractor:
        """Get the extractor for a site.

        Raises:
            ExtractorNotFoundError: If no extractor is registered for the site
        """
        instance = self._instances.get(site_id)
        if instance is not None:
            return instance

        extractor_class = self._registry.get(site_id)
        if extractor_class is None:
            logger.warning("extractor_not_found", site_id=site_id)
            raise ExtractorNotFoundError(site_id)

        instance = extractor_class(default_availability=self.default_availability)
        self._instances[site_id] = instance
        return instance

    def get_registered_sites(self) -> list[str]:
        """Get list of registered site ids."""
        return list(self._registry.keys())

    def has_extractor(self, site_id: str) -> bool:
        return site_id in self._registry
