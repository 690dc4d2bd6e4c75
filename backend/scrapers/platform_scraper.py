"""
Config-driven platform scrapers registered at startup.

DOM extraction for every supported platform runs in the browser extension,
which posts its results to /api/scraping/submit. The server-side scraper for
a platform therefore only carries the platform's stored scraping config and
manifest permissions; it declines every server-side scan so the engine routes
it to the remote crawler.
"""
import logging
from typing import Any, Dict, List, Optional

from constants import SUPPORTED_PLATFORMS
from services.default_platforms import DEFAULT_PLATFORM_CONFIGS
from .base import BaseScraper, ScrapingContext, ScrapingResult

logger = logging.getLogger(__name__)



class PlatformScraper(BaseScraper):
    """Scraper for one platform slug, built from its scraping config."""

    def __init__(
        self,
        platform_slug: str,
        scraping_config: Dict[str, Any],
        permissions: Optional[List[str]] = None,
    ):
        super().__init__(scraping_config)
        self._platform = platform_slug
        self.permissions = list(permissions or [])

    @property
    def platform(self) -> str:
        return self._platform

    def can_scrape(self, context: ScrapingContext) -> bool:
        return False

    def scrape(self, context: ScrapingContext) -> ScrapingResult:
        return self.create_error_result(
            f"{self.platform} settings are extracted by the browser extension",
            'scraper_not_available',
            retryable=False,
            method=context.method,
        )

    def get_permission_patterns(self) -> List[str]:
        return self.permissions


def register_platform_scrapers(engine) -> List[str]:
    """
    Register a PlatformScraper for every supported slug.

    Uses the stored platform when one is active, else the built-in default
    config for that slug, else an empty config. Needs an app context.

    Returns:
        Registered slugs, in SUPPORTED_PLATFORMS order
    """
    defaults = {config['slug']: config for config in DEFAULT_PLATFORM_CONFIGS}

    for slug in SUPPORTED_PLATFORMS:
        platform = engine.registry.get_platform_by_slug(slug)
        if platform is not None:
            scraping_config = platform.scraping_config
            permissions = platform.manifest_permissions
        else:
            default = defaults.get(slug, {})
            scraping_config = default.get('scraping_config', {})
            permissions = default.get('manifest_permissions', [])

        engine.register_scraper(slug, PlatformScraper(slug, scraping_config, permissions))

    logger.info(f"Registered {len(SUPPORTED_PLATFORMS)} platform scrapers")
    return list(SUPPORTED_PLATFORMS)
