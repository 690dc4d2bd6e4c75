"""
Scraping Package

Privacy-settings scraping infrastructure:
- Scraper contract and result types (base)
- Remote crawler client used as fallback (firecrawl)
- Config-driven rate limiting (rate_limiter)
- Config-driven per-platform scrapers registered at startup (platform_scraper)
- ScrapingEngine lives in scrapers.engine; import it from there, since it
  depends on services that themselves import scrapers.utils
"""

from .base import (
    BaseScraper,
    ScrapingContext,
    ScrapingError,
    ScrapingMetadata,
    ScrapingResult,
    ExtractedPrivacyData,
)
from .firecrawl import FirecrawlClient, FirecrawlError
from .rate_limiter import ScraperRateLimiter

__all__ = [
    "BaseScraper",
    "ScrapingContext",
    "ScrapingError",
    "ScrapingMetadata",
    "ScrapingResult",
    "ExtractedPrivacyData",
    "FirecrawlClient",
    "FirecrawlError",
    "ScraperRateLimiter",
]
