"""
Test doubles shared across the scraping tests.
"""
from datetime import datetime

from scrapers.base import BaseScraper


GOOGLE_SETTINGS = {
    'activity': {
        'web-activity': True,
        'location-history': False,
    },
    'ads': {
        'ad-personalization': True,
        'youtube-history': False,
    },
}


class FakeScraper(BaseScraper):
    """
    Scraper returning canned settings.

    block: threading.Event the scrape waits on before returning
    error: exception raised from scrape()
    """

    PLATFORM = "google"

    def __init__(self, scraping_config, settings=None, block=None, error=None, firecrawl=False):
        super().__init__(scraping_config)
        self.settings = settings if settings is not None else GOOGLE_SETTINGS
        self.block = block
        self.error = error
        self.firecrawl = firecrawl
        self.calls = 0

    def scrape(self, context):
        self.calls += 1
        start = datetime.utcnow()
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return self.create_success_result(self.settings, start, method=context.method)

    def get_permission_patterns(self):
        return ['*://myaccount.google.com/*']

    def supports_firecrawl(self):
        return self.firecrawl
