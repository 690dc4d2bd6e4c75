"""
Firecrawl Client - Remote crawler used as the scraping fallback

When the browser extension cannot scrape a platform, the engine fetches the
platform's privacy page through Firecrawl and pulls what it can out of the
returned markdown/HTML.

API:
- Crawl: POST {base}/v0/crawl  -> page data, or {"jobId": ...}
- Job status: GET {base}/v0/crawl/status/{jobId} -> {"status", "data", "error"}

Behaviour:
- Responses cached per (url, formats, onlyMainContent) for cache_ttl_ms
- Sliding-window rate limit (requests_per_minute) via ScraperRateLimiter
- Retries 429/5xx and network errors with jittered exponential backoff,
  honouring Retry-After
- Extraction is keyword based; results carry low confidence (max 0.7)

Usage:
    from scrapers.firecrawl import FirecrawlClient

    client = FirecrawlClient(api_key=os.environ['FIRECRAWL_API_KEY'])
    result = client.scrape_privacy_page('https://myaccount.google.com/privacy', context)
"""

import logging
import random
import re
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from constants import SCRAPING_METHOD_FIRECRAWL
from scrapers.base import (
    ExtractedPrivacyData,
    ScrapingContext,
    ScrapingMetadata,
    ScrapingResult,
    count_settings,
)
from scrapers.rate_limiter import ScraperRateLimiter
from scrapers.utils.hashing import canonical_json
from utils.cache import TTLCache

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_BASE_URL = "https://api.firecrawl.dev"

JOB_POLL_INTERVAL_SECONDS = 2.0
JOB_MAX_WAIT_SECONDS = 60.0

# Firecrawl extraction is indirect: never claim more than this
MAX_CONFIDENCE = 0.7
EXPECTED_MIN_SETTINGS = 5
DEFAULT_ELEMENTS_EXPECTED = 10

CONTEXT_CHARS = 100

SETTING_PATTERNS = [
    ('ad-personalization', re.compile(r'ad personalization|advertising personalization|personalized ads', re.I)),
    ('location-tracking', re.compile(r'location tracking|location history|track location', re.I)),
    ('activity-tracking', re.compile(r'activity tracking|track activity|web activity', re.I)),
    ('data-sharing', re.compile(r'data sharing|share data|third party', re.I)),
    ('analytics', re.compile(r'analytics|tracking analytics|usage analytics', re.I)),
    ('cookies', re.compile(r'cookies|cookie preferences|cookie settings', re.I)),
]

ENABLED_WORDS = re.compile(r'\b(enabled|on|active|allow|allowed|yes|true)\b', re.I)
DISABLED_WORDS = re.compile(r'\b(disabled|off|inactive|block|blocked|no|false)\b', re.I)

TOGGLE_PATTERNS = [
    re.compile(r'<input[^>]*type="checkbox"[^>]*checked', re.I),
    re.compile(r'<[^>]*role="switch"[^>]*aria-checked="true"', re.I),
    re.compile(r'<[^>]*aria-pressed="true"', re.I),
]


class FirecrawlError(Exception):
    """Base exception for Firecrawl errors."""
    pass


class FirecrawlAPIError(FirecrawlError):
    """Non-success HTTP response from Firecrawl."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FirecrawlJobError(FirecrawlError):
    """An asynchronous crawl job reported failure."""
    pass


class FirecrawlTimeoutError(FirecrawlError):
    """An asynchronous crawl job did not finish in time."""
    pass


# =============================================================================
# Extraction
# =============================================================================

def infer_setting_value(context: str) -> Optional[bool]:
    """True/False from on/off wording near a match, None if undecidable."""
    if ENABLED_WORDS.search(context):
        return True
    if DISABLED_WORDS.search(context):
        return False
    return None


def extract_settings_from_text(text: str) -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    for key, pattern in SETTING_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        start = max(0, match.start() - CONTEXT_CHARS)
        end = min(len(text), match.end() + CONTEXT_CHARS)
        settings[key] = infer_setting_value(text[start:end])
    return settings


def extract_settings_from_html(html: str) -> Dict[str, Any]:
    """
    Count switched-on toggles in raw HTML.

    Individual toggle states cannot be attributed to settings from markup
    alone, so only the count is reported.
    """
    toggle_count = sum(len(pattern.findall(html)) for pattern in TOGGLE_PATTERNS)
    if toggle_count == 0:
        return {}
    return {
        'detected-toggles': toggle_count,
        'toggle-count': toggle_count,
    }


def extract_privacy_settings(crawl_data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Markdown keywords first; HTML toggle counting only if that found nothing."""
    settings: Dict[str, Dict[str, Any]] = {}

    markdown = crawl_data.get('markdown')
    if markdown:
        found = extract_settings_from_text(markdown)
        if found:
            settings['extracted'] = found

    html = crawl_data.get('html')
    if html and not settings:
        found = extract_settings_from_html(html)
        if found:
            settings['html-extracted'] = found

    return settings


def calculate_completion_rate(settings: Dict[str, Dict[str, Any]]) -> float:
    return min(count_settings(settings) / EXPECTED_MIN_SETTINGS, 1.0)


def calculate_confidence_score(settings: Dict[str, Dict[str, Any]]) -> float:
    found = count_settings(settings)
    if found == 0:
        return 0.0
    if found < 3:
        return 0.3
    if found < 5:
        return 0.5
    return MAX_CONFIDENCE


# =============================================================================
# Client
# =============================================================================

class FirecrawlClient:
    """
    Firecrawl API client.

    Example:
        client = FirecrawlClient(api_key='fc-...')
        if client.test_connection():
            result = client.scrape_privacy_page(url, context)
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 30,
        requests_per_minute: int = 30,
        max_retries: int = 3,
        backoff_base_ms: int = 500,
        cache_ttl_ms: int = 60 * 60 * 1000,
        rate_limiter: Optional[ScraperRateLimiter] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            api_key: Firecrawl API key
            base_url: API root, defaults to https://api.firecrawl.dev
            timeout: Per-request timeout in seconds
            requests_per_minute: Outbound limit (min 1)
            max_retries: Retries after the first attempt (min 0)
            backoff_base_ms: Backoff base (min 50)
            cache_ttl_ms: Crawl cache lifetime (min 60s)
        """
        if not api_key:
            raise FirecrawlError("Firecrawl API key is required")

        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout
        self.requests_per_minute = max(1, requests_per_minute)
        self.max_retries = max(0, max_retries)
        self.backoff_base_ms = max(50, backoff_base_ms)
        self.cache_ttl_ms = max(60_000, cache_ttl_ms)

        self._domain = urlparse(self.base_url).hostname or self.base_url
        self._rate_limiter = rate_limiter or ScraperRateLimiter(requests_per_minute=self.requests_per_minute)
        self._cache = TTLCache(maxsize=200, ttl=self.cache_ttl_ms / 1000)
        self._sleep = sleep

        self._session = session or requests.Session()
        self._session.headers.update({
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}',
        })

        logger.info(f"Firecrawl client initialized ({self.base_url}, {self.requests_per_minute} rpm)")

    # =========================================================================
    # Scraping
    # =========================================================================

    def scrape_privacy_page(
        self,
        url: str,
        context: ScrapingContext,
        options: Optional[Dict[str, Any]] = None,
    ) -> ScrapingResult:
        """
        Crawl one privacy page and extract settings from it.

        Never raises: crawl failures come back as failed results with
        code 'firecrawl_error' (job failed) or 'firecrawl_exception'.
        """
        start_time = datetime.utcnow()
        scan_id = f"firecrawl_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        crawl_options = {
            'formats': ['markdown', 'html'],
            'onlyMainContent': True,
            'waitFor': 3000,
            'headers': context.headers,
        }
        crawl_options.update(options or {})

        try:
            crawl_data = self.crawl_url(url, crawl_options)
        except FirecrawlJobError as e:
            return self._error_result(str(e) or 'Firecrawl request failed', 'firecrawl_error', start_time, scan_id)
        except (FirecrawlError, requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Firecrawl scraping error for {url}: {e}")
            return self._error_result(str(e) or 'Unknown Firecrawl error', 'firecrawl_exception', start_time, scan_id)

        extracted = extract_privacy_settings(crawl_data)
        page_metadata = crawl_data.get('metadata') or {}

        return ScrapingResult(
            success=True,
            data=ExtractedPrivacyData(
                platform_id=context.platform_id,
                extracted_settings=extracted,
                raw={
                    'html': crawl_data.get('html'),
                    'metadata': {
                        'url': page_metadata.get('url') or url,
                        'title': page_metadata.get('title'),
                        'description': page_metadata.get('description'),
                        'firecrawlJobId': page_metadata.get('jobId'),
                    },
                },
            ),
            metadata=ScrapingMetadata.started(
                SCRAPING_METHOD_FIRECRAWL,
                start_time,
                scan_id=scan_id,
                user_agent=context.user_agent,
                completion_rate=calculate_completion_rate(extracted),
                confidence_score=calculate_confidence_score(extracted),
                elements_found=count_settings(extracted),
                elements_expected=DEFAULT_ELEMENTS_EXPECTED,
            ),
        )

    def crawl_url(self, url: str, options: Dict[str, Any]) -> Dict[str, Any]:
        """
        Crawl a URL, returning Firecrawl's page data.

        Raises:
            FirecrawlJobError: The crawl job reported failure
            FirecrawlTimeoutError: The crawl job did not finish in time
            FirecrawlAPIError: Non-retryable HTTP error
            FirecrawlError: Retries exhausted
        """
        cache_key = canonical_json({
            'url': url,
            'formats': options.get('formats'),
            'onlyMainContent': options.get('onlyMainContent'),
        })
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Firecrawl cache hit for {url}")
            return cached

        body = {
            'url': url,
            'crawlerOptions': {
                'formats': options.get('formats') or ['markdown'],
                'onlyMainContent': options.get('onlyMainContent', True),
                'includeTags': options.get('includeTags'),
                'excludeTags': options.get('excludeTags'),
                'waitFor': options.get('waitFor') or 0,
            },
            'pageOptions': {
                'headers': options.get('headers'),
            },
        }

        result = self._post_with_retries('/v0/crawl', body)

        if result.get('jobId'):
            data = self._wait_for_job(result['jobId'])
        else:
            data = result

        self._cache.set(cache_key, data)
        return data

    def _post_with_retries(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        attempt = 0
        last_error: Optional[Exception] = None

        while attempt <= self.max_retries:
            self._rate_limiter.wait(self._domain, 'crawl')
            try:
                response = self._session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                last_error = e
                attempt += 1
                if attempt > self.max_retries:
                    break
                backoff = self._jittered_backoff(attempt)
                logger.warning(
                    f"Firecrawl request attempt {attempt}/{self.max_retries + 1} failed: {e}. "
                    f"Retrying in {backoff:.2f}s"
                )
                self._sleep(backoff)
                continue

            if response.ok:
                return response.json()

            if response.status_code == 429 or response.status_code >= 500:
                last_error = FirecrawlAPIError(
                    f"Firecrawl API error: {response.status_code} {response.reason}",
                    status_code=response.status_code,
                )
                attempt += 1
                if attempt > self.max_retries:
                    break
                retry_after = _parse_retry_after(response.headers.get('Retry-After'))
                backoff = retry_after if retry_after is not None else self._jittered_backoff(attempt)
                logger.warning(f"Firecrawl returned {response.status_code}, retrying in {backoff:.2f}s")
                self._sleep(backoff)
                continue

            raise FirecrawlAPIError(
                f"Firecrawl API error: {response.reason} - {_error_message(response)}",
                status_code=response.status_code,
            )

        raise FirecrawlError(f"Firecrawl fetch failed: {last_error}")

    def _wait_for_job(self, job_id: str, max_wait: float = JOB_MAX_WAIT_SECONDS) -> Dict[str, Any]:
        polls = max(1, int(max_wait / JOB_POLL_INTERVAL_SECONDS))

        for _ in range(polls):
            self._rate_limiter.wait(self._domain, 'crawl_status')
            response = self._session.get(f"{self.base_url}/v0/crawl/status/{job_id}", timeout=self.timeout)
            if not response.ok:
                raise FirecrawlAPIError(
                    f"Firecrawl job status error: {response.reason}",
                    status_code=response.status_code,
                )

            status = response.json()
            if status.get('status') == 'completed':
                return status.get('data') or {}
            if status.get('status') == 'failed':
                raise FirecrawlJobError(status.get('error') or 'Job failed')

            self._sleep(JOB_POLL_INTERVAL_SECONDS)

        raise FirecrawlTimeoutError(f"Firecrawl job timeout ({job_id})")

    def _jittered_backoff(self, attempt: int) -> float:
        """Seconds: base * 2^(attempt-1) plus up to base/2 of jitter."""
        base = self.backoff_base_ms * (2 ** max(0, attempt - 1))
        jitter = random.random() * (self.backoff_base_ms / 2)
        return (base + jitter) / 1000

    def _error_result(self, message: str, code: str, start_time: datetime, scan_id: str) -> ScrapingResult:
        return ScrapingResult.failure(
            code,
            message,
            ScrapingMetadata.started(SCRAPING_METHOD_FIRECRAWL, start_time, scan_id=scan_id),
            type='network',
            retryable=True,
        )

    # =========================================================================
    # Health
    # =========================================================================

    def test_connection(self) -> bool:
        """POST a trivial crawl and report whether Firecrawl accepted it."""
        try:
            response = self._session.post(
                f"{self.base_url}/v0/crawl",
                json={
                    'url': 'https://httpbin.org/json',
                    'crawlerOptions': {'formats': ['markdown'], 'onlyMainContent': True},
                },
                timeout=self.timeout,
            )
            return response.ok
        except requests.exceptions.RequestException as e:
            logger.warning(f"Firecrawl connection test failed: {e}")
            return False

    def get_cache_stats(self) -> Dict[str, Any]:
        return self._cache.stats()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_message(response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return 'Unknown error'
    if isinstance(payload, dict):
        return payload.get('error') or 'Unknown error'
    return 'Unknown error'


def build_firecrawl_client(config) -> Optional[FirecrawlClient]:
    """FirecrawlClient from a Flask config mapping, or None without an API key."""
    api_key = config.get('FIRECRAWL_API_KEY')
    if not api_key:
        return None

    return FirecrawlClient(
        api_key=api_key,
        base_url=config.get('FIRECRAWL_BASE_URL'),
        timeout=config.get('SCRAPING_TIMEOUTS', {}).get('firecrawl', 60),
        requests_per_minute=config.get('FIRECRAWL_REQUESTS_PER_MINUTE', 30),
        max_retries=config.get('FIRECRAWL_MAX_RETRIES', 3),
        backoff_base_ms=config.get('FIRECRAWL_BACKOFF_BASE_MS', 500),
        cache_ttl_ms=config.get('FIRECRAWL_CACHE_TTL_MS', 60 * 60 * 1000),
    )
