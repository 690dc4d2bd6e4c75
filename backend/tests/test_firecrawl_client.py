"""
Tests for the Firecrawl fallback client

These tests use mocking to avoid hitting the real API.
"""

import os
import uuid

import pytest
import requests
from unittest.mock import Mock, patch

from scrapers.base import ScrapingContext
from scrapers.firecrawl import (
    FirecrawlClient,
    FirecrawlError,
    build_firecrawl_client,
    calculate_confidence_score,
    extract_privacy_settings,
    extract_settings_from_html,
    infer_setting_value,
)


PRIVACY_MARKDOWN = (
    "Ad personalization is enabled for your account."
    + " " * 150
    + "Location history is off."
)


# =============================================================================
# Fixtures
# =============================================================================

def _response(status_code=200, payload=None, headers=None, reason='OK'):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = reason
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def http():
    """Stand-in for requests.Session."""
    session = Mock()
    session.headers = {}
    return session


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def rate_limiter():
    limiter = Mock()
    limiter.wait.return_value = 0.0
    return limiter


@pytest.fixture
def client(http, sleep, rate_limiter):
    return FirecrawlClient(
        api_key='fc-test',
        max_retries=2,
        session=http,
        sleep=sleep,
        rate_limiter=rate_limiter,
    )


@pytest.fixture
def context():
    return ScrapingContext(userId='user-1', platformId=str(uuid.uuid4()), method='firecrawl', userAgent='pytest')


# =============================================================================
# Extraction
# =============================================================================

class TestExtraction:

    def test_word_boundaries(self):
        # "Location" contains "on" but is not the word "on"
        assert infer_setting_value("Location settings") is None
        assert infer_setting_value("tracking is ON") is True
        assert infer_setting_value("Blocked by default") is False

    def test_markdown_keywords(self):
        settings = extract_privacy_settings({'markdown': PRIVACY_MARKDOWN})

        assert settings == {
            'extracted': {
                'ad-personalization': True,
                'location-tracking': False,
            }
        }

    def test_html_used_only_when_markdown_finds_nothing(self):
        html = '<input type="checkbox" checked><div role="switch" aria-checked="true"></div>'

        assert extract_settings_from_html(html) == {'detected-toggles': 2, 'toggle-count': 2}
        assert extract_privacy_settings({'markdown': 'Nothing relevant here', 'html': html}) == {
            'html-extracted': {'detected-toggles': 2, 'toggle-count': 2}
        }
        assert 'html-extracted' not in extract_privacy_settings({'markdown': PRIVACY_MARKDOWN, 'html': html})

    @pytest.mark.parametrize('count,expected', [(0, 0.0), (2, 0.3), (4, 0.5), (6, 0.7)])
    def test_confidence_is_capped(self, count, expected):
        settings = {'extracted': {f's{i}': True for i in range(count)}} if count else {}
        assert calculate_confidence_score(settings) == expected


# =============================================================================
# Client
# =============================================================================

class TestFirecrawlClient:

    def test_requires_api_key(self):
        with pytest.raises(FirecrawlError):
            FirecrawlClient(api_key='')

    def test_sets_auth_header(self, client, http):
        assert http.headers['Authorization'] == 'Bearer fc-test'

    def test_scrape_success(self, client, http, context, rate_limiter):
        http.post.return_value = _response(payload={
            'markdown': PRIVACY_MARKDOWN,
            'html': '<html></html>',
            'metadata': {'title': 'Privacy'},
        })

        result = client.scrape_privacy_page('https://myaccount.google.com/privacy', context)

        assert result.success is True
        assert result.data.platform_id == context.platform_id
        assert result.data.extracted_settings['extracted']['ad-personalization'] is True
        assert result.data.raw['metadata']['url'] == 'https://myaccount.google.com/privacy'
        assert result.data.raw['metadata']['title'] == 'Privacy'
        assert result.metadata.method == 'firecrawl'
        assert result.metadata.scan_id.startswith('firecrawl_')
        assert result.metadata.elements_found == 2
        assert result.metadata.elements_expected == 10
        assert result.metadata.completion_rate == pytest.approx(0.4)
        assert result.metadata.confidence_score == 0.3
        rate_limiter.wait.assert_called_with('api.firecrawl.dev', 'crawl')

    def test_request_body(self, client, http, context):
        http.post.return_value = _response(payload={'markdown': ''})

        client.scrape_privacy_page('https://example.com/privacy', context, options={'waitFor': 500})

        url = http.post.call_args.args[0]
        body = http.post.call_args.kwargs['json']
        assert url == 'https://api.firecrawl.dev/v0/crawl'
        assert body['url'] == 'https://example.com/privacy'
        assert body['crawlerOptions']['formats'] == ['markdown', 'html']
        assert body['crawlerOptions']['waitFor'] == 500

    def test_responses_are_cached(self, client, http, context):
        http.post.return_value = _response(payload={'markdown': PRIVACY_MARKDOWN})

        client.scrape_privacy_page('https://example.com/privacy', context)
        client.scrape_privacy_page('https://example.com/privacy', context)

        assert http.post.call_count == 1
        assert client.get_cache_stats()['hits'] == 1

    def test_async_job_is_polled(self, client, http, context, sleep):
        http.post.return_value = _response(payload={'jobId': 'job-1'})
        http.get.side_effect = [
            _response(payload={'status': 'active'}),
            _response(payload={'status': 'completed', 'data': {'markdown': PRIVACY_MARKDOWN}}),
        ]

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is True
        assert http.get.call_args.args[0] == 'https://api.firecrawl.dev/v0/crawl/status/job-1'
        sleep.assert_called_once_with(2.0)

    def test_failed_job(self, client, http, context):
        http.post.return_value = _response(payload={'jobId': 'job-2'})
        http.get.return_value = _response(payload={'status': 'failed', 'error': 'Blocked by robots.txt'})

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is False
        assert result.error.code == 'firecrawl_error'
        assert result.error.message == 'Blocked by robots.txt'

    def test_job_timeout(self, client, http, context, sleep):
        http.post.return_value = _response(payload={'jobId': 'job-3'})
        http.get.return_value = _response(payload={'status': 'active'})

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is False
        assert result.error.code == 'firecrawl_exception'
        assert 'job-3' in result.error.message
        assert http.get.call_count == 30

    def test_retry_after_is_honoured(self, client, http, context, sleep):
        http.post.side_effect = [
            _response(429, headers={'Retry-After': '3'}, reason='Too Many Requests'),
            _response(payload={'markdown': PRIVACY_MARKDOWN}),
        ]

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is True
        sleep.assert_called_once_with(3.0)

    def test_server_errors_exhaust_retries(self, client, http, context, sleep):
        http.post.return_value = _response(503, reason='Service Unavailable')

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is False
        assert result.error.code == 'firecrawl_exception'
        assert result.error.type == 'network'
        assert result.error.retryable is True
        assert http.post.call_count == 3
        assert sleep.call_count == 2

    def test_client_errors_are_not_retried(self, client, http, context):
        http.post.return_value = _response(401, payload={'error': 'Invalid API key'}, reason='Unauthorized')

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is False
        assert 'Invalid API key' in result.error.message
        assert http.post.call_count == 1

    def test_network_errors_are_retried(self, client, http, context):
        http.post.side_effect = [
            requests.exceptions.ConnectionError('reset'),
            _response(payload={'markdown': PRIVACY_MARKDOWN}),
        ]

        result = client.scrape_privacy_page('https://example.com/privacy', context)

        assert result.success is True
        assert http.post.call_count == 2

    def test_backoff_grows_exponentially(self, client):
        with patch('scrapers.firecrawl.random.random', return_value=0.0):
            assert client._jittered_backoff(1) == pytest.approx(0.5)
            assert client._jittered_backoff(3) == pytest.approx(2.0)

        with patch('scrapers.firecrawl.random.random', return_value=1.0):
            assert client._jittered_backoff(1) == pytest.approx(0.75)

    def test_connection_check(self, client, http):
        http.post.return_value = _response(200)
        assert client.test_connection() is True

        http.post.side_effect = requests.exceptions.Timeout('slow')
        assert client.test_connection() is False


class TestBuildFirecrawlClient:

    def test_no_key_no_client(self):
        assert build_firecrawl_client({'FIRECRAWL_API_KEY': None}) is None

    def test_reads_config(self):
        client = build_firecrawl_client({
            'FIRECRAWL_API_KEY': 'fc-key',
            'FIRECRAWL_BASE_URL': 'https://firecrawl.internal/',
            'FIRECRAWL_MAX_RETRIES': 5,
            'SCRAPING_TIMEOUTS': {'firecrawl': 45},
        })

        assert client.base_url == 'https://firecrawl.internal'
        assert client.max_retries == 5
        assert client.timeout == 45


@pytest.mark.integration
class TestLiveFirecrawl:

    def test_connection(self):
        client = FirecrawlClient(api_key=os.environ['FIRECRAWL_API_KEY'], max_retries=1)

        assert client.test_connection() is True
