"""
Tests for the outbound scraper rate limiter.

A fake clock and sleep keep the sliding window deterministic.
"""

import pytest

from scrapers.rate_limiter import ScraperRateLimiter, WINDOW_SECONDS


class FakeTime:
    """Clock whose sleep() advances the clock."""

    def __init__(self, now=0.0):
        self.now = now
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


# =============================================================================
# Limits lookup
# =============================================================================

class TestLimits:

    def test_bundled_config_domain_override(self):
        limiter = ScraperRateLimiter()

        assert limiter._get_limits('api.firecrawl.dev')['requests_per_minute'] == 30
        assert limiter._get_limits('api.firecrawl.dev')['requests_per_hour'] == 1000
        assert limiter._get_limits('www.facebook.com')['requests_per_minute'] == 3

    def test_unknown_domain_uses_defaults(self):
        limiter = ScraperRateLimiter()

        assert limiter._get_limits('example.org') == {
            'requests_per_minute': 10,
            'requests_per_hour': 100,
        }

    def test_missing_config_file_falls_back(self, tmp_path):
        limiter = ScraperRateLimiter(config_path=str(tmp_path / 'nope.yaml'))

        assert limiter._get_limits('example.org')['requests_per_minute'] == 10

    def test_route_override(self, tmp_path):
        config = tmp_path / 'limits.yaml'
        config.write_text(
            "defaults:\n"
            "  requests_per_minute: 10\n"
            "domains:\n"
            "  api.example.com:\n"
            "    requests_per_minute: 20\n"
            "    routes:\n"
            "      search:\n"
            "        requests_per_minute: 2\n"
        )
        limiter = ScraperRateLimiter(config_path=str(config))

        assert limiter._get_limits('api.example.com')['requests_per_minute'] == 20
        assert limiter._get_limits('api.example.com', 'search')['requests_per_minute'] == 2

    def test_constructor_override_wins(self):
        limiter = ScraperRateLimiter(requests_per_minute=2)

        assert limiter._get_limits('api.firecrawl.dev')['requests_per_minute'] == 2
        assert limiter._get_limits('api.firecrawl.dev', 'crawl_status')['requests_per_minute'] == 2


# =============================================================================
# Sliding window
# =============================================================================

class TestSlidingWindow:

    def test_under_limit_does_not_sleep(self, fake_time):
        limiter = ScraperRateLimiter(requests_per_minute=3, clock=fake_time.clock, sleep=fake_time.sleep)

        for _ in range(3):
            assert limiter.wait('example.org') == 0.0
        assert fake_time.sleeps == []

    def test_full_window_sleeps_until_oldest_expires(self, fake_time):
        limiter = ScraperRateLimiter(requests_per_minute=2, clock=fake_time.clock, sleep=fake_time.sleep)

        limiter.wait('example.org')
        fake_time.now += 10
        limiter.wait('example.org')
        fake_time.now += 5

        slept = limiter.wait('example.org')

        # Oldest request was 15s ago
        assert slept == pytest.approx(WINDOW_SECONDS - 15 + 0.01)
        assert len(fake_time.sleeps) == 1

    def test_domains_are_independent(self, fake_time):
        limiter = ScraperRateLimiter(requests_per_minute=1, clock=fake_time.clock, sleep=fake_time.sleep)

        limiter.wait('a.example')
        assert limiter.wait('b.example') == 0.0
        assert limiter.is_allowed('a.example') is False
        assert limiter.is_allowed('a.example', 'other-route') is True

    def test_record_and_status(self, fake_time):
        limiter = ScraperRateLimiter(requests_per_minute=5, clock=fake_time.clock, sleep=fake_time.sleep)
        limiter.record('example.org')
        limiter.record('example.org')
        fake_time.now += WINDOW_SECONDS + 1
        limiter.record('example.org')

        status = limiter.get_status('example.org')

        assert status['minute'] == {'current': 1, 'limit': 5}
        assert status['hour']['current'] == 3
        assert status['is_allowed'] is True
