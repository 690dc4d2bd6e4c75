"""
Scraper Rate Limiter - Domain-keyed rate limiting for outbound scraping.

Separate from any API rate limiting on our own endpoints: this throttles
the requests we make to third parties (remote crawler, platform pages).

Limits come from rate_limits.yaml (defaults plus per-domain and per-route
overrides). A constructor override pins requests-per-minute for every
domain, which is how the remote crawler client applies its configured
FIRECRAWL_REQUESTS_PER_MINUTE.

Key format: scrape:{domain}:{route_group}
"""
import logging
import threading
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class ScraperRateLimiter:
    """Sliding-window rate limiter with domain/route granularity."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        requests_per_minute: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            config_path: Path to YAML config file.
                        Defaults to rate_limits.yaml next to this module
            requests_per_minute: Overrides the configured per-minute limit
                        for every domain
            clock: Time source (seconds)
            sleep: Sleep function, replaceable in tests
        """
        self.config_path = config_path or self._default_config_path()
        self.requests_per_minute = max(1, requests_per_minute) if requests_per_minute else None
        self._clock = clock
        self._sleep = sleep
        self._config = None
        self._memory_store: Dict[str, List[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def _default_config_path(self) -> str:
        return str(Path(__file__).parent / "rate_limits.yaml")

    @property
    def config(self) -> Dict[str, Any]:
        """Load config (cached)."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Dict[str, Any]:
        """Load rate limit configuration from YAML."""
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.info(f"Loaded rate limits from {self.config_path}")
                return config
        except FileNotFoundError:
            logger.warning(
                f"Rate limit config not found at {self.config_path}, using defaults"
            )
            return {
                "defaults": {
                    "requests_per_minute": 10,
                    "requests_per_hour": 100,
                },
                "domains": {},
            }

    def _get_limits(
        self, domain: str, route_group: str = "default"
    ) -> Dict[str, int]:
        """
        Get rate limits for a domain/route combination.

        Args:
            domain: Domain name
            route_group: Route group within domain

        Returns:
            Dict with requests_per_minute, requests_per_hour
        """
        defaults = self.config.get("defaults", {})
        domain_config = (self.config.get("domains") or {}).get(domain, {})

        limits = {
            "requests_per_minute": defaults.get("requests_per_minute", 10),
            "requests_per_hour": defaults.get("requests_per_hour", 100),
        }

        for key in limits:
            if key in domain_config:
                limits[key] = domain_config[key]

        route_config = (domain_config.get("routes") or {}).get(route_group, {})
        for key in limits:
            if key in route_config:
                limits[key] = route_config[key]

        if self.requests_per_minute:
            limits["requests_per_minute"] = self.requests_per_minute

        return limits

    def _make_key(self, domain: str, route_group: str = "default") -> str:
        return f"scrape:{domain}:{route_group}"

    def _recent(self, key: str, now: float) -> List[float]:
        self._memory_store[key] = [
            t for t in self._memory_store[key] if now - t < WINDOW_SECONDS
        ]
        return self._memory_store[key]

    def wait(self, domain: str, route_group: str = "default") -> float:
        """
        Wait if rate limited, then record the request.

        When the window is full, sleeps until the oldest request in it
        leaves the window.

        Returns:
            Seconds slept (0.0 when not limited)
        """
        limits = self._get_limits(domain, route_group)
        key = self._make_key(domain, route_group)
        slept = 0.0

        while True:
            with self._lock:
                now = self._clock()
                recent = self._recent(key, now)
                if len(recent) < limits["requests_per_minute"]:
                    recent.append(now)
                    return slept
                wait_time = WINDOW_SECONDS - (now - recent[0]) + 0.01

            logger.debug(f"Rate limited for {domain}, waiting {wait_time:.1f}s")
            self._sleep(wait_time)
            slept += wait_time

    def record(self, domain: str, route_group: str = "default") -> None:
        """Record a request made without calling wait()."""
        with self._lock:
            self._memory_store[self._make_key(domain, route_group)].append(self._clock())

    def is_allowed(self, domain: str, route_group: str = "default") -> bool:
        """Check if a request is allowed without waiting."""
        limits = self._get_limits(domain, route_group)
        with self._lock:
            recent = self._recent(self._make_key(domain, route_group), self._clock())
            return len(recent) < limits["requests_per_minute"]

    def get_status(self, domain: str, route_group: str = "default") -> Dict:
        """
        Get current rate limit status for a domain.

        Returns:
            Dict with current counts and limits
        """
        limits = self._get_limits(domain, route_group)
        key = self._make_key(domain, route_group)

        with self._lock:
            now = self._clock()
            history = self._memory_store[key]
            minute_count = len([t for t in history if now - t < WINDOW_SECONDS])
            hour_count = len([t for t in history if now - t < 3600])

        return {
            "domain": domain,
            "route_group": route_group,
            "minute": {
                "current": minute_count,
                "limit": limits["requests_per_minute"],
            },
            "hour": {
                "current": hour_count,
                "limit": limits["requests_per_hour"],
            },
            "is_allowed": minute_count < limits["requests_per_minute"],
        }
