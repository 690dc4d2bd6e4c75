"""
Platform Registry - Validated, cached platform configuration

Serves platform scraping recipes to the scraping engine and to the browser
extension. Lookups by id are read-through cached in an injected TTLCache;
cached values are immutable PlatformConfig snapshots, so they stay valid
after the session that loaded them is gone.

Write rules:
- register_platform clears the whole cache (registrations are rare)
- update_platform / deactivate_platform evict only that platform's entry

Usage:
    from services.platform_registry import PlatformRegistry

    registry = PlatformRegistry(db.session)
    config = registry.get_extension_config(platform_id)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from constants import (
    SUPPORTED_PLATFORMS,
    DEFAULT_RATE_LIMIT,
    RATE_LIMIT_RPM_RANGE,
    RATE_LIMIT_COOLDOWN_RANGE,
    PLATFORM_CONFIG_CACHE_MINUTES,
    SETTING_TYPES,
)
from models.platform import Platform
from services.default_platforms import DEFAULT_PLATFORM_CONFIGS
from utils.cache import TTLCache

logger = logging.getLogger(__name__)


class PlatformConfigError(ValueError):
    """Platform data failed validation. Surfaced to API callers as a 400."""
    pass


# Columns a caller may set through register_platform / update_platform
PLATFORM_FIELDS = (
    'name',
    'slug',
    'domain',
    'description',
    'logo_url',
    'website_url',
    'privacy_page_urls',
    'scraping_config',
    'manifest_permissions',
    'is_active',
    'is_supported',
    'requires_auth',
    'config_version',
    'last_updated_by',
)


@dataclass(frozen=True)
class PlatformConfig:
    """Detached, read-only view of a Platform row."""
    id: str
    name: str
    slug: str
    domain: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    website_url: Optional[str] = None
    privacy_page_urls: Dict[str, Any] = field(default_factory=dict)
    scraping_config: Dict[str, Any] = field(default_factory=dict)
    manifest_permissions: List[str] = field(default_factory=list)
    is_active: bool = True
    is_supported: bool = True
    requires_auth: bool = True
    config_version: str = '1.0.0'

    @classmethod
    def from_model(cls, platform: Platform) -> 'PlatformConfig':
        return cls(
            id=platform.id,
            name=platform.name,
            slug=platform.slug,
            domain=platform.domain,
            description=platform.description,
            logo_url=platform.logo_url,
            website_url=platform.website_url,
            privacy_page_urls=dict(platform.privacy_page_urls or {}),
            scraping_config=dict(platform.scraping_config or {}),
            manifest_permissions=list(platform.manifest_permissions or []),
            is_active=platform.is_active,
            is_supported=platform.is_supported,
            requires_auth=platform.requires_auth,
            config_version=platform.config_version,
        )

    @property
    def selectors(self) -> Dict[str, Any]:
        return self.scraping_config.get('selectors') or {}

    @property
    def rate_limit(self) -> Optional[Dict[str, Any]]:
        return self.scraping_config.get('rateLimit')

    @property
    def primary_url(self) -> str:
        """Main privacy page, then the general website, then the bare domain."""
        return (
            self.privacy_page_urls.get('main')
            or self.website_url
            or f"https://{self.domain}"
        )


# =============================================================================
# Validation
# =============================================================================

def validate_scraping_config(config: Dict[str, Any]) -> None:
    """
    Raise PlatformConfigError unless the scraping config is usable.

    Requires at least one selector, each with a locator and a known type,
    and an in-range rate limit when one is given.
    """
    if not isinstance(config, dict):
        raise PlatformConfigError("Scraping config must be an object")

    selectors = config.get('selectors')
    if not selectors or not isinstance(selectors, dict):
        raise PlatformConfigError("At least one selector must be defined")

    for setting_id, selector_config in selectors.items():
        if not isinstance(selector_config, dict) or not selector_config.get('selector'):
            raise PlatformConfigError(f"Selector for {setting_id} is required")
        if selector_config.get('type') not in SETTING_TYPES:
            raise PlatformConfigError(f"Invalid selector type for {setting_id}: {selector_config.get('type')}")

    rate_limit = config.get('rateLimit')
    if rate_limit is not None:
        if not isinstance(rate_limit, dict):
            raise PlatformConfigError("Rate limit must be an object")
        rpm = rate_limit.get('requestsPerMinute')
        cooldown = rate_limit.get('cooldownMinutes')
        low, high = RATE_LIMIT_RPM_RANGE
        if not _is_number(rpm) or not low <= rpm <= high:
            raise PlatformConfigError(f"Rate limit requests per minute must be between {low} and {high}")
        low, high = RATE_LIMIT_COOLDOWN_RANGE
        if not _is_number(cooldown) or not low <= cooldown <= high:
            raise PlatformConfigError(f"Rate limit cooldown must be between {low} and {high} minutes")


def validate_platform_data(data: Dict[str, Any]) -> None:
    slug = data.get('slug')
    if slug not in SUPPORTED_PLATFORMS:
        raise PlatformConfigError(f"Unsupported platform slug: {slug}")

    for required in ('name', 'domain'):
        if not data.get(required):
            raise PlatformConfigError(f"Platform {required} is required")

    if not (data.get('privacy_page_urls') or {}).get('main'):
        raise PlatformConfigError("Main privacy page URL is required")

    validate_scraping_config(data.get('scraping_config'))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def glob_to_regex(pattern: str) -> 're.Pattern':
    """
    Compile a manifest glob into an anchored regex.

    ``*`` matches any run of characters, ``?`` exactly one; everything else
    is literal (dots included).
    """
    parts = []
    for char in pattern:
        if char == '*':
            parts.append('.*')
        elif char == '?':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return re.compile('^' + ''.join(parts) + '$')


def url_matches_any(url: str, patterns: List[str]) -> bool:
    return any(glob_to_regex(pattern).match(url) for pattern in patterns)


# =============================================================================
# Registry
# =============================================================================

class PlatformRegistry:
    """Cached platform configuration lookup and administration."""

    def __init__(
        self,
        session,
        cache: Optional[TTLCache] = None,
        default_rate_limit: Optional[Dict[str, int]] = None,
        cache_minutes: int = PLATFORM_CONFIG_CACHE_MINUTES,
    ):
        self.session = session
        self.cache = cache if cache is not None else TTLCache(maxsize=500, ttl=cache_minutes * 60)
        self.default_rate_limit = dict(default_rate_limit or DEFAULT_RATE_LIMIT)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_platform_config(self, platform_id: str) -> Optional[PlatformConfig]:
        """Active platform by id, cache first."""
        cached = self.cache.get(platform_id)
        if cached is not None:
            return cached

        platform = (
            self.session.query(Platform)
            .filter_by(id=platform_id, is_active=True)
            .first()
        )
        if platform is None:
            return None

        config = PlatformConfig.from_model(platform)
        self.cache.set(platform_id, config)
        return config

    def get_platform_by_slug(self, slug: str) -> Optional[PlatformConfig]:
        """Active, supported platform by slug. Not cached."""
        platform = (
            self.session.query(Platform)
            .filter_by(slug=slug, is_active=True, is_supported=True)
            .first()
        )
        return PlatformConfig.from_model(platform) if platform else None

    def get_active_platforms(self) -> List[PlatformConfig]:
        platforms = (
            self.session.query(Platform)
            .filter_by(is_active=True, is_supported=True)
            .order_by(Platform.name)
            .all()
        )
        return [PlatformConfig.from_model(p) for p in platforms]

    def get_extension_config(self, platform_id: str) -> Optional[Dict[str, Any]]:
        """The view of a platform the browser extension consumes."""
        platform = self.get_platform_config(platform_id)
        if platform is None:
            return None

        return {
            'platformId': platform.id,
            'scrapingConfig': platform.scraping_config,
            'permissions': platform.manifest_permissions,
            'rateLimit': platform.rate_limit or dict(self.default_rate_limit),
            'version': platform.config_version,
        }

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register_platform(self, data: Dict[str, Any]) -> str:
        """
        Validate and insert a new platform.

        Raises:
            PlatformConfigError: Invalid data or a duplicate name/slug
        """
        validate_platform_data(data)

        unknown = set(data) - set(PLATFORM_FIELDS)
        if unknown:
            raise PlatformConfigError(f"Unknown platform fields: {', '.join(sorted(unknown))}")

        now = datetime.utcnow()
        platform = Platform(**data, created_at=now, updated_at=now)
        self.session.add(platform)

        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise PlatformConfigError(f"Platform already exists: {data.get('slug')}") from e

        self.clear_cache()
        logger.info(f"Registered platform {platform.slug} ({platform.id})")
        return platform.id

    def update_platform(self, platform_id: str, updates: Dict[str, Any]) -> bool:
        """
        Apply a partial update. Returns False if the platform does not exist.

        Raises:
            PlatformConfigError: Invalid changed fields
        """
        unknown = set(updates) - set(PLATFORM_FIELDS)
        if unknown:
            raise PlatformConfigError(f"Unknown platform fields: {', '.join(sorted(unknown))}")

        if 'scraping_config' in updates:
            validate_scraping_config(updates['scraping_config'])
        if 'slug' in updates and updates['slug'] not in SUPPORTED_PLATFORMS:
            raise PlatformConfigError(f"Unsupported platform slug: {updates['slug']}")
        if 'privacy_page_urls' in updates and not (updates['privacy_page_urls'] or {}).get('main'):
            raise PlatformConfigError("Main privacy page URL is required")

        platform = self.session.get(Platform, platform_id)
        if platform is None:
            self.cache.delete(platform_id)
            return False

        for key, value in updates.items():
            setattr(platform, key, value)
        platform.updated_at = datetime.utcnow()

        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise PlatformConfigError(f"Platform update conflicts with an existing platform: {platform_id}") from e

        self.cache.delete(platform_id)
        logger.info(f"Updated platform {platform_id}: {', '.join(sorted(updates))}")
        return True

    def deactivate_platform(self, platform_id: str) -> bool:
        platform = self.session.get(Platform, platform_id)
        self.cache.delete(platform_id)
        if platform is None:
            return False

        platform.is_active = False
        platform.updated_at = datetime.utcnow()
        self.session.commit()

        logger.info(f"Deactivated platform {platform.slug} ({platform_id})")
        return True

    def initialize_default_platforms(self) -> List[str]:
        """Register each default platform whose slug is not already present."""
        created = []
        for config in DEFAULT_PLATFORM_CONFIGS:
            exists = self.session.query(Platform).filter_by(slug=config['slug']).first()
            if exists is not None:
                continue
            created.append(self.register_platform(dict(config)))

        logger.info(f"Default platforms initialized ({len(created)} new)")
        return created

    # -------------------------------------------------------------------------
    # Permissions
    # -------------------------------------------------------------------------

    def validate_permissions(self, platform_id: str, urls: List[str]) -> bool:
        """
        Whether every URL matches at least one of the platform's manifest globs.

        Only the cached entry is consulted; an uncached platform is denied.
        """
        platform = self.cache.peek(platform_id)
        if platform is None:
            return False

        return all(url_matches_any(url, platform.manifest_permissions) for url in urls)

    def get_platforms_with_permissions(self, urls: List[str]) -> List[PlatformConfig]:
        """Active platforms whose manifest globs match any of the URLs."""
        return [
            platform for platform in self.get_active_platforms()
            if any(url_matches_any(url, platform.manifest_permissions) for url in urls)
        ]

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()
