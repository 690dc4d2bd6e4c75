"""
Base Scraper - Contract and result types for platform scrapers.

A platform scraper turns one user's settings page into
``{categoryId: {settingId: value}}``. The scraping engine treats every
scraper as an opaque capability:

- can_scrape(context): whether this scraper can serve the request
- scrape(context): returns a ScrapingResult, never raises for expected failures

Scrapers must not write to the database. The engine may abandon a slow
scrape after its timeout while the call keeps running on a worker thread.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from constants import DEFAULT_RATE_LIMIT, SCRAPING_METHOD_EXTENSION, SCRAPING_METHOD_FIRECRAWL
from services.setting_values import is_compatible


# =============================================================================
# Request
# =============================================================================

class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class ScrapingContext(BaseModel):
    """
    Validated scrape request.

    Accepts both snake_case names and the camelCase keys the extension sends
    (userId, platformId, userAgent).
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )

    user_id: str = Field(alias='userId', min_length=1)
    platform_id: str = Field(alias='platformId')
    method: Literal['extension', 'firecrawl', 'ocr'] = SCRAPING_METHOD_EXTENSION
    user_agent: Optional[str] = Field(default=None, alias='userAgent')
    viewport: Optional[Viewport] = None
    cookies: Optional[Dict[str, str]] = None
    headers: Optional[Dict[str, str]] = None

    @field_validator('platform_id')
    @classmethod
    def platform_id_is_uuid(cls, v: str) -> str:
        try:
            uuid.UUID(v)
        except (ValueError, AttributeError, TypeError):
            raise ValueError('platform_id must be a UUID')
        return v


# =============================================================================
# Results
# =============================================================================

@dataclass
class ScrapingError:
    code: str
    message: str
    type: str = 'unknown'  # network | parsing | authentication | rate_limit | timeout | unknown
    retryable: bool = True
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'type': self.type,
            'retryable': self.retryable,
            'details': self.details,
        }


@dataclass
class ScrapingMetadata:
    scan_id: str
    start_time: datetime
    end_time: datetime
    duration: int  # ms
    method: str
    user_agent: Optional[str] = None
    completion_rate: float = 0.0
    confidence_score: float = 0.0
    elements_found: int = 0
    elements_expected: int = 0

    @classmethod
    def started(cls, method: str, start_time: Optional[datetime] = None, **kwargs) -> 'ScrapingMetadata':
        """Metadata for a scan whose end is stamped now."""
        start = start_time or datetime.utcnow()
        end = datetime.utcnow()
        return cls(
            scan_id=kwargs.pop('scan_id', None) or str(uuid.uuid4()),
            start_time=start,
            end_time=end,
            duration=elapsed_ms(start, end),
            method=method,
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scan_id': self.scan_id,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration': self.duration,
            'method': self.method,
            'user_agent': self.user_agent,
            'completion_rate': self.completion_rate,
            'confidence_score': self.confidence_score,
            'elements_found': self.elements_found,
            'elements_expected': self.elements_expected,
        }


@dataclass
class ExtractedPrivacyData:
    platform_id: str
    extracted_settings: Dict[str, Dict[str, Any]]
    template_match: Optional[Dict[str, Any]] = None  # {templateId, confidence, differences}
    raw: Optional[Dict[str, Any]] = None             # {html, screenshots, ...}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'platform_id': self.platform_id,
            'extracted_settings': self.extracted_settings,
            'template_match': self.template_match,
        }


@dataclass
class ScrapingResult:
    success: bool
    metadata: ScrapingMetadata
    data: Optional[ExtractedPrivacyData] = None
    error: Optional[ScrapingError] = None

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        metadata: ScrapingMetadata,
        type: str = 'unknown',
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> 'ScrapingResult':
        return cls(
            success=False,
            metadata=metadata,
            error=ScrapingError(code=code, message=message, type=type, retryable=retryable, details=details),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'data': self.data.to_dict() if self.data else None,
            'error': self.error.to_dict() if self.error else None,
            'metadata': self.metadata.to_dict(),
        }


def elapsed_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


def count_settings(settings: Dict[str, Any]) -> int:
    return sum(len(values) for values in settings.values() if isinstance(values, dict))


# =============================================================================
# Scraper contract
# =============================================================================

class BaseScraper(ABC):
    """
    Abstract base class for platform scrapers.

    Subclasses must implement:
    - scrape(): Extract settings for one user
    - get_permission_patterns(): Manifest URL globs the scraper needs

    Subclasses should set class attributes:
    - PLATFORM: Platform slug this scraper serves
    - VERSION: Scraper version, stamped into results
    """

    # Override in subclass
    PLATFORM: str = "base"
    VERSION: str = "1.0.0"

    def __init__(self, scraping_config: Dict[str, Any]):
        self.scraping_config = scraping_config or {}
        self.rate_limit = self.scraping_config.get('rateLimit') or dict(DEFAULT_RATE_LIMIT)

    @property
    def platform(self) -> str:
        return self.PLATFORM

    @property
    def version(self) -> str:
        return self.VERSION

    @property
    def selectors(self) -> Dict[str, Any]:
        return self.scraping_config.get('selectors') or {}

    def can_scrape(self, context: ScrapingContext) -> bool:
        """
        Whether this scraper can serve the request.

        Needs at least one configured selector. Extension scans are always
        supported; remote-crawler scans only if supports_firecrawl().
        """
        if not self.selectors:
            return False
        if context.method == SCRAPING_METHOD_EXTENSION:
            return True
        if context.method == SCRAPING_METHOD_FIRECRAWL:
            return self.supports_firecrawl()
        return False

    @abstractmethod
    def scrape(self, context: ScrapingContext) -> ScrapingResult:
        """Extract the user's settings. Must not touch the database."""
        pass

    @abstractmethod
    def get_permission_patterns(self) -> List[str]:
        pass

    def supports_firecrawl(self) -> bool:
        return False

    def validate_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Check extracted values against the configured selector types.

        Settings without a selector entry are not checked. An empty
        extraction is invalid.
        """
        if not settings:
            return False

        for category_settings in settings.values():
            if not isinstance(category_settings, dict):
                continue
            for setting_id, value in category_settings.items():
                selector = self.selectors.get(setting_id)
                if selector and not self._value_fits(selector, value):
                    return False
        return True

    def get_required_permissions(self) -> List[str]:
        return self.get_permission_patterns()

    def get_rate_limits(self) -> Dict[str, int]:
        return self.rate_limit

    # -------------------------------------------------------------------------
    # Result helpers
    # -------------------------------------------------------------------------

    def create_success_result(
        self,
        extracted_settings: Dict[str, Dict[str, Any]],
        start_time: datetime,
        method: str = SCRAPING_METHOD_EXTENSION,
        scan_id: Optional[str] = None,
    ) -> ScrapingResult:
        expected = self.count_expected_elements()
        found = count_settings(extracted_settings)

        return ScrapingResult(
            success=True,
            data=ExtractedPrivacyData(platform_id=self.platform, extracted_settings=extracted_settings),
            metadata=ScrapingMetadata.started(
                method,
                start_time,
                scan_id=scan_id,
                completion_rate=found / expected if expected > 0 else 1.0,
                confidence_score=self.calculate_confidence_score(extracted_settings),
                elements_found=found,
                elements_expected=expected,
            ),
        )

    def create_error_result(
        self,
        message: str,
        code: str,
        type: str = 'unknown',
        retryable: bool = True,
        start_time: Optional[datetime] = None,
        method: str = SCRAPING_METHOD_EXTENSION,
        details: Optional[Dict[str, Any]] = None,
    ) -> ScrapingResult:
        return ScrapingResult.failure(
            code,
            message,
            ScrapingMetadata.started(method, start_time, elements_expected=self.count_expected_elements()),
            type=type,
            retryable=retryable,
            details=details,
        )

    def calculate_confidence_score(self, settings: Dict[str, Any]) -> float:
        expected = self.count_expected_elements()
        if expected == 0:
            return 1.0

        completion = count_settings(settings) / expected
        # Penalize sparse extractions
        if completion < 0.5:
            return completion * 0.5
        return min(completion, 1.0)

    def count_expected_elements(self) -> int:
        return len(self.selectors)

    @staticmethod
    def _value_fits(selector: Dict[str, Any], value: Any) -> bool:
        if not is_compatible(selector.get('type'), value):
            return False
        expected_values = selector.get('expectedValues')
        if selector.get('type') in ('radio', 'select') and expected_values:
            return value in expected_values
        return True
