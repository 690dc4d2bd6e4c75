"""
Request models for the scraping endpoints.

Key features:
- frozen=True: Immutable after validation
- populate_by_name=True: Accept both the extension's camelCase keys and
  snake_case field names
- extra='ignore': Ignore undeclared fields
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scrapers.base import ScrapingMetadata


class ContractModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )


class SubmissionMetadata(ContractModel):
    url: str
    user_agent: Optional[str] = Field(default=None, alias='userAgent')
    start_time: datetime = Field(alias='startTime')
    end_time: datetime = Field(alias='endTime')
    duration: float = Field(gt=0)
    elements_found: int = Field(ge=0, alias='elementsFound')
    elements_expected: int = Field(gt=0, alias='elementsExpected')
    confidence_score: float = Field(ge=0, le=1, alias='confidenceScore')

    @field_validator('url')
    @classmethod
    def url_is_http(cls, v: str) -> str:
        if not v.startswith(('http://', 'https://')):
            raise ValueError('url must be an http(s) URL')
        return v


class ScanSubmission(ContractModel):
    """Settings the browser extension extracted and posts to /submit."""
    scan_id: str = Field(alias='scanId', min_length=1)
    user_id: str = Field(alias='userId', min_length=1)
    platform_id: str = Field(alias='platformId')
    method: Literal['extension', 'firecrawl', 'ocr'] = 'extension'
    extracted_settings: Dict[str, Dict[str, Any]] = Field(alias='extractedSettings')
    metadata: SubmissionMetadata

    @field_validator('platform_id')
    @classmethod
    def platform_id_is_uuid(cls, v: str) -> str:
        uuid.UUID(v)
        return v

    def to_context(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'platform_id': self.platform_id,
            'method': self.method,
            'user_agent': self.metadata.user_agent,
        }

    def to_scraping_metadata(self) -> ScrapingMetadata:
        meta = self.metadata
        return ScrapingMetadata(
            scan_id=self.scan_id,
            start_time=meta.start_time,
            end_time=meta.end_time,
            duration=int(meta.duration),
            method=self.method,
            user_agent=meta.user_agent,
            completion_rate=meta.elements_found / meta.elements_expected if meta.elements_expected > 0 else 1.0,
            confidence_score=meta.confidence_score,
            elements_found=meta.elements_found,
            elements_expected=meta.elements_expected,
        )

    def raw_metadata(self) -> Dict[str, Any]:
        return {
            'metadata': {
                'url': self.metadata.url,
                'userAgent': self.metadata.user_agent,
                'scanId': self.scan_id,
            },
        }


class PermissionCheck(ContractModel):
    urls: List[str] = Field(min_length=1)
