"""
Tests for the /api/scraping blueprint and the error envelope.
"""

import uuid
from unittest.mock import Mock

import pytest

from constants import SUPPORTED_PLATFORMS
from fakes import FakeScraper, GOOGLE_SETTINGS


def _submission(platform_id, **overrides):
    body = {
        'scanId': 'scan-123',
        'userId': 'user-1',
        'platformId': platform_id,
        'method': 'extension',
        'extractedSettings': GOOGLE_SETTINGS,
        'metadata': {
            'url': 'https://myaccount.google.com/privacy',
            'userAgent': 'Mozilla/5.0',
            'startTime': '2024-05-01T10:00:00',
            'endTime': '2024-05-01T10:00:02',
            'duration': 2000,
            'elementsFound': 4,
            'elementsExpected': 4,
            'confidenceScore': 0.95,
        },
    }
    body.update(overrides)
    return body


# =============================================================================
# Platforms
# =============================================================================

class TestPlatformEndpoints:

    def test_list_platforms(self, client, seeded):
        response = client.get('/api/scraping/platforms')

        assert response.status_code == 200
        data = response.get_json()
        assert data['count'] == 4
        google = next(p for p in data['platforms'] if p['slug'] == 'google')
        assert google['config']['platformId'] == google['id']
        assert google['config']['rateLimit'] == {'requestsPerMinute': 5, 'cooldownMinutes': 2}

    def test_platform_config(self, client, google):
        response = client.get(f'/api/scraping/platforms/{google.id}/config')

        assert response.status_code == 200
        assert response.get_json()['permissions'] == google.manifest_permissions

    def test_platform_config_not_found(self, client, app):
        response = client.get(f'/api/scraping/platforms/{uuid.uuid4()}/config')

        assert response.status_code == 404
        error = response.get_json()['error']
        assert error['code'] == 'NOT_FOUND'
        assert error['requestId'] == response.headers['X-Request-ID']

    def test_register_platform(self, client, registry):
        response = client.post('/api/scraping/platforms', json={
            'name': 'OpenAI',
            'slug': 'openai',
            'domain': 'openai.com',
            'privacy_page_urls': {'main': 'https://platform.openai.com/account/data-controls'},
            'scraping_config': {'selectors': {'training': {'selector': '#t', 'type': 'toggle'}}},
            'manifest_permissions': ['*://platform.openai.com/*'],
        })

        assert response.status_code == 201
        platform_id = response.get_json()['id']
        assert registry.get_platform_config(platform_id).slug == 'openai'

    def test_register_invalid_platform(self, client):
        response = client.post('/api/scraping/platforms', json={'slug': 'google', 'name': 'Google'})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PLATFORM_CONFIG'

    def test_register_requires_json_object(self, client):
        response = client.post('/api/scraping/platforms', json=['not', 'an', 'object'])

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'BAD_REQUEST'

    def test_update_platform(self, client, google, registry):
        response = client.patch(f'/api/scraping/platforms/{google.id}', json={'config_version': '2.0.0'})

        assert response.status_code == 200
        assert registry.get_extension_config(google.id)['version'] == '2.0.0'

    def test_update_unknown_platform(self, client):
        response = client.patch(f'/api/scraping/platforms/{uuid.uuid4()}', json={'description': 'x'})

        assert response.status_code == 404

    def test_deactivate_platform(self, client, google):
        response = client.delete(f'/api/scraping/platforms/{google.id}')

        assert response.status_code == 200
        assert client.get(f'/api/scraping/platforms/{google.id}/config').status_code == 404

    def test_permission_check(self, client, google):
        allowed = client.post(
            f'/api/scraping/platforms/{google.id}/permissions',
            json={'urls': ['https://myaccount.google.com/privacy']},
        )
        denied = client.post(
            f'/api/scraping/platforms/{google.id}/permissions',
            json={'urls': ['https://myaccount.google.com/privacy', 'https://evil.example/']},
        )

        assert allowed.get_json()['allowed'] is True
        assert denied.get_json()['allowed'] is False

    def test_permission_check_requires_urls(self, client, google):
        response = client.post(f'/api/scraping/platforms/{google.id}/permissions', json={'urls': []})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PARAMS'


# =============================================================================
# Scans
# =============================================================================

class TestScanEndpoints:

    def test_scan_success(self, client, engine, google):
        engine.register_scraper('google', FakeScraper(google.scraping_config))

        response = client.post('/api/scraping/scan', json={'userId': 'user-1', 'platformId': google.id})

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['data']['template_match']['confidence'] == 1.0
        assert body['requestId'] == response.headers['X-Request-ID']

    def test_scan_validation_error(self, client):
        response = client.post('/api/scraping/scan', json={'userId': 'user-1'})

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert body['error']['code'] == 'validation'
        assert body['error']['retryable'] is False

    def test_scan_unknown_platform(self, client):
        response = client.post('/api/scraping/scan', json={'userId': 'u', 'platformId': str(uuid.uuid4())})

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'platform_not_found'

    def test_scan_retryable_error(self, client, engine, google):
        engine.register_scraper('google', FakeScraper(google.scraping_config, error=RuntimeError('flaky')))

        response = client.post('/api/scraping/scan', json={'userId': 'u', 'platformId': google.id})

        assert response.status_code == 503
        assert response.get_json()['error']['retryable'] is True

    @pytest.mark.parametrize('method', ['extension', 'firecrawl'])
    def test_scan_with_startup_scrapers_needs_fallback(self, client, google, method):
        response = client.post(
            '/api/scraping/scan',
            json={'userId': 'u', 'platformId': google.id, 'method': method},
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body['error']['code'] == 'fallback_unavailable'
        assert body['error']['retryable'] is False

    def test_scan_with_startup_scrapers_uses_fallback(self, client, engine, google, session):
        from models.privacy_snapshot import PrivacySnapshot
        from scrapers.base import ExtractedPrivacyData, ScrapingMetadata, ScrapingResult

        engine.firecrawl_client = Mock()
        engine.firecrawl_client.scrape_privacy_page.return_value = ScrapingResult(
            success=True,
            data=ExtractedPrivacyData(platform_id=google.id, extracted_settings=GOOGLE_SETTINGS),
            metadata=ScrapingMetadata.started('firecrawl', elements_found=4, elements_expected=4),
        )

        response = client.post(
            '/api/scraping/scan',
            json={'userId': 'u', 'platformId': google.id, 'method': 'firecrawl'},
        )

        assert response.status_code == 200
        assert response.get_json()['success'] is True
        url, _ = engine.firecrawl_client.scrape_privacy_page.call_args.args
        assert url == 'https://myaccount.google.com/privacy'
        assert session.query(PrivacySnapshot).one().scan_method == 'firecrawl'

    def test_submit(self, client, google, session):
        from models.privacy_snapshot import PrivacySnapshot

        response = client.post('/api/scraping/submit', json=_submission(google.id))

        assert response.status_code == 200
        body = response.get_json()
        assert body['metadata']['scan_id'] == 'scan-123'
        assert body['metadata']['completion_rate'] == 1.0
        assert body['metadata']['confidence_score'] == 0.95
        snapshot = session.query(PrivacySnapshot).one()
        assert snapshot.scan_id == 'scan-123'
        assert snapshot.scan_duration_ms == 2000

    @pytest.mark.parametrize('field,value', [
        ('platformId', 'not-a-uuid'),
        ('scanId', ''),
        ('method', 'carrier-pigeon'),
    ])
    def test_submit_invalid_fields(self, client, google, field, value):
        response = client.post('/api/scraping/submit', json=_submission(google.id, **{field: value}))

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PARAMS'

    def test_submit_invalid_metadata(self, client, google):
        body = _submission(google.id)
        body['metadata']['elementsExpected'] = 0

        response = client.post('/api/scraping/submit', json=body)

        assert response.status_code == 400
        details = response.get_json()['error']['details']['errors']
        assert details[0]['loc'] == ['metadata', 'elementsExpected']

    def test_stats(self, client, engine, google):
        engine.register_scraper('google', FakeScraper(google.scraping_config))
        client.post('/api/scraping/scan', json={'userId': 'u', 'platformId': google.id})

        response = client.get('/api/scraping/stats')

        assert response.status_code == 200
        assert response.get_json()['total_scans'] == 1
        assert response.get_json()['success_rate'] == 100.0


# =============================================================================
# App wiring
# =============================================================================

class TestAppWiring:

    def test_health(self, client):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.get_json()['firecrawl_enabled'] is False
        assert response.get_json()['scrapers'] == list(SUPPORTED_PLATFORMS)

    def test_request_id_is_echoed(self, client):
        response = client.get('/api/health', headers={'X-Request-ID': 'abc-123'})

        assert response.headers['X-Request-ID'] == 'abc-123'

    def test_unknown_route_uses_envelope(self, client):
        response = client.get('/api/scraping/nope')

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'

    def test_cors_headers(self, client):
        response = client.get('/api/health', headers={'Origin': 'chrome-extension://abc'})

        assert response.headers['Access-Control-Allow-Origin'] == '*'
