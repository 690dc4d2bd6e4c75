"""
Scraping API Routes

Endpoints used by the browser extension and operators:
- GET    /api/scraping/platforms - Active platforms with their extension config
- GET    /api/scraping/platforms/{id}/config - Extension config for one platform
- POST   /api/scraping/platforms - Register a platform
- PATCH  /api/scraping/platforms/{id} - Update a platform
- DELETE /api/scraping/platforms/{id} - Deactivate a platform
- POST   /api/scraping/platforms/{id}/permissions - Check URLs against manifest globs
- POST   /api/scraping/scan - Run a server-side scan
- POST   /api/scraping/submit - Store settings the extension extracted
- GET    /api/scraping/stats - Scan counts and success rate
"""
import logging

from flask import Blueprint, current_app, g, jsonify, request

from api.contracts import PermissionCheck, ScanSubmission
from api.middleware.error_envelope import ERROR_CODES, make_error_response
from scrapers.base import ScrapingResult
from scrapers.engine import ScrapingEngine

logger = logging.getLogger(__name__)

scraping_bp = Blueprint("scraping", __name__)


def get_engine() -> ScrapingEngine:
    return current_app.extensions["scraping_engine"]


def _scan_response(result: ScrapingResult):
    """200 on success; 4xx when the caller must change the request; 503 when a retry may help."""
    body = result.to_dict()
    body["requestId"] = getattr(g, "request_id", None)

    if result.success:
        return jsonify(body), 200
    if result.error.retryable:
        status = 503
    else:
        status = ERROR_CODES.get(result.error.code.upper(), 400)
    return jsonify(body), status


# =============================================================================
# PLATFORM ENDPOINTS
# =============================================================================

@scraping_bp.route("/platforms", methods=["GET"])
def list_platforms():
    """
    List active, supported platforms.

    Returns:
        {platforms: [{id, name, slug, domain, logo_url, config}], count}
    """
    registry = get_engine().registry
    platforms = []
    for platform in registry.get_active_platforms():
        platforms.append({
            "id": platform.id,
            "name": platform.name,
            "slug": platform.slug,
            "domain": platform.domain,
            "logo_url": platform.logo_url,
            "requires_auth": platform.requires_auth,
            "config": registry.get_extension_config(platform.id),
        })

    return jsonify({"platforms": platforms, "count": len(platforms)})


@scraping_bp.route("/platforms/<platform_id>/config", methods=["GET"])
def get_platform_config(platform_id):
    config = get_engine().registry.get_extension_config(platform_id)
    if config is None:
        return make_error_response("NOT_FOUND", f"Platform {platform_id} not found", 404)
    return jsonify(config)


@scraping_bp.route("/platforms", methods=["POST"])
def register_platform():
    """
    Register a platform.

    Body: Platform fields (slug, name, domain, privacy_page_urls,
    scraping_config, manifest_permissions, ...)

    Returns:
        201 {id}; 400 on invalid configuration
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return make_error_response("BAD_REQUEST", "JSON object body is required", 400)

    platform_id = get_engine().registry.register_platform(data)
    return jsonify({"id": platform_id}), 201


@scraping_bp.route("/platforms/<platform_id>", methods=["PATCH"])
def update_platform(platform_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return make_error_response("BAD_REQUEST", "JSON object body with at least one field is required", 400)

    if not get_engine().registry.update_platform(platform_id, data):
        return make_error_response("NOT_FOUND", f"Platform {platform_id} not found", 404)
    return jsonify({"id": platform_id, "updated": True})


@scraping_bp.route("/platforms/<platform_id>", methods=["DELETE"])
def deactivate_platform(platform_id):
    if not get_engine().registry.deactivate_platform(platform_id):
        return make_error_response("NOT_FOUND", f"Platform {platform_id} not found", 404)
    return jsonify({"id": platform_id, "is_active": False})


@scraping_bp.route("/platforms/<platform_id>/permissions", methods=["POST"])
def check_permissions(platform_id):
    """
    Check whether the extension may request the given URLs.

    Body: {urls: [str]}
    Returns: {allowed: bool}
    """
    check = PermissionCheck.model_validate(request.get_json(silent=True) or {})
    registry = get_engine().registry

    # Permission checks only consult the cache; warm it for known platforms
    registry.get_platform_config(platform_id)

    return jsonify({
        "platform_id": platform_id,
        "allowed": registry.validate_permissions(platform_id, check.urls),
    })


# =============================================================================
# SCAN ENDPOINTS
# =============================================================================

@scraping_bp.route("/scan", methods=["POST"])
def scan():
    """
    Run a server-side scan.

    Body: {userId, platformId, method?, userAgent?, viewport?, cookies?, headers?}

    Returns:
        ScrapingResult; 200 success, 4xx non-retryable (404 unknown platform), 503 retryable
    """
    data = request.get_json(silent=True) or {}
    result = get_engine().scrape_privacy_settings(data)
    return _scan_response(result)


@scraping_bp.route("/submit", methods=["POST"])
def submit():
    """
    Store settings the browser extension already extracted.

    Body: {scanId, userId, platformId, method, extractedSettings,
           metadata: {url, userAgent?, startTime, endTime, duration,
                      elementsFound, elementsExpected, confidenceScore}}
    """
    submission = ScanSubmission.model_validate(request.get_json(silent=True) or {})

    result = get_engine().ingest_extension_result(
        submission.to_context(),
        submission.extracted_settings,
        metadata=submission.to_scraping_metadata(),
        raw=submission.raw_metadata(),
    )
    if result.success:
        logger.info(
            f"Stored extension scan {submission.scan_id} for user {submission.user_id} "
            f"({result.metadata.elements_found}/{result.metadata.elements_expected} elements)"
        )
    return _scan_response(result)


@scraping_bp.route("/stats", methods=["GET"])
def stats():
    platform_id = request.args.get("platform_id")
    return jsonify(get_engine().get_scraping_stats(platform_id))
