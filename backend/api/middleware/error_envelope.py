"""
Error envelope middleware - one shape for every non-scan error response.

    {"error": {"code": "INVALID_PLATFORM_CONFIG", "message": "...", "requestId": "uuid"}}

Scan endpoints return a ScrapingResult body instead; ERROR_CODES maps its
error codes (upper-cased) to HTTP statuses as well.
"""

import logging
from flask import Flask, jsonify, g
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from services.platform_registry import PlatformConfigError


logger = logging.getLogger('api.middleware.error')


def setup_error_handlers(app: Flask) -> None:
    """
    Set up standardized error handlers on Flask app.

    Handles:
    - HTTP exceptions (400, 404, 500, etc.)
    - Platform configuration and request validation errors (400)
    - Unhandled Python exceptions

    Args:
        app: Flask application instance
    """

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        """Handle Flask/Werkzeug HTTP exceptions."""
        # "Not Found" -> "NOT_FOUND"
        code = error.name.upper().replace(' ', '_')
        return make_error_response(code, error.description, error.code)

    @app.errorhandler(PlatformConfigError)
    def handle_platform_config_error(error):
        return make_error_response("INVALID_PLATFORM_CONFIG", str(error), 400)

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        details = [
            {'loc': [str(part) for part in err.get('loc', ())], 'msg': err.get('msg')}
            for err in error.errors()
        ]
        return make_error_response("INVALID_PARAMS", "Invalid request data", 400, details={'errors': details})

    @app.errorhandler(Exception)
    def handle_generic_error(error):
        """Handle unhandled Python exceptions."""
        # Log the full exception
        logger.exception(
            f"Unhandled error: {error}",
            extra={
                "event": "unhandled_error",
                "error_type": type(error).__name__,
            }
        )
        return make_error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)


# Error codes reference
ERROR_CODES = {
    # Client errors (4xx)
    "BAD_REQUEST": 400,
    "NOT_FOUND": 404,
    "METHOD_NOT_ALLOWED": 405,
    "CONFLICT": 409,
    "TOO_MANY_REQUESTS": 429,

    # Contract errors
    "INVALID_PARAMS": 400,
    "INVALID_PLATFORM_CONFIG": 400,

    # Scan errors that the caller must fix
    "VALIDATION": 400,
    "PLATFORM_NOT_FOUND": 404,
    "SCRAPER_NOT_AVAILABLE": 400,
    "FALLBACK_UNAVAILABLE": 400,

    # Server errors (5xx)
    "INTERNAL_ERROR": 500,
    "SERVICE_UNAVAILABLE": 503,
}


def make_error_response(
    code: str,
    message: str,
    status_code: int = None,
    field: str = None,
    details: dict = None,
    hint: str = None,
):
    """
    Create a standardized error response.

    Args:
        code: Error code (e.g., "INVALID_PARAMS")
        message: Human-readable error message
        status_code: HTTP status code (defaults based on error code)
        field: Optional field name that caused the error
        details: Optional additional details dict
        hint: Optional hint for fixing the error

    Returns:
        Tuple of (response, status_code)
    """
    request_id = getattr(g, 'request_id', None)

    # Default status code based on error code
    if status_code is None:
        status_code = ERROR_CODES.get(code, 500)

    error = {
        "error": {
            "code": code,
            "message": message,
            "requestId": request_id,
        }
    }

    if field:
        error["error"]["field"] = field
    if details:
        error["error"]["details"] = details
    if hint:
        error["error"]["hint"] = hint

    response = jsonify(error)
    if request_id:
        response.headers['X-Request-ID'] = request_id

    return response, status_code
