"""
Request ID middleware - Inject X-Request-ID for request correlation.

Provides:
- Request ID injection on every request
- Response header addition
- A logging filter that stamps request_id on every log record
"""

import logging
import uuid
from flask import Flask, request, g, has_request_context


def setup_request_id_middleware(app: Flask) -> None:
    """
    Set up request ID middleware on Flask app.

    Injects X-Request-ID into:
    - Flask's g object (g.request_id)
    - Response headers (X-Request-ID)

    Args:
        app: Flask application instance
    """

    @app.before_request
    def inject_request_id():
        """Inject request ID before each request."""
        # Use existing header if provided, otherwise generate new
        request_id = request.headers.get('X-Request-ID')
        if not request_id:
            request_id = str(uuid.uuid4())
        g.request_id = request_id

    @app.after_request
    def add_request_id_header(response):
        """Add request ID to response headers."""
        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id
        return response


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to log records ('-' outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, 'request_id', '-')
        else:
            record.request_id = '-'
        return True


def get_request_id() -> str:
    """
    Get current request ID from Flask context.

    Returns:
        Request ID string, or generated UUID if not in request context
    """
    if has_request_context() and hasattr(g, 'request_id'):
        return g.request_id
    return str(uuid.uuid4())
