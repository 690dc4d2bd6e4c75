"""
Global middleware for API requests.

Provides:
- Request ID injection (X-Request-ID) and request_id on log records
- Error envelope standardization
"""

from .request_id import setup_request_id_middleware, RequestIdLogFilter, get_request_id
from .error_envelope import setup_error_handlers, make_error_response

__all__ = [
    'setup_request_id_middleware',
    'RequestIdLogFilter',
    'get_request_id',
    'setup_error_handlers',
    'make_error_response',
]
