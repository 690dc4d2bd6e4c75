"""
Utility modules for the backend.
"""
from .cache import TTLCache

__all__ = [
    'TTLCache',
]
