"""
API package - request contracts and global middleware.

This package provides:
- Pydantic request models for the scraping endpoints
- Global middleware (request_id, error_envelope)
"""
