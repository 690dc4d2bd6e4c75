"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.platform import Platform
from models.privacy_template import PrivacyTemplate
from models.privacy_snapshot import PrivacySnapshot

__all__ = [
    'db',
    'Platform',
    'PrivacyTemplate',
    'PrivacySnapshot',
]
