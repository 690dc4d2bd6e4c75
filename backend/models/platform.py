"""
Platform Model - Third-party services whose privacy settings we monitor

Each platform carries:
- Identity (slug, domain, display name)
- Privacy page URLs (``main`` is required, others optional)
- Scraping recipe served to the browser extension
- Manifest URL globs the extension may request
- Active/supported flags and a config version
"""
from models.database import db
from datetime import datetime
import uuid


class Platform(db.Model):
    __tablename__ = 'platforms'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Identification
    name = db.Column(db.String(100), nullable=False, unique=True)
    slug = db.Column(db.String(50), nullable=False, unique=True, index=True)
    domain = db.Column(db.String(255), nullable=False)

    # Metadata
    description = db.Column(db.Text)
    logo_url = db.Column(db.String(500))
    website_url = db.Column(db.String(500))

    # {"main": "...", "ads": "...", ...}
    privacy_page_urls = db.Column(db.JSON, nullable=False, default=dict)

    # {"selectors": {settingId: {"selector", "type", "expectedValues"}},
    #  "waitForSelectors": [...], "rateLimit": {"requestsPerMinute", "cooldownMinutes"}}
    scraping_config = db.Column(db.JSON, nullable=False, default=dict)

    # URL globs, e.g. "*://myaccount.google.com/*"
    manifest_permissions = db.Column(db.JSON, nullable=False, default=list)

    # Status
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_supported = db.Column(db.Boolean, nullable=False, default=True)
    requires_auth = db.Column(db.Boolean, nullable=False, default=True)

    # Versioning
    config_version = db.Column(db.String(20), nullable=False, default='1.0.0')
    last_updated_by = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    templates = db.relationship('PrivacyTemplate', backref='platform', lazy='dynamic')

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'domain': self.domain,
            'description': self.description,
            'logo_url': self.logo_url,
            'website_url': self.website_url,
            'privacy_page_urls': self.privacy_page_urls,
            'scraping_config': self.scraping_config,
            'manifest_permissions': self.manifest_permissions,
            'is_active': self.is_active,
            'is_supported': self.is_supported,
            'requires_auth': self.requires_auth,
            'config_version': self.config_version,
            'last_updated_by': self.last_updated_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Platform {self.slug} v{self.config_version} active={self.is_active}>"
