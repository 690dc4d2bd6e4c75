"""
PrivacyTemplate Model - Shared settings structure per platform version

One template is shared by every user whose scraped page has the same
structure. Snapshots store only the values that differ from the template
defaults.

Templates are never deleted: superseded versions are archived
(is_active=False) so existing snapshots can still be decompressed and
migrated.
"""
from models.database import db
from datetime import datetime
import uuid


class PrivacyTemplate(db.Model):
    __tablename__ = 'privacy_templates'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    platform_id = db.Column(
        db.String(36),
        db.ForeignKey('platforms.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    version = db.Column(db.String(50), nullable=False)
    template_hash = db.Column(db.String(64), nullable=False, index=True)  # SHA-256

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)

    # {"categories": {catId: {"name", "description", "settings": {settingId: {...}}}},
    #  "metadata": {"totalSettings", "lastScrapedAt"}}
    settings_structure = db.Column(db.JSON, nullable=False)

    # Usage statistics
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    active_user_count = db.Column(db.Integer, nullable=False, default=0)

    # Version control
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    previous_version_id = db.Column(db.String(36))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_by = db.Column(db.String(100))  # 'system', 'admin' or a user id

    __table_args__ = (
        db.Index('ix_privacy_templates_platform_version', 'platform_id', 'version'),
        db.Index('ix_privacy_templates_platform_active', 'platform_id', 'is_active'),
    )

    @property
    def categories(self) -> dict:
        return (self.settings_structure or {}).get('categories', {})

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'platform_id': self.platform_id,
            'version': self.version,
            'template_hash': self.template_hash,
            'name': self.name,
            'description': self.description,
            'settings_structure': self.settings_structure,
            'usage_count': self.usage_count,
            'active_user_count': self.active_user_count,
            'is_active': self.is_active,
            'previous_version_id': self.previous_version_id,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PrivacyTemplate {self.platform_id}:{self.version} active={self.is_active}>"
