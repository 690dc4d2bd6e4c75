"""
PrivacySnapshot Model - One completed scan of a user's settings on a platform

Append-only: a row is written once per completed scrape and never updated.
``user_settings`` is normally the template-compressed delta; when template
processing fails the raw extraction is stored instead (is_compressed=False).
"""
from models.database import db
from datetime import datetime
import uuid


class PrivacySnapshot(db.Model):
    __tablename__ = 'privacy_snapshots'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = db.Column(db.String(100), nullable=False)
    platform_id = db.Column(
        db.String(36),
        db.ForeignKey('platforms.id', ondelete='CASCADE'),
        nullable=False,
    )
    template_id = db.Column(
        db.String(36),
        db.ForeignKey('privacy_templates.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    user_settings = db.Column(db.JSON, nullable=False, default=dict)
    is_compressed = db.Column(db.Boolean, nullable=False, default=True)

    # Scan metadata
    scan_id = db.Column(db.String(100))
    scan_method = db.Column(db.String(20), nullable=False, default='extension')  # extension | firecrawl | ocr

    # {catId: {settingId: {"oldValue", "newValue", "changeType", "detectedAt"}}}
    changes_since_previous = db.Column(db.JSON, default=dict)
    has_changes = db.Column(db.Boolean, nullable=False, default=False)

    # pending | in_progress | completed | failed | partial
    scan_status = db.Column(db.String(20), nullable=False, default='completed', index=True)
    scan_error = db.Column(db.Text)
    scan_duration_ms = db.Column(db.Integer)

    completion_rate = db.Column(db.Float, default=1.0)
    confidence_score = db.Column(db.Float, default=1.0)

    scanned_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    template = db.relationship('PrivacyTemplate')

    __table_args__ = (
        db.Index('ix_privacy_snapshots_user_platform', 'user_id', 'platform_id'),
        db.Index('ix_privacy_snapshots_user_scanned', 'user_id', 'scanned_at'),
        db.Index('ix_privacy_snapshots_changes', 'has_changes', 'scanned_at'),
    )

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'platform_id': self.platform_id,
            'template_id': self.template_id,
            'user_settings': self.user_settings,
            'is_compressed': self.is_compressed,
            'scan_id': self.scan_id,
            'scan_method': self.scan_method,
            'changes_since_previous': self.changes_since_previous,
            'has_changes': self.has_changes,
            'scan_status': self.scan_status,
            'scan_error': self.scan_error,
            'scan_duration_ms': self.scan_duration_ms,
            'completion_rate': self.completion_rate,
            'confidence_score': self.confidence_score,
            'scanned_at': self.scanned_at.isoformat() if self.scanned_at else None,
        }

    def __repr__(self):
        return f"<PrivacySnapshot {self.user_id}:{self.platform_id} changes={self.has_changes}>"
