"""
Template System - Shared settings structures with per-user deltas

Thousands of users expose the same settings page per platform, so the page
structure (categories, settings, declared types and defaults) is stored once
as a PrivacyTemplate and each snapshot keeps only the values that differ from
the template defaults.

Responsibilities:
- Match extracted data against the platform's active templates
- Create a template from a fresh extraction when nothing matches
- Compress / decompress user settings against a template
- Compare two templates and migrate users between them
- Version, archive and count usage of templates

Usage:
    from services.template_system import TemplateSystem

    templates = TemplateSystem(db.session)
    template = templates.find_matching_template(platform_id, extracted)
    if template is None:
        template = templates.create_new_template(platform_id, extracted)
    compressed = templates.compress_user_settings(template, extracted)
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from constants import CONFIDENCE_THRESHOLDS, DEFAULT_RISK_LEVEL
from models.privacy_template import PrivacyTemplate
from scrapers.utils.diff import deep_equal
from scrapers.utils.hashing import compute_structure_hash, json_byte_size
from services.setting_values import infer_setting_type, is_compatible, migrate_value

logger = logging.getLogger(__name__)


# =============================================================================
# Result Types
# =============================================================================

@dataclass
class TemplateDifference:
    """One structural difference between two templates."""
    type: str      # 'added' | 'removed' | 'modified'
    path: str      # e.g. categories.ads.settings.personalization.defaultValue
    impact: str    # 'breaking' | 'minor' | 'cosmetic'
    old_value: Any = None
    new_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TemplateComparison:
    similarity: float
    differences: List[TemplateDifference] = field(default_factory=list)
    needs_new_template: bool = False

    @property
    def breaking_count(self) -> int:
        return sum(1 for d in self.differences if d.impact == 'breaking')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'similarity': self.similarity,
            'differences': [d.to_dict() for d in self.differences],
            'needs_new_template': self.needs_new_template,
            'breaking_count': self.breaking_count,
        }


@dataclass
class CompressionStats:
    """Storage footprint of one settings object, in UTF-8 bytes."""
    original_size: int
    compressed_size: int
    compression_ratio: float
    savings: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Structure Helpers
# =============================================================================

def format_display_name(identifier: str) -> str:
    """'ad-personalization' -> 'Ad Personalization'"""
    return ' '.join(word[:1].upper() + word[1:] for word in identifier.split('-'))


def count_settings(structure: Dict[str, Any]) -> int:
    categories = (structure or {}).get('categories', {})
    return sum(len(category.get('settings', {})) for category in categories.values())


def build_settings_structure(extracted_settings: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Synthesize a template structure from one extraction.

    Every extracted value becomes a setting whose default is the extracted
    value and whose type is inferred from it.
    """
    categories: Dict[str, Any] = {}

    for category_id, category_settings in extracted_settings.items():
        if not isinstance(category_settings, dict):
            continue

        settings = {}
        for setting_id, value in category_settings.items():
            settings[setting_id] = {
                'name': format_display_name(setting_id),
                'description': f"Auto-generated description for {setting_id}",
                'type': infer_setting_type(value),
                'defaultValue': value,
                'riskLevel': DEFAULT_RISK_LEVEL,
                'impact': f"Controls {setting_id.replace('-', ' ')} functionality",
            }

        categories[category_id] = {
            'name': format_display_name(category_id),
            'description': f"Privacy settings for {category_id.replace('-', ' ')}",
            'settings': settings,
        }

    structure = {'categories': categories, 'metadata': {}}
    structure['metadata'] = {
        'totalSettings': count_settings(structure),
        'lastScrapedAt': datetime.utcnow().isoformat(),
    }
    return structure


# =============================================================================
# Template System
# =============================================================================

class TemplateSystem:
    """
    Template matching, compression and lifecycle over a SQLAlchemy session.

    Write operations commit by default. Pass ``commit=False`` to leave the
    transaction open so a caller can group several writes.
    """

    def __init__(self, session, thresholds: Optional[Dict[str, float]] = None):
        self.session = session
        self.thresholds = thresholds or CONFIDENCE_THRESHOLDS

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_template(self, template_id: str) -> Optional[PrivacyTemplate]:
        return self.session.get(PrivacyTemplate, template_id)

    def get_active_templates(self, platform_id: str) -> List[PrivacyTemplate]:
        """Active templates for a platform, newest first."""
        return (
            self.session.query(PrivacyTemplate)
            .filter_by(platform_id=platform_id, is_active=True)
            .order_by(PrivacyTemplate.created_at.desc())
            .all()
        )

    def get_template_history(self, platform_id: str) -> List[PrivacyTemplate]:
        """Every template ever created for a platform (archived included), newest first."""
        return (
            self.session.query(PrivacyTemplate)
            .filter_by(platform_id=platform_id)
            .order_by(PrivacyTemplate.created_at.desc())
            .all()
        )

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def calculate_template_match(self, template: PrivacyTemplate, extracted_settings: Dict[str, Any]) -> float:
        """
        Fraction of the template's declared settings present in the
        extraction with a value of a compatible runtime type.

        Structure-based, not value-based: a user who changed every setting
        still matches perfectly.
        """
        matched = 0
        total = 0

        for category_id, category in template.categories.items():
            extracted_category = extracted_settings.get(category_id)
            if not isinstance(extracted_category, dict):
                extracted_category = {}

            for setting_id, setting in category.get('settings', {}).items():
                total += 1
                if setting_id in extracted_category and is_compatible(
                    setting.get('type'), extracted_category[setting_id]
                ):
                    matched += 1

        return matched / total if total > 0 else 0.0

    def find_matching_template(self, platform_id: str, extracted_settings: Dict[str, Any]) -> Optional[PrivacyTemplate]:
        """
        Pick the template to compress an extraction against.

        The first active template (newest first) scoring at or above the
        template-match threshold wins outright; otherwise the best scorer is
        returned if it reaches the data-extraction threshold.
        """
        best_match = None
        best_score = 0.0

        for template in self.get_active_templates(platform_id):
            score = self.calculate_template_match(template, extracted_settings)

            if score >= self.thresholds['template_match']:
                logger.debug(f"Template {template.id} matched platform {platform_id} with score {score:.2f}")
                return template

            if score > best_score:
                best_score = score
                best_match = template

        if best_match is not None and best_score >= self.thresholds['data_extraction']:
            logger.debug(f"Using best-effort template {best_match.id} (score {best_score:.2f})")
            return best_match

        return None

    # -------------------------------------------------------------------------
    # Creation & versioning
    # -------------------------------------------------------------------------

    def generate_template_version(self, platform_id: str, now: Optional[datetime] = None) -> str:
        """
        Date-based version, unique per platform: v2024-05-01.1, v2024-05-01.2, ...
        """
        stamp = (now or datetime.utcnow()).strftime('%Y-%m-%d')
        existing = self.session.query(PrivacyTemplate).filter_by(platform_id=platform_id).count()
        return f"v{stamp}.{existing + 1}"

    def create_new_template(
        self,
        platform_id: str,
        extracted_settings: Dict[str, Any],
        label: Optional[str] = None,
        created_by: str = 'system',
        commit: bool = True,
    ) -> PrivacyTemplate:
        """
        Create and persist a template whose defaults are this extraction.

        Args:
            platform_id: Owning platform
            extracted_settings: {categoryId: {settingId: value}}
            label: Human-readable platform label used in the template name
            created_by: 'system', 'admin' or a user id
            commit: Commit immediately, or only flush into the open transaction
        """
        structure = build_settings_structure(extracted_settings)
        previous = (
            self.session.query(PrivacyTemplate)
            .filter_by(platform_id=platform_id)
            .order_by(PrivacyTemplate.created_at.desc())
            .first()
        )
        version = self.generate_template_version(platform_id)
        now = datetime.utcnow()

        template = PrivacyTemplate(
            platform_id=platform_id,
            version=version,
            template_hash=compute_structure_hash(structure),
            name=f"{label or platform_id} Privacy Template {version}",
            description=f"Auto-generated template from scraping on {now.isoformat()}",
            settings_structure=structure,
            usage_count=0,
            active_user_count=0,
            is_active=True,
            previous_version_id=previous.id if previous else None,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(template)

        if commit:
            self.session.commit()
        else:
            self.session.flush()

        logger.info(
            f"Created template {version} for platform {platform_id} "
            f"({structure['metadata']['totalSettings']} settings)"
        )
        return template

    def archive_template(self, template_id: str) -> bool:
        """Mark a template inactive. Templates are never deleted."""
        template = self.get_template(template_id)
        if template is None:
            return False

        template.is_active = False
        template.updated_at = datetime.utcnow()
        self.session.commit()

        logger.info(f"Archived template {template_id} ({template.version})")
        return True

    def increment_usage(self, template_id: str, commit: bool = True) -> None:
        # Single UPDATE so concurrent scans never lose an increment
        self.session.query(PrivacyTemplate).filter_by(id=template_id).update(
            {PrivacyTemplate.usage_count: PrivacyTemplate.usage_count + 1},
            synchronize_session=False,
        )
        if commit:
            self.session.commit()

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def compare_templates(self, old: PrivacyTemplate, new: PrivacyTemplate) -> TemplateComparison:
        """
        Structural diff between two templates.

        Category additions/removals and setting removals are breaking, setting
        additions are minor. For settings on both sides, a change to ``type``
        or ``defaultValue`` is breaking and any other field change is minor.
        """
        differences: List[TemplateDifference] = []
        old_categories = old.categories
        new_categories = new.categories

        for category_id in _ordered_union(old_categories, new_categories):
            old_category = old_categories.get(category_id)
            new_category = new_categories.get(category_id)
            category_path = f"categories.{category_id}"

            if old_category is None:
                differences.append(TemplateDifference('added', category_path, 'breaking', new_value=new_category))
                continue
            if new_category is None:
                differences.append(TemplateDifference('removed', category_path, 'breaking', old_value=old_category))
                continue

            old_settings = old_category.get('settings', {})
            new_settings = new_category.get('settings', {})

            for setting_id in _ordered_union(old_settings, new_settings):
                old_setting = old_settings.get(setting_id)
                new_setting = new_settings.get(setting_id)
                setting_path = f"{category_path}.settings.{setting_id}"

                if old_setting is None:
                    differences.append(TemplateDifference('added', setting_path, 'minor', new_value=new_setting))
                elif new_setting is None:
                    differences.append(TemplateDifference('removed', setting_path, 'breaking', old_value=old_setting))
                else:
                    differences.extend(self._compare_settings(setting_path, old_setting, new_setting))

        total = max(count_settings(old.settings_structure), count_settings(new.settings_structure))
        breaking = sum(1 for d in differences if d.impact == 'breaking')
        similarity = (total - breaking) / total if total > 0 else 1.0

        return TemplateComparison(
            similarity=similarity,
            differences=differences,
            needs_new_template=similarity < self.thresholds['template_match'],
        )

    @staticmethod
    def _compare_settings(path: str, old_setting: Dict[str, Any], new_setting: Dict[str, Any]) -> List[TemplateDifference]:
        differences = []
        for key in _ordered_union(old_setting, new_setting):
            old_value = old_setting.get(key)
            new_value = new_setting.get(key)
            if not deep_equal(old_value, new_value) or (key in old_setting) != (key in new_setting):
                differences.append(TemplateDifference(
                    'modified',
                    f"{path}.{key}",
                    'breaking' if key in ('type', 'defaultValue') else 'minor',
                    old_value=old_value,
                    new_value=new_value,
                ))
        return differences

    # -------------------------------------------------------------------------
    # Compression
    # -------------------------------------------------------------------------

    def compress_user_settings(self, template: PrivacyTemplate, user_settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Keep only values that differ from the template defaults.

        Categories and settings the template does not declare are kept
        verbatim. Categories left empty are dropped.
        """
        compressed: Dict[str, Any] = {}
        categories = template.categories

        for category_id, category_settings in user_settings.items():
            template_category = categories.get(category_id)
            if template_category is None or not isinstance(category_settings, dict):
                compressed[category_id] = copy.deepcopy(category_settings)
                continue

            template_settings = template_category.get('settings', {})
            kept = {}
            for setting_id, value in category_settings.items():
                declared = template_settings.get(setting_id)
                if declared is None or not deep_equal(value, declared.get('defaultValue')):
                    kept[setting_id] = copy.deepcopy(value)

            if kept:
                compressed[category_id] = kept

        return compressed

    def decompress_user_settings(self, template: PrivacyTemplate, compressed: Dict[str, Any]) -> Dict[str, Any]:
        """Template defaults with the compressed values laid over them."""
        full: Dict[str, Any] = {}

        for category_id, category in template.categories.items():
            full[category_id] = {
                setting_id: copy.deepcopy(setting.get('defaultValue'))
                for setting_id, setting in category.get('settings', {}).items()
            }

        for category_id, category_settings in (compressed or {}).items():
            if not isinstance(category_settings, dict):
                full[category_id] = copy.deepcopy(category_settings)
                continue
            target = full.setdefault(category_id, {})
            for setting_id, value in category_settings.items():
                target[setting_id] = copy.deepcopy(value)

        return full

    def calculate_compression_stats(self, template: PrivacyTemplate, user_settings: Dict[str, Any]) -> CompressionStats:
        original_size = json_byte_size({
            'template': template.settings_structure,
            'userSettings': user_settings,
        })
        compressed_size = json_byte_size(self.compress_user_settings(template, user_settings))

        return CompressionStats(
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=compressed_size / original_size if original_size > 0 else 0.0,
            savings=original_size - compressed_size,
        )

    # -------------------------------------------------------------------------
    # Migration
    # -------------------------------------------------------------------------

    def migrate_user_settings(
        self,
        old_template: PrivacyTemplate,
        new_template: PrivacyTemplate,
        compressed_old: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Re-express a user's settings against a newer template.

        Values are carried across by declared type (see
        services.setting_values.migrate_value). Settings the user has no data
        for are skipped; the result is compressed against the new template.
        """
        full = self.decompress_user_settings(old_template, compressed_old)
        old_categories = old_template.categories
        migrated: Dict[str, Dict[str, Any]] = {}

        for category_id, category in new_template.categories.items():
            user_category = full.get(category_id)
            if not isinstance(user_category, dict):
                continue

            old_settings = (old_categories.get(category_id) or {}).get('settings', {})
            carried = {}
            for setting_id, new_setting in category.get('settings', {}).items():
                if setting_id not in user_category:
                    continue
                old_setting = old_settings.get(setting_id) or {}
                carried[setting_id] = migrate_value(
                    old_setting.get('type'),
                    new_setting.get('type'),
                    user_category[setting_id],
                    new_setting.get('defaultValue'),
                )

            if carried:
                migrated[category_id] = carried

        return self.compress_user_settings(new_template, migrated)


def _ordered_union(first: Dict[str, Any], second: Dict[str, Any]) -> List[str]:
    """Keys of first, then keys only in second, preserving insertion order."""
    keys = list(first.keys())
    keys.extend(k for k in second.keys() if k not in first)
    return keys
