"""
Settings Diff Detection

Compares a user's new (compressed) settings against the previous snapshot
and produces the field-level change-set stored on the new snapshot:

    {categoryId: {settingId: {oldValue, newValue, changeType, detectedAt}}}
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .hashing import canonical_json


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality for JSON values.

    Stricter than ``==``: booleans never equal numbers (True != 1), and
    dicts/lists are compared element by element.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False

    return a == b


@dataclass
class SettingChange:
    """A single setting whose value differs from the previous snapshot."""
    category_id: str
    setting_id: str
    old_value: Any
    new_value: Any
    detected_at: str
    change_type: str = "unknown"  # 'user', 'platform' or 'unknown'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "changeType": self.change_type,
            "detectedAt": self.detected_at,
        }


def compute_setting_changes(
    previous: Optional[Dict[str, Dict[str, Any]]],
    current: Dict[str, Dict[str, Any]],
    detected_at: Optional[datetime] = None,
) -> List[SettingChange]:
    """
    List the settings in ``current`` whose value differs from ``previous``.

    Only paths present in ``current`` are inspected. Values are compared by
    their canonical JSON serialization; a path missing from ``previous``
    compares as null.

    Args:
        previous: Settings from the previous snapshot (None if first scan)
        current: Settings about to be stored
        detected_at: Timestamp stamped on every change (defaults to now)

    Returns:
        List of SettingChange, in category/setting iteration order
    """
    previous = previous or {}
    stamp = (detected_at or datetime.utcnow()).isoformat()
    changes: List[SettingChange] = []

    for category_id, current_settings in current.items():
        previous_settings = previous.get(category_id) or {}
        if not isinstance(current_settings, dict):
            continue

        for setting_id, new_value in current_settings.items():
            old_value = previous_settings.get(setting_id) if isinstance(previous_settings, dict) else None
            if canonical_json(old_value) != canonical_json(new_value):
                changes.append(SettingChange(
                    category_id=category_id,
                    setting_id=setting_id,
                    old_value=old_value,
                    new_value=new_value,
                    detected_at=stamp,
                ))

    return changes


def changes_to_dict(changes: List[SettingChange]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Nest a change list as {category: {setting: change}} for storage."""
    nested: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for change in changes:
        nested.setdefault(change.category_id, {})[change.setting_id] = change.to_dict()
    return nested


def detect_settings_changes(
    previous: Optional[Dict[str, Dict[str, Any]]],
    current: Dict[str, Dict[str, Any]],
    detected_at: Optional[datetime] = None,
) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Change-set between two settings objects, in storage form."""
    return changes_to_dict(compute_setting_changes(previous, current, detected_at))


def summarize_changes(changes: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summarize a stored change-set into counts for logging and stats.

    Args:
        changes: Nested change-set as produced by detect_settings_changes

    Returns:
        {"total": int, "by_category": {categoryId: int}}
    """
    by_category = {category: len(settings) for category, settings in (changes or {}).items() if settings}
    return {
        "total": sum(by_category.values()),
        "by_category": by_category,
    }
