"""Scraper utility functions."""

from .hashing import (
    canonical_json,
    json_byte_size,
    compute_json_hash,
    compute_structure_hash,
    normalize_json_for_hash,
)
from .diff import (
    SettingChange,
    deep_equal,
    compute_setting_changes,
    changes_to_dict,
    detect_settings_changes,
    summarize_changes,
)

__all__ = [
    "canonical_json",
    "json_byte_size",
    "compute_json_hash",
    "compute_structure_hash",
    "normalize_json_for_hash",
    "SettingChange",
    "deep_equal",
    "compute_setting_changes",
    "changes_to_dict",
    "detect_settings_changes",
    "summarize_changes",
]
