"""
Consistent JSON Hashing and Sizing

Provides deterministic serialization of JSON data for:
- Template structure hashes (same structure -> same hash)
- Storage size measurement (UTF-8 bytes of the canonical form)
- String-serialized value comparison in change detection
"""
import hashlib
import json
from typing import Any, Dict


def canonical_json(data: Any) -> str:
    """
    Serialize data to canonical JSON.

    Keys are sorted at every level and separators are compact, so two
    structurally equal objects always serialize to the same string.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def json_byte_size(data: Any) -> int:
    """UTF-8 byte length of the canonical JSON form of data."""
    return len(canonical_json(data).encode("utf-8"))


def normalize_json_for_hash(data: Any) -> Any:
    """
    Normalize JSON data for consistent hashing.

    - Sorts dictionary keys
    - Normalizes whitespace inside strings
    - Rounds floats to avoid precision noise

    None is kept: a setting whose default is null is structurally different
    from one with no default at all.
    """
    if isinstance(data, dict):
        return {k: normalize_json_for_hash(v) for k, v in sorted(data.items())}

    if isinstance(data, (list, tuple)):
        # Preserve order
        return [normalize_json_for_hash(item) for item in data]

    if isinstance(data, float):
        return round(data, 10)

    if isinstance(data, str):
        return " ".join(data.split())

    return data


def compute_json_hash(data: Any) -> str:
    """
    Compute SHA256 hash of JSON data.

    Args:
        data: JSON-serializable data

    Returns:
        64-character hex SHA256 hash
    """
    normalized = normalize_json_for_hash(data)
    return hashlib.sha256(canonical_json(normalized).encode("utf-8")).hexdigest()


def compute_structure_hash(settings_structure: Dict[str, Any]) -> str:
    """
    Hash a template settings structure.

    Only ``categories`` takes part: the ``metadata`` block carries a scrape
    timestamp that would otherwise make every template hash unique.
    """
    return compute_json_hash({"categories": settings_structure.get("categories", {})})
