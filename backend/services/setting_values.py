"""
Setting Values - typed view over raw scraped setting values

Snapshots store plain JSON values. At the seams where a value's type matters
(template matching, type inference, migration between template versions) the
raw value is lifted into a small tagged union keyed by the setting's
declared type:

    toggle          -> Bool(bool)
    radio / select  -> Choice(str)
    text            -> Text(str)

Usage:
    from services.setting_values import parse_setting_value, migrate_value

    parse_setting_value('toggle', True)        # Bool(value=True)
    parse_setting_value('toggle', 'on')        # None (wrong runtime type)
    migrate_value('toggle', 'select', True, 'limited')   # 'enabled'
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

from constants import (
    SETTING_TYPE_TOGGLE,
    SETTING_TYPE_RADIO,
    SETTING_TYPE_SELECT,
    SETTING_TYPE_TEXT,
    TOGGLE_VOCABULARY,
    TRUTHY_CHOICES,
)


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Choice:
    value: str


@dataclass(frozen=True)
class Text:
    value: str


SettingValue = Union[Bool, Choice, Text]


def parse_setting_value(setting_type: str, raw: Any) -> Optional[SettingValue]:
    """
    Lift a raw value into the variant its declared type expects.

    Returns None when the runtime type does not fit the declared type, or the
    declared type is unknown.
    """
    if setting_type == SETTING_TYPE_TOGGLE:
        return Bool(raw) if isinstance(raw, bool) else None
    if setting_type in (SETTING_TYPE_RADIO, SETTING_TYPE_SELECT):
        return Choice(raw) if isinstance(raw, str) else None
    if setting_type == SETTING_TYPE_TEXT:
        return Text(raw) if isinstance(raw, str) else None
    return None


def is_compatible(setting_type: str, raw: Any) -> bool:
    """Whether raw has the runtime type the declared setting type expects."""
    return parse_setting_value(setting_type, raw) is not None


def infer_setting_type(raw: Any) -> str:
    """
    Guess a setting type from a freshly scraped value.

    bool -> toggle; on/off-style strings -> toggle; other strings -> select;
    anything else -> text.
    """
    if isinstance(raw, bool):
        return SETTING_TYPE_TOGGLE
    if isinstance(raw, str):
        if raw.lower() in TOGGLE_VOCABULARY:
            return SETTING_TYPE_TOGGLE
        return SETTING_TYPE_SELECT
    return SETTING_TYPE_TEXT


def bool_to_choice(value: Bool) -> Choice:
    return Choice("enabled" if value.value else "disabled")


def choice_to_bool(value: Union[Choice, Text]) -> Bool:
    return Bool(str(value.value).lower() in TRUTHY_CHOICES)


def migrate_value(old_type: Optional[str], new_type: Optional[str], raw: Any, new_default: Any) -> Any:
    """
    Carry a user's value across a template version change.

    - Same declared type: value passes through unchanged
    - toggle -> select: True/False become "enabled"/"disabled"
    - select -> toggle: "enabled"/"on"/"true"/"1" (any case) become True,
      everything else False
    - Anything else: the new setting's default
    """
    if old_type == new_type:
        return raw

    if old_type == SETTING_TYPE_TOGGLE and new_type == SETTING_TYPE_SELECT:
        return bool_to_choice(Bool(bool(raw))).value

    if old_type == SETTING_TYPE_SELECT and new_type == SETTING_TYPE_TOGGLE:
        return choice_to_bool(Choice(_to_js_string(raw))).value

    return new_default


def _to_js_string(raw: Any) -> str:
    # JSON-style spelling so True reads as "true", not "True"
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if raw is None:
        return "null"
    return str(raw)
