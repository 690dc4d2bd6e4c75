"""
Tests for setting value parsing, type inference and cross-type migration.
"""

import pytest

from services.setting_values import (
    Bool,
    Choice,
    Text,
    parse_setting_value,
    is_compatible,
    infer_setting_type,
    migrate_value,
)


# =============================================================================
# Parsing
# =============================================================================

class TestParseSettingValue:
    """Raw values are lifted into the variant their declared type expects."""

    def test_toggle_requires_bool(self):
        assert parse_setting_value('toggle', True) == Bool(True)
        assert parse_setting_value('toggle', 'on') is None
        assert parse_setting_value('toggle', 1) is None

    @pytest.mark.parametrize('setting_type', ['radio', 'select'])
    def test_choice_requires_string(self, setting_type):
        assert parse_setting_value(setting_type, 'friends') == Choice('friends')
        assert parse_setting_value(setting_type, False) is None

    def test_text_requires_string(self):
        assert parse_setting_value('text', 'hello') == Text('hello')
        assert parse_setting_value('text', None) is None

    def test_unknown_type_never_parses(self):
        assert parse_setting_value('slider', 5) is None
        assert not is_compatible(None, True)


# =============================================================================
# Inference
# =============================================================================

class TestInferSettingType:

    @pytest.mark.parametrize('raw,expected', [
        (True, 'toggle'),
        (False, 'toggle'),
        ('On', 'toggle'),
        ('disabled', 'toggle'),
        ('friends-only', 'select'),
        (42, 'text'),
        (None, 'text'),
        ({'nested': 1}, 'text'),
    ])
    def test_inference(self, raw, expected):
        assert infer_setting_type(raw) == expected


# =============================================================================
# Migration
# =============================================================================

class TestMigrateValue:
    """Values carried across a template version change."""

    def test_same_type_passes_through(self):
        assert migrate_value('select', 'select', 'public', 'private') == 'public'
        assert migrate_value('toggle', 'toggle', False, True) is False

    def test_toggle_to_select(self):
        assert migrate_value('toggle', 'select', True, 'x') == 'enabled'
        assert migrate_value('toggle', 'select', False, 'x') == 'disabled'

    @pytest.mark.parametrize('raw,expected', [
        ('enabled', True),
        ('ON', True),
        ('True', True),
        ('1', True),
        ('limited', False),
        ('disabled', False),
        (True, True),
    ])
    def test_select_to_toggle(self, raw, expected):
        assert migrate_value('select', 'toggle', raw, False) is expected

    def test_other_changes_take_new_default(self):
        assert migrate_value('text', 'toggle', 'anything', True) is True
        assert migrate_value('toggle', 'radio', True, 'friends') == 'friends'
        assert migrate_value(None, 'select', 'x', 'default') == 'default'
