"""
Unit tests for rule config schemas and rule definition validation.
"""

import re

import pytest

from asset_etl.core.rules import RuleConfigError, parse_rule_config, validate_rule_definition
from asset_etl.core.rules.configs import (
    ConflictResolutionConfig,
    ExactReplaceConfig,
    RegexReplaceConfig,
    compile_js_flags,
)


@pytest.mark.unit
class TestParseRuleConfig:
    """Tests for parse_rule_config"""

    def test_camel_and_snake_case_keys(self):
        camel = parse_rule_config("EXACT_REPLACE", {"replacements": [{"from": "a", "to": "b"}], "caseSensitive": False})
        snake = parse_rule_config("EXACT_REPLACE", {"replacements": [{"from": "a", "to": "b"}], "case_sensitive": False})

        assert isinstance(camel, ExactReplaceConfig)
        assert camel.case_sensitive is False
        assert snake.case_sensitive is False

    def test_unknown_keys_rejected(self):
        with pytest.raises(RuleConfigError) as exc_info:
            parse_rule_config("TRIM", {"sides": "both", "bogus": 1})

        assert exc_info.value.rule_type == "TRIM"

    def test_invalid_regex_rejected(self):
        with pytest.raises(RuleConfigError) as exc_info:
            parse_rule_config("REGEX_REPLACE", {"pattern": "([unclosed", "replacement": "x"})

        assert "Invalid regex pattern" in exc_info.value.message

    def test_unknown_flag_rejected(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("REGEX_REPLACE", {"pattern": "a", "flags": "gx"})

    def test_unknown_rule_type(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("NOPE", {})

    def test_config_must_be_object(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("TRIM", ["both"])

    def test_range_requires_a_bound(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("RANGE_VALIDATOR", {"severity": "error"})

    def test_range_bounds_ordered(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("RANGE_VALIDATOR", {"min": 10, "max": 1})

    def test_field_mapping_targets_must_be_asset_fields(self):
        with pytest.raises(RuleConfigError) as exc_info:
            parse_rule_config("FIELD_MAPPING", {"mappings": {"Tag #": "tagNumber"}})

        assert "tagNumber" in exc_info.value.message

    def test_key_field_restricted_to_asset_tag(self):
        assert ConflictResolutionConfig().key_field == "assetTag"
        with pytest.raises(RuleConfigError):
            parse_rule_config("CONFLICT_RESOLUTION", {"strategy": "merge", "keyField": "serialNumber"})

    def test_batch_size_bounds(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("BATCH_SIZE", {"size": 0})
        assert parse_rule_config("BATCH_SIZE", {"size": 250}).size == 250

    def test_defaults_apply(self):
        config = parse_rule_config("REGEX_REPLACE", {"pattern": r"\s+"})

        assert isinstance(config, RegexReplaceConfig)
        assert config.flags == "g"
        assert config.replacement == ""


@pytest.mark.unit
class TestValidateRuleDefinition:
    """Tests for validate_rule_definition"""

    def test_valid_definition(self):
        rule = validate_rule_definition({
            "name": "Trim",
            "phase": "CLEAN",
            "type": "TRIM",
            "config": {"sides": "left"},
        })

        assert rule.priority == 100
        assert rule.is_active is True

    def test_wrong_phase(self):
        with pytest.raises(RuleConfigError):
            validate_rule_definition({"name": "x", "phase": "LOAD", "type": "TRIM"})

    def test_invalid_config(self):
        with pytest.raises(RuleConfigError) as exc_info:
            validate_rule_definition({
                "name": "broken",
                "phase": "CLEAN",
                "type": "REGEX_REPLACE",
                "config": {"pattern": "("},
            })

        assert exc_info.value.rule_name == "broken"


@pytest.mark.unit
def test_js_flags_translate():
    assert compile_js_flags("gi") == re.IGNORECASE
    assert compile_js_flags("ms") == re.MULTILINE | re.DOTALL
    assert compile_js_flags("") == 0
