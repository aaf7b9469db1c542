"""
Unit tests for rule processors.

Includes property-based testing with hypothesis for the CLEAN processors.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from asset_etl.core.models import PipelineRow, TabularData
from asset_etl.core.rules import parse_rule_config
from asset_etl.core.rules.processors import PROCESSORS, RuleProcessingError, ValidationError, ValueSkipped


def process(rule_type, value, config=None):
    return PROCESSORS[rule_type].process_value(value, parse_rule_config(rule_type, config or {}))


def check(rule_type, field, record, config=None):
    PROCESSORS[rule_type].check(field, record.get(field), record, parse_rule_config(rule_type, config or {}))


def table(rule_type, data, config=None):
    return PROCESSORS[rule_type].process_table(data, parse_rule_config(rule_type, config or {}))


@pytest.mark.unit
class TestCleanProcessors:
    """Tests for TRIM, REGEX_REPLACE, EXACT_REPLACE and REMOVE_DUPLICATES"""

    def test_trim_sides(self):
        assert process("TRIM", "  a  ") == "a"
        assert process("TRIM", "  a  ", {"sides": "left"}) == "a  "
        assert process("TRIM", "  a  ", {"sides": "right"}) == "  a"

    def test_trim_custom_chars(self):
        assert process("TRIM", "**a**", {"customChars": "*"}) == "a"

    def test_trim_passes_none_and_skips_numbers(self):
        assert process("TRIM", None) is None
        with pytest.raises(ValueSkipped):
            process("TRIM", 42)

    @given(st.text())
    def test_trim_is_idempotent(self, value):
        once = process("TRIM", value)
        assert process("TRIM", once) == once

    def test_regex_global_and_first_only(self):
        assert process("REGEX_REPLACE", "a-b-c", {"pattern": "-", "replacement": "_", "flags": "g"}) == "a_b_c"
        assert process("REGEX_REPLACE", "a-b-c", {"pattern": "-", "replacement": "_", "flags": ""}) == "a_b-c"

    def test_regex_group_references(self):
        config = {"pattern": r"(\w+)@(\w+)", "replacement": "$2 at $1 ($&) $$"}
        assert process("REGEX_REPLACE", "joe@acme", config) == "acme at joe (joe@acme) $"

    def test_carrier_normalization(self):
        config = {
            "pattern": r"\b(carrier|CARRIER|Carrier Corp\.?)\b",
            "replacement": "Carrier",
            "flags": "gi",
        }
        assert process("REGEX_REPLACE", "carrier", config) == "Carrier"
        assert process("REGEX_REPLACE", "CARRIER units", config) == "Carrier units"

    def test_exact_replace_longest_first(self):
        config = {"replacements": [{"from": "Corp", "to": "X"}, {"from": "Carrier Corp.", "to": "Carrier"}]}
        assert process("EXACT_REPLACE", "Carrier Corp.", config) == "Carrier"

    def test_exact_replace_first_match_wins(self):
        config = {"replacements": [{"from": "ab", "to": "x"}, {"from": "cd", "to": "y"}]}
        assert process("EXACT_REPLACE", "ab cd ab", config) == "x cd x"

    def test_exact_replace_case_insensitive(self):
        config = {"replacements": [{"from": "acme", "to": "ACME Inc"}], "caseSensitive": False}
        assert process("EXACT_REPLACE", "Acme", config) == "ACME Inc"

    def test_exact_replace_whole_value(self):
        config = {"replacements": [{"from": "N/A", "to": ""}], "wholeValue": True}
        assert process("EXACT_REPLACE", "N/A", config) == ""
        assert process("EXACT_REPLACE", "N/A later", config) == "N/A later"

    @given(st.text(alphabet="abcdefg .", max_size=30))
    def test_carrier_replacement_is_stable(self, value):
        config = {"replacements": [{"from": "Carrier Corp.", "to": "Carrier"}]}
        once = process("EXACT_REPLACE", f"{value}Carrier Corp.", config)
        assert process("EXACT_REPLACE", once, config) == once

    def test_remove_duplicate_tokens(self):
        assert process("REMOVE_DUPLICATES", "red, blue,Red ,green") == "red,blue,green"
        assert process("REMOVE_DUPLICATES", "a|a|b", {"delimiter": "|", "caseSensitive": True}) == "a|b"

    def test_remove_duplicate_rows(self):
        processor = PROCESSORS["REMOVE_DUPLICATES"]
        config = parse_rule_config("REMOVE_DUPLICATES", {"scope": "rows"})
        rows = [
            PipelineRow(row_number=1, data={"tag": "A-1"}),
            PipelineRow(row_number=2, data={"tag": " a-1 "}),
            PipelineRow(row_number=3, data={"tag": None}),
            PipelineRow(row_number=4, data={"tag": None}),
        ]

        kept, dropped = processor.process_rows(rows, ["tag"], config)

        assert processor.scope_for(config) == "rowset"
        assert [row.row_number for row in kept] == [1, 3, 4]
        assert dropped == [2]


@pytest.mark.unit
class TestValidateProcessors:
    """Tests for VALIDATE checks"""

    def test_required_field(self):
        check("REQUIRED_FIELD", "name", {"name": "x"})
        for record in ({}, {"name": None}, {"name": "  "}):
            with pytest.raises(ValidationError):
                check("REQUIRED_FIELD", "name", record)

    def test_required_allow_empty(self):
        check("REQUIRED_FIELD", "name", {"name": ""}, {"allowEmpty": True})

    @pytest.mark.parametrize("expected,value", [
        ("integer", "12"),
        ("integer", "1,200"),
        ("number", "3.5"),
        ("boolean", "Yes"),
        ("date", "2024-02-29"),
        ("date", "03/15/2023"),
        ("string", 5),
    ])
    def test_type_check_passes(self, expected, value):
        check("DATA_TYPE_CHECK", "f", {"f": value}, {"expectedType": expected})

    @pytest.mark.parametrize("expected,value", [
        ("integer", "1.5"),
        ("number", "abc"),
        ("boolean", "maybe"),
        ("date", "2024-13-45"),
    ])
    def test_type_check_fails(self, expected, value):
        with pytest.raises(ValidationError):
            check("DATA_TYPE_CHECK", "f", {"f": value}, {"expectedType": expected})

    def test_type_check_ignores_blank(self):
        check("DATA_TYPE_CHECK", "f", {"f": ""}, {"expectedType": "number"})

    def test_range(self):
        config = {"min": 0, "max": 100}
        check("RANGE_VALIDATOR", "cost", {"cost": "50"}, config)
        with pytest.raises(ValidationError, match="less than minimum"):
            check("RANGE_VALIDATOR", "cost", {"cost": -1}, config)
        with pytest.raises(ValidationError, match="exceeds maximum"):
            check("RANGE_VALIDATOR", "cost", {"cost": "101"}, config)

    def test_format_full_match(self):
        config = {"pattern": r"[A-Z]+-\d{3}"}
        check("FORMAT_VALIDATOR", "tag", {"tag": "HVAC-001"}, config)
        with pytest.raises(ValidationError):
            check("FORMAT_VALIDATOR", "tag", {"tag": "HVAC-001x"}, config)

    def test_custom_message(self):
        with pytest.raises(ValidationError) as exc_info:
            check("REQUIRED_FIELD", "tag", {}, {"message": "Asset tag is mandatory"})
        assert exc_info.value.message == "Asset tag is mandatory"


@pytest.mark.unit
class TestTransformProcessors:
    """Tests for TRANSFORM processors"""

    def test_case_conversion(self):
        assert process("TO_UPPERCASE", "hvac-1") == "HVAC-1"
        assert process("TO_LOWERCASE", "HVAC") == "hvac"
        assert process("TITLE_CASE", "rooftop  unit") == "Rooftop  Unit"

    def test_date_format(self):
        assert process("DATE_FORMAT", "03/15/2023") == "2023-03-15"
        assert process("DATE_FORMAT", "2023-03-15", {"outputFormat": "%d.%m.%Y"}) == "15.03.2023"
        assert process("DATE_FORMAT", "") == ""

    def test_date_format_unrecognized(self):
        with pytest.raises(RuleProcessingError):
            process("DATE_FORMAT", "someday")

    def test_numeric_format(self):
        assert process("NUMERIC_FORMAT", "$12,500.00") == 12500
        assert process("NUMERIC_FORMAT", "3.14159", {"decimals": 2}) == 3.14
        assert process("NUMERIC_FORMAT", "7", {"decimals": 2, "output": "string"}) == "7.00"

    def test_numeric_format_rejects_text(self):
        with pytest.raises(RuleProcessingError):
            process("NUMERIC_FORMAT", "twelve")

    def test_calculate_field(self):
        processor = PROCESSORS["CALCULATE_FIELD"]
        concat = parse_rule_config("CALCULATE_FIELD", {"outputField": "location", "operation": "concat", "separator": "/"})
        divide = parse_rule_config("CALCULATE_FIELD", {"outputField": "unit", "operation": "divide"})
        data = {"Building": "B1", "Floor": " 2 ", "Room": "", "Total": "100", "Qty": "4", "Zero": "0"}

        assert processor.process_row(data, ["Building", "Floor", "Room"], concat)["location"] == "B1/2"
        assert processor.process_row(data, ["Total", "Qty"], divide)["unit"] == 25
        with pytest.raises(RuleProcessingError, match="Division by zero"):
            processor.process_row(data, ["Total", "Zero"], divide)


@pytest.mark.unit
class TestMapProcessors:
    """Tests for MAP processors"""

    def test_enum_mapping(self):
        config = {"mapping": {"In Service": "ACTIVE", "Broken": "BROKEN"}}
        assert process("ENUM_MAPPING", " in service ", config) == "ACTIVE"
        assert process("ENUM_MAPPING", "other", config) == "other"
        assert process("ENUM_MAPPING", "other", {**config, "default": "UNKNOWN"}) == "UNKNOWN"
        with pytest.raises(RuleProcessingError):
            process("ENUM_MAPPING", "other", {**config, "strict": True})

    def test_reference_lookup(self):
        processor = PROCESSORS["REFERENCE_LOOKUP"]
        config = parse_rule_config("REFERENCE_LOOKUP", {"table": {"B1": "North Campus"}, "outputField": "location"})
        strict = parse_rule_config("REFERENCE_LOOKUP", {"table": {"B1": "North Campus"}, "onMissing": "error"})

        assert processor.process_row({"building": "b1"}, ["building"], config)["location"] == "North Campus"
        with pytest.raises(RuleProcessingError):
            processor.process_row({"building": "B9"}, ["building"], strict)

    def test_default_value(self):
        processor = PROCESSORS["DEFAULT_VALUE"]
        config = parse_rule_config("DEFAULT_VALUE", {"value": "GOOD"})
        keep_empty = parse_rule_config("DEFAULT_VALUE", {"value": "GOOD", "treatEmptyAsMissing": False})

        assert processor.process_row({}, ["condition"], config) == {"condition": "GOOD"}
        assert processor.process_row({"condition": " "}, ["condition"], config) == {"condition": "GOOD"}
        assert processor.process_row({"condition": ""}, ["condition"], keep_empty) == {"condition": ""}
        assert processor.process_row({"condition": "FAIR"}, ["condition"], config) == {"condition": "FAIR"}


@pytest.mark.unit
class TestExtractProcessors:
    """Tests for EXTRACT table processors"""

    def test_encoding_detector_decodes_bytes(self):
        raw = TabularData(headers=[b"\xef\xbb\xbfAsset Tag", b"Caf\xe9"], rows=[[b"A-1", "x"]])

        result, warnings = table("ENCODING_DETECTOR", raw)

        assert result.headers == ["Asset Tag", "Café"]
        assert result.rows == [["A-1", "x"]]
        assert warnings

    def test_encoding_detector_fails_when_nothing_decodes(self):
        raw = TabularData(headers=[b"\xff\xfe"], rows=[])
        with pytest.raises(RuleProcessingError):
            table("ENCODING_DETECTOR", raw, {"encodings": ["ascii"]})

    def test_delimiter_detector_resplits(self):
        raw = TabularData(headers=["Asset Tag;Asset Name"], rows=[["A-1;Pump"], ["A-2;Fan"]])

        result, _ = table("DELIMITER_DETECTOR", raw)

        assert result.headers == ["Asset Tag", "Asset Name"]
        assert result.rows == [["A-1", "Pump"], ["A-2", "Fan"]]

    def test_delimiter_detector_leaves_multi_column_tables(self):
        raw = TabularData(headers=["a", "b"], rows=[["1", "2"]])
        result, warnings = table("DELIMITER_DETECTOR", raw)

        assert result == raw
        assert warnings == []

    def test_column_mapper(self):
        raw = TabularData(headers=["Tag  #", "Name"], rows=[])
        result, _ = table("COLUMN_MAPPER", raw, {"mapping": {"Tag #": "Asset Tag"}})
        assert result.headers == ["Asset Tag", "Name"]

    def test_header_validator(self):
        raw = TabularData(headers=["asset tag"], rows=[])

        with pytest.raises(RuleProcessingError) as exc_info:
            table("HEADER_VALIDATOR", raw, {"required": ["Asset Tag", "Asset Name"]})
        assert exc_info.value.fatal is True
        assert "Asset Name" in exc_info.value.message

        _, warnings = table("HEADER_VALIDATOR", raw, {"required": ["Asset Name"], "abortOnMissing": False})
        assert warnings == ["Missing required headers: Asset Name"]
