"""
Rule configuration management.

Loads pipeline rules and column aliases from YAML seed files and provides a
fluent builder for assembling rule sets in code.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from asset_etl.core.models import ColumnAlias, PipelineRule
from asset_etl.core.rules.configs import RuleConfigError, validate_rule_definition


class RuleConfigLoader:
    """
    Loads pipeline rules and column aliases from YAML configuration files.

    Expected YAML format:
    ```yaml
    rules:
      - name: Trim whitespace
        phase: CLEAN
        type: TRIM
        target: "*"
        priority: 1
        config:
          sides: both

    aliases:
      - csv_alias: Asset ID
        asset_field: assetTag
        confidence: 0.95
    ```
    Either section may be omitted.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the rule config loader.

        Args:
            config_path: Path to the YAML configuration file

        Raises:
            FileNotFoundError: If the file does not exist
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Rule configuration file not found: {config_path}")

    def _load(self) -> dict[str, Any]:
        with open(self.config_path) as f:
            config = yaml.safe_load(f)
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ValueError(f"{self.config_path} must contain a mapping at the top level")
        return config

    def load_rules(self) -> list[PipelineRule]:
        """
        Load and validate the rules section.

        Returns:
            Rules in file order

        Raises:
            ValueError: If the section is malformed or a rule is invalid
        """
        section = self._load().get("rules") or []
        if not isinstance(section, list):
            raise ValueError("'rules' must be a list")

        rules = []
        for idx, rule_def in enumerate(section):
            if not isinstance(rule_def, dict):
                raise ValueError(f"Rule #{idx} must be a mapping")
            payload = dict(rule_def)
            payload.setdefault("name", f"{payload.get('phase', 'rule')}_{payload.get('type', idx)}_{idx}".lower())
            try:
                rules.append(validate_rule_definition(payload))
            except RuleConfigError as e:
                raise ValueError(f"Rule #{idx} ({payload['name']}) is invalid: {e.message}") from e
        return rules

    def load_aliases(self) -> list[ColumnAlias]:
        """
        Load and validate the aliases section.

        Returns:
            Column aliases in file order

        Raises:
            ValueError: If the section is malformed, an alias is invalid or repeated
        """
        section = self._load().get("aliases") or []
        if not isinstance(section, list):
            raise ValueError("'aliases' must be a list")

        aliases = []
        seen: set[str] = set()
        for idx, alias_def in enumerate(section):
            try:
                alias = ColumnAlias.model_validate(alias_def)
            except PydanticValidationError as e:
                raise ValueError(f"Alias #{idx} is invalid: {e}") from e
            if alias.csv_alias in seen:
                raise ValueError(f"Alias #{idx}: duplicate csv_alias '{alias.csv_alias}'")
            seen.add(alias.csv_alias)
            aliases.append(alias)
        return aliases


class RuleConfigBuilder:
    """
    Fluent builder for rule sets.

    Rules without an explicit priority get increasing priorities in the order
    they are added (10, 20, 30, ...).

    Example:
        rules = RuleConfigBuilder() \\
            .add_trim("*") \\
            .add_exact_replace("Manufacturer", {"Carrier Corp.": "Carrier"}) \\
            .build()
    """

    PRIORITY_STEP = 10

    def __init__(self):
        self.rules: list[dict[str, Any]] = []

    def add_rule(
        self,
        phase: str,
        rule_type: str,
        target: str = "*",
        config: dict[str, Any] | None = None,
        name: str | None = None,
        priority: int | None = None,
        is_active: bool = True,
    ) -> "RuleConfigBuilder":
        if priority is None:
            priority = (len(self.rules) + 1) * self.PRIORITY_STEP
        self.rules.append({
            "name": name or f"{target.replace('*', 'all')}_{rule_type.lower()}_{len(self.rules)}",
            "phase": phase,
            "type": rule_type,
            "target": target,
            "config": config or {},
            "priority": priority,
            "is_active": is_active,
        })
        return self

    # EXTRACT

    def add_encoding_detector(self, encodings: list[str] | None = None, **kwargs) -> "RuleConfigBuilder":
        config = {"encodings": encodings} if encodings else {}
        return self.add_rule("EXTRACT", "ENCODING_DETECTOR", config=config, **kwargs)

    def add_delimiter_detector(self, candidates: list[str] | None = None, **kwargs) -> "RuleConfigBuilder":
        config = {"candidates": candidates} if candidates else {}
        return self.add_rule("EXTRACT", "DELIMITER_DETECTOR", config=config, **kwargs)

    def add_column_mapper(self, mapping: dict[str, str], **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("EXTRACT", "COLUMN_MAPPER", config={"mapping": mapping}, **kwargs)

    def add_header_validator(
        self, required: list[str], abort_on_missing: bool = True, **kwargs
    ) -> "RuleConfigBuilder":
        config = {"required": required, "abort_on_missing": abort_on_missing}
        return self.add_rule("EXTRACT", "HEADER_VALIDATOR", config=config, **kwargs)

    # VALIDATE

    def add_required_field(self, field: str, severity: str = "error", **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("VALIDATE", "REQUIRED_FIELD", field, {"severity": severity}, **kwargs)

    def add_type_check(
        self, field: str, expected_type: str, severity: str = "error", **kwargs
    ) -> "RuleConfigBuilder":
        config = {"expected_type": expected_type, "severity": severity}
        return self.add_rule("VALIDATE", "DATA_TYPE_CHECK", field, config, **kwargs)

    def add_range(
        self,
        field: str,
        min_value: float | None = None,
        max_value: float | None = None,
        severity: str = "error",
        **kwargs,
    ) -> "RuleConfigBuilder":
        config: dict[str, Any] = {"severity": severity}
        if min_value is not None:
            config["min"] = min_value
        if max_value is not None:
            config["max"] = max_value
        return self.add_rule("VALIDATE", "RANGE_VALIDATOR", field, config, **kwargs)

    def add_format(self, field: str, pattern: str, severity: str = "error", **kwargs) -> "RuleConfigBuilder":
        config = {"pattern": pattern, "severity": severity}
        return self.add_rule("VALIDATE", "FORMAT_VALIDATOR", field, config, **kwargs)

    # CLEAN

    def add_trim(self, target: str = "*", sides: str = "both", **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("CLEAN", "TRIM", target, {"sides": sides}, **kwargs)

    def add_regex_replace(
        self, target: str, pattern: str, replacement: str = "", flags: str = "g", **kwargs
    ) -> "RuleConfigBuilder":
        config = {"pattern": pattern, "replacement": replacement, "flags": flags}
        return self.add_rule("CLEAN", "REGEX_REPLACE", target, config, **kwargs)

    def add_exact_replace(
        self, target: str, replacements: dict[str, str], case_sensitive: bool = True, **kwargs
    ) -> "RuleConfigBuilder":
        config = {
            "replacements": [{"from": source, "to": dest} for source, dest in replacements.items()],
            "case_sensitive": case_sensitive,
        }
        return self.add_rule("CLEAN", "EXACT_REPLACE", target, config, **kwargs)

    def add_remove_duplicates(
        self, target: str, delimiter: str = ",", scope: str = "value", **kwargs
    ) -> "RuleConfigBuilder":
        config = {"delimiter": delimiter, "scope": scope}
        return self.add_rule("CLEAN", "REMOVE_DUPLICATES", target, config, **kwargs)

    # TRANSFORM

    def add_case(self, target: str, rule_type: str = "TO_UPPERCASE", **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("TRANSFORM", rule_type, target, {}, **kwargs)

    def add_date_format(self, target: str, output_format: str = "%Y-%m-%d", **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("TRANSFORM", "DATE_FORMAT", target, {"output_format": output_format}, **kwargs)

    def add_numeric_format(self, target: str, decimals: int | None = None, **kwargs) -> "RuleConfigBuilder":
        config = {"decimals": decimals} if decimals is not None else {}
        return self.add_rule("TRANSFORM", "NUMERIC_FORMAT", target, config, **kwargs)

    def add_calculated_field(
        self, target: str, output_field: str, operation: str, separator: str = " ", **kwargs
    ) -> "RuleConfigBuilder":
        config = {"output_field": output_field, "operation": operation, "separator": separator}
        return self.add_rule("TRANSFORM", "CALCULATE_FIELD", target, config, **kwargs)

    # MAP

    def add_field_mapping(self, mappings: dict[str, str], **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("MAP", "FIELD_MAPPING", "*", {"mappings": mappings}, **kwargs)

    def add_enum_mapping(
        self, target: str, mapping: dict[str, str], default: str | None = None, strict: bool = False, **kwargs
    ) -> "RuleConfigBuilder":
        config: dict[str, Any] = {"mapping": mapping, "strict": strict}
        if default is not None:
            config["default"] = default
        return self.add_rule("MAP", "ENUM_MAPPING", target, config, **kwargs)

    def add_reference_lookup(
        self, target: str, table: dict[str, Any], output_field: str | None = None,
        on_missing: str = "keep", **kwargs
    ) -> "RuleConfigBuilder":
        config: dict[str, Any] = {"table": table, "on_missing": on_missing}
        if output_field:
            config["output_field"] = output_field
        return self.add_rule("MAP", "REFERENCE_LOOKUP", target, config, **kwargs)

    def add_default_value(self, target: str, value: Any, **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("MAP", "DEFAULT_VALUE", target, {"value": value}, **kwargs)

    # LOAD

    def add_conflict_resolution(self, strategy: str = "overwrite", **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("LOAD", "CONFLICT_RESOLUTION", config={"strategy": strategy}, **kwargs)

    def add_batch_size(self, size: int, **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("LOAD", "BATCH_SIZE", config={"size": size}, **kwargs)

    def add_transaction_boundary(self, scope: str, **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("LOAD", "TRANSACTION_BOUNDARY", config={"scope": scope}, **kwargs)

    def add_rollback_strategy(self, on_failure: str, **kwargs) -> "RuleConfigBuilder":
        return self.add_rule("LOAD", "ROLLBACK_STRATEGY", config={"on_failure": on_failure}, **kwargs)

    def build(self, validate: bool = True) -> list[PipelineRule]:
        """
        Build the rule list.

        Args:
            validate: Validate each config against its type's schema

        Returns:
            PipelineRule instances in insertion order

        Raises:
            RuleConfigError: If validate is set and a rule is invalid
        """
        if validate:
            return [validate_rule_definition(rule) for rule in self.rules]
        return [PipelineRule.model_validate(rule) for rule in self.rules]
