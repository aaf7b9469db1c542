"""
Pipeline rule configs, processors, engine and configuration loading.
"""

from .configs import (
    RULE_CONFIG_MODELS,
    RuleConfig,
    RuleConfigError,
    parse_rule_config,
    validate_rule_definition,
)
from .rule_config import RuleConfigBuilder, RuleConfigLoader
from .rule_engine import RuleApplication, RuleEngine

__all__ = [
    "RULE_CONFIG_MODELS",
    "RuleConfig",
    "RuleConfigError",
    "parse_rule_config",
    "validate_rule_definition",
    "RuleApplication",
    "RuleEngine",
    "RuleConfigLoader",
    "RuleConfigBuilder",
]
