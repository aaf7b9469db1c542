"""
Column alias resolution.
"""

from .alias_resolver import (
    MATCH_STRATEGIES,
    AliasMatchStrategy,
    AliasResolver,
    ExactAliasStrategy,
    NormalizedAliasStrategy,
)

__all__ = [
    "MATCH_STRATEGIES",
    "AliasMatchStrategy",
    "AliasResolver",
    "ExactAliasStrategy",
    "NormalizedAliasStrategy",
]
