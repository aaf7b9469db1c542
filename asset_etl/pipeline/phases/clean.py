"""
CLEAN phase: TRIM, REGEX_REPLACE, EXACT_REPLACE and REMOVE_DUPLICATES rules.
"""

from .base import RuleDrivenPhase


class CleanPhase(RuleDrivenPhase):
    phase = "CLEAN"
