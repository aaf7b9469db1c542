"""
TRANSFORM phase: case conversion, date and numeric formatting, calculated fields.
"""

from .base import RuleDrivenPhase


class TransformPhase(RuleDrivenPhase):
    phase = "TRANSFORM"
