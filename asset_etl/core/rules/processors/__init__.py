"""
Rule processors: one class per rule type, grouped by phase.

PROCESSORS is the closed dispatch table used by the Rule Engine; it is checked
at import time to cover every rule type exactly once.
"""

from asset_etl.core.constants import ALL_RULE_TYPES

from .base import (
    CheckProcessor,
    DirectiveProcessor,
    FieldProcessor,
    RowProcessor,
    RuleProcessingError,
    RuleProcessor,
    TableProcessor,
    TextProcessor,
    ValidationError,
    ValueSkipped,
)
from .clean import (
    ExactReplaceProcessor,
    RegexReplaceProcessor,
    RemoveDuplicatesProcessor,
    TrimProcessor,
)
from .extract import (
    ColumnMapperProcessor,
    DelimiterDetectorProcessor,
    EncodingDetectorProcessor,
    HeaderValidatorProcessor,
    normalize_header,
)
from .load import (
    BatchSizeProcessor,
    ConflictResolutionProcessor,
    RollbackStrategyProcessor,
    TransactionBoundaryProcessor,
)
from .mapping import (
    DefaultValueProcessor,
    EnumMappingProcessor,
    FieldMappingProcessor,
    ReferenceLookupProcessor,
)
from .transform import (
    CalculateFieldProcessor,
    DateFormatProcessor,
    LowercaseProcessor,
    NumericFormatProcessor,
    TitleCaseProcessor,
    UppercaseProcessor,
)
from .validate import (
    DataTypeCheckProcessor,
    FormatValidatorProcessor,
    RangeValidatorProcessor,
    RequiredFieldProcessor,
)

PROCESSOR_CLASSES: list[type[RuleProcessor]] = [
    EncodingDetectorProcessor,
    ColumnMapperProcessor,
    DelimiterDetectorProcessor,
    HeaderValidatorProcessor,
    RequiredFieldProcessor,
    DataTypeCheckProcessor,
    RangeValidatorProcessor,
    FormatValidatorProcessor,
    TrimProcessor,
    RegexReplaceProcessor,
    ExactReplaceProcessor,
    RemoveDuplicatesProcessor,
    UppercaseProcessor,
    LowercaseProcessor,
    TitleCaseProcessor,
    DateFormatProcessor,
    NumericFormatProcessor,
    CalculateFieldProcessor,
    FieldMappingProcessor,
    EnumMappingProcessor,
    ReferenceLookupProcessor,
    DefaultValueProcessor,
    ConflictResolutionProcessor,
    BatchSizeProcessor,
    TransactionBoundaryProcessor,
    RollbackStrategyProcessor,
]


def _build_registry(classes: list[type[RuleProcessor]]) -> dict[str, RuleProcessor]:
    registry: dict[str, RuleProcessor] = {}
    for processor_class in classes:
        if processor_class.rule_type in registry:
            raise RuntimeError(f"Duplicate processor for rule type {processor_class.rule_type}")
        registry[processor_class.rule_type] = processor_class()

    missing = set(ALL_RULE_TYPES) - set(registry)
    if missing:
        raise RuntimeError(f"Rule types without a processor: {', '.join(sorted(missing))}")
    return registry


PROCESSORS: dict[str, RuleProcessor] = _build_registry(PROCESSOR_CLASSES)


def get_processor(rule_type: str) -> RuleProcessor:
    """
    Return the processor for a rule type.

    Raises:
        ValueError: If the rule type is unknown
    """
    processor = PROCESSORS.get(rule_type)
    if processor is None:
        raise ValueError(f"Unknown rule type: {rule_type}")
    return processor


__all__ = [
    "PROCESSORS",
    "get_processor",
    "RuleProcessor",
    "FieldProcessor",
    "TextProcessor",
    "RowProcessor",
    "TableProcessor",
    "CheckProcessor",
    "DirectiveProcessor",
    "RuleProcessingError",
    "ValidationError",
    "ValueSkipped",
    "normalize_header",
]
