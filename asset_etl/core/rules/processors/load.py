"""
LOAD-phase processors. LOAD rules are directives: the LOAD phase reads their
configs to decide conflict handling, batching and failure handling.
"""

from .base import DirectiveProcessor


class ConflictResolutionProcessor(DirectiveProcessor):
    rule_type = "CONFLICT_RESOLUTION"


class BatchSizeProcessor(DirectiveProcessor):
    rule_type = "BATCH_SIZE"


class TransactionBoundaryProcessor(DirectiveProcessor):
    rule_type = "TRANSACTION_BOUNDARY"


class RollbackStrategyProcessor(DirectiveProcessor):
    rule_type = "ROLLBACK_STRATEGY"
