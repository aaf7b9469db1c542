"""
VALIDATE phase: flag rows that break constraints without changing values.
"""

from asset_etl.core.models import PipelineRow
from asset_etl.observability.logger import get_logger

from .base import PhaseContext, PhaseOutput, RuleDrivenPhase

logger = get_logger(__name__)


class ValidatePhase(RuleDrivenPhase):
    """
    Runs REQUIRED_FIELD, DATA_TYPE_CHECK, RANGE_VALIDATOR and FORMAT_VALIDATOR.

    A failed check with severity "error" marks the row rejected: it keeps
    flowing through the later phases for diagnostics but is not loaded.
    Severity "warning" only adds a warning.
    """

    phase = "VALIDATE"

    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        output = super().run(rows, context)
        rejected = sum(1 for row in output.rows if row.rejected)
        if rejected:
            logger.info(f"{rejected} of {len(output.rows)} rows rejected by validation")
        return output
