"""
amlsubtypes - Gene expression across common AML genetic subtypes

Offline preparation of the BeatAML cohort (expression filtering, subtype
panel, per-gene rank-sum tests with row-wise FDR) and a lookup layer that
turns one gene symbol into heatmap and boxplot data.
"""

__version__ = "0.1.0"

from amlsubtypes.core.errors import (
    AMLSubtypesError,
    DataContractError,
    DegenerateGroupError,
    InvalidGeneQueryError,
)
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.config import PipelineConfig

__all__ = [
    "AMLSubtypesError",
    "DataContractError",
    "DegenerateGroupError",
    "InvalidGeneQueryError",
    "ExpressionMatrix",
    "MutationMatrix",
    "PipelineConfig",
]
