"""
Core data structures shared by every stage of the pipeline.

1. ExpressionMatrix: genes x patients expression values
2. MutationMatrix: patients x subtypes binary mutation calls
3. Transform: abstract base class for immutable matrix transformations
4. Error taxonomy: DataContractError, DegenerateGroupError, InvalidGeneQueryError
"""

from amlsubtypes.core.errors import (
    AMLSubtypesError,
    DataContractError,
    DegenerateGroupError,
    InvalidGeneQueryError,
)
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.core.transform import Transform

__all__ = [
    'AMLSubtypesError',
    'DataContractError',
    'DegenerateGroupError',
    'InvalidGeneQueryError',
    'ExpressionMatrix',
    'MutationMatrix',
    'Transform',
]
