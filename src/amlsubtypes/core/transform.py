"""
Base class for immutable expression-matrix transformations.

The offline preparation is a short chain of pure steps over an
ExpressionMatrix:

    1. Detection filter (drop genes near the limit of detection)
    2. Variability filter (drop low-variance genes)
    3. Row-wise z-scaling (heatmap view)

Each step takes a matrix and returns a new one; inputs are never modified.
Parameters are recorded on the instance so the manifest can state exactly
why a gene was excluded.

Examples:
    >>> class Shift(Transform):
    ...     def __init__(self, offset: float):
    ...         super().__init__(name="Shift", params={"offset": offset})
    ...         self.offset = offset
    ...
    ...     def apply(self, matrix):
    ...         return matrix.with_data(matrix.data + self.offset)
    >>>
    >>> shifted = Shift(1.0).apply(matrix)   # matrix is unchanged
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from amlsubtypes.core.matrices import ExpressionMatrix

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for matrix transformations.

    Attributes:
        name: Human-readable transformation name (e.g., "DetectionFilter")
        params: JSON-serializable parameters, written to the build manifest
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params

    @abstractmethod
    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Execute transformation and return a new matrix.

        Must never modify the input matrix.

        Raises:
            ValueError: If transformation cannot be applied (see validate())
        """
        pass

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        """
        Check preconditions before applying the transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        return errors

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
