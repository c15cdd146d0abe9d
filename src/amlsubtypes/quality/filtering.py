"""
Expression filters and row-wise scaling for the queryable gene set.

Two filters decide which genes can be queried, then a z-scaling step
derives the heatmap view:

    DetectionFilter:
        Low-expression genes are near the limit of detection for RNA-seq
        quantification, so their measurements are low accuracy. Keep genes
        whose value exceeds a threshold in more than a fraction of patients.

    VariabilityFilter:
        Low-variance genes will not show large differences between mutated
        and unmutated patients. Keep genes whose across-patient standard
        deviation exceeds a threshold.

    ZScaleTransform:
        Per gene, subtract the row mean and divide by the row standard
        deviation (sample convention, ddof=1 by default).

All three implement the Transform interface and record their parameters
for the build manifest.

Examples:
    >>> detected = DetectionFilter(threshold=4.0, min_fraction=0.99).apply(raw)
    >>> variable = VariabilityFilter(min_sd=1.0).apply(detected)
    >>> zscaled = ZScaleTransform().apply(variable)
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from amlsubtypes.core.matrices import ExpressionMatrix
from amlsubtypes.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['FilterStage', 'DetectionFilter', 'VariabilityFilter', 'ZScaleTransform']


@dataclass(frozen=True)
class FilterStage:
    """Provenance for one filtering step."""
    name: str
    n_in: int
    n_out: int
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_removed(self) -> int:
        return self.n_in - self.n_out

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'n_in': self.n_in,
            'n_out': self.n_out,
            'parameters': dict(self.parameters),
        }


class _GeneFilter(Transform):
    """Shared apply() for filters defined by a per-gene keep mask."""

    @abstractmethod
    def keep_mask(self, matrix: ExpressionMatrix) -> np.ndarray:
        """Boolean mask over genes; True keeps the row."""
        pass

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        errors = self.validate(matrix)
        if errors:
            raise ValueError(f"{self.name} cannot be applied: {'; '.join(errors)}")

        keep = self.keep_mask(matrix)
        n_kept = int(keep.sum())
        logger.info(
            f"{self}: kept {n_kept}/{matrix.n_genes} genes, removed {matrix.n_genes - n_kept}"
        )
        return matrix.select_genes(keep)

    def stage(self, before: ExpressionMatrix, after: ExpressionMatrix) -> FilterStage:
        return FilterStage(self.name, before.n_genes, after.n_genes, dict(self.params))

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if np.isnan(matrix.data).any():
            errors.append("Matrix contains NaN values")
        return errors


class DetectionFilter(_GeneFilter):
    """
    Keep genes with value > threshold in more than min_fraction of patients.

    Both comparisons are strict, matching "expression > 4 in greater than
    99% of patients".
    """

    def __init__(self, threshold: float = 4.0, min_fraction: float = 0.99):
        super().__init__(
            name="DetectionFilter",
            params={"threshold": threshold, "min_fraction": min_fraction},
        )
        self.threshold = threshold
        self.min_fraction = min_fraction

    def detected_fraction(self, matrix: ExpressionMatrix) -> np.ndarray:
        """Per gene, fraction of patients with value above threshold."""
        return (matrix.data > self.threshold).mean(axis=1)

    def keep_mask(self, matrix: ExpressionMatrix) -> np.ndarray:
        return self.detected_fraction(matrix) > self.min_fraction


class VariabilityFilter(_GeneFilter):
    """Keep genes whose across-patient standard deviation exceeds min_sd."""

    def __init__(self, min_sd: float = 1.0, ddof: int = 1):
        super().__init__(
            name="VariabilityFilter",
            params={"min_sd": min_sd, "ddof": ddof},
        )
        self.min_sd = min_sd
        self.ddof = ddof

    def keep_mask(self, matrix: ExpressionMatrix) -> np.ndarray:
        if matrix.n_patients <= self.ddof:
            return np.zeros(matrix.n_genes, dtype=bool)
        return matrix.data.std(axis=1, ddof=self.ddof) > self.min_sd

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if self.min_sd < 0:
            errors.append(f"min_sd must be non-negative, got {self.min_sd}")
        return errors


class ZScaleTransform(Transform):
    """
    Row-wise z-scaling: (x - mean) / sd per gene.

    Rows with zero standard deviation cannot be scaled; run the
    VariabilityFilter first.
    """

    def __init__(self, ddof: int = 1):
        super().__init__(name="ZScaleTransform", params={"ddof": ddof})
        self.ddof = ddof

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        errors = self.validate(matrix)
        if errors:
            raise ValueError(f"{self.name} cannot be applied: {'; '.join(errors)}")

        mean = matrix.data.mean(axis=1, keepdims=True)
        sd = matrix.data.std(axis=1, ddof=self.ddof, keepdims=True)
        logger.info(f"{self}: scaled {matrix.n_genes} genes")
        return matrix.with_data((matrix.data - mean) / sd)

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if matrix.n_genes == 0:
            return errors
        if matrix.n_patients <= self.ddof:
            errors.append(
                f"Need more than {self.ddof} patients to scale, got {matrix.n_patients}"
            )
            return errors
        sd = matrix.data.std(axis=1, ddof=self.ddof)
        n_flat = int((sd == 0).sum())
        if n_flat:
            errors.append(f"{n_flat} genes have zero standard deviation")
        return errors
