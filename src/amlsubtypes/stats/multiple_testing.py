"""
Row-wise FDR correction and significance labelling.

Correction is applied per gene: the family is the set of subtypes tested
for that gene. Cells that could not be computed (NaN) are excluded from the
family and stay NaN.

Labels follow the adjusted p-value tiers in SignificanceConfig. Note that
the (0.001, 0.01] tier deliberately reuses "**"; three tiers are visually
distinguished, not four.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from numpy.typing import NDArray
from statsmodels.stats.multitest import multipletests

from amlsubtypes.config import SignificanceConfig

__all__ = [
    'CorrectedRow',
    'bh_adjust',
    'significance_label',
    'format_summary',
    'correct_row',
]


@dataclass(frozen=True)
class CorrectedRow:
    """Adjusted p-values, labels and summary strings for one gene."""
    padj: NDArray[np.float64]
    labels: List[Optional[str]]
    summaries: List[Optional[str]]


def bh_adjust(
    pvalues: NDArray[np.float64],
    method: str = "fdr_bh",
) -> NDArray[np.float64]:
    """
    Adjust one family of p-values for multiple testing.

    Args:
        pvalues: Raw p-values; NaN entries are not part of the family
        method: statsmodels multipletests method (default Benjamini-Hochberg)

    Returns:
        Adjusted p-values, same length and order as the input
    """
    pvalues = np.asarray(pvalues, dtype=float)
    valid_mask = ~np.isnan(pvalues)
    adj_pvals = np.full_like(pvalues, np.nan)

    if not np.any(valid_mask):
        return adj_pvals

    _, adj_pvals[valid_mask], _, _ = multipletests(pvalues[valid_mask], method=method)
    return adj_pvals


def significance_label(
    padj: Optional[float],
    config: Optional[SignificanceConfig] = None,
) -> Optional[str]:
    """Map an adjusted p-value to its label, or None when not significant."""
    if padj is None or math.isnan(padj):
        return None
    config = config or SignificanceConfig()
    for cutoff, label in config.tiers:
        if padj < cutoff:
            return label
    return None


def format_summary(
    padj: Optional[float],
    label: Optional[str],
    digits: int = 2,
) -> Optional[str]:
    """
    Display string "<padj> <label>", e.g. "0.0012 **".

    padj is rendered to `digits` significant figures. Returns None when
    there is no label.
    """
    if label is None or padj is None or math.isnan(padj):
        return None
    return f"{padj:.{digits}g} {label}"


def correct_row(
    pvalues: NDArray[np.float64],
    config: Optional[SignificanceConfig] = None,
) -> CorrectedRow:
    """Adjust one gene's p-values and derive labels and summaries."""
    config = config or SignificanceConfig()
    padj = bh_adjust(pvalues, method=config.fdr_method)
    labels = [significance_label(p, config) for p in padj]
    summaries = [
        format_summary(p, label, config.summary_digits)
        for p, label in zip(padj, labels)
    ]
    return CorrectedRow(padj=padj, labels=labels, summaries=summaries)
