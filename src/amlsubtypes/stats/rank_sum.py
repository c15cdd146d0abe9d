"""
Two-sample Wilcoxon rank-sum (Mann-Whitney U) test per gene and subtype.

For one gene and one genetic subtype the patients split into a mutated and
an unmutated group; the test asks whether expression differs in location
between the two. The test is rank based, so any strictly increasing
per-gene transform (such as z-scaling) gives the same result as the raw
values.

Test variant:
    Normal approximation with tie-corrected variance and no continuity
    correction, two-sided. The U statistic is reported for the mutated
    group. Both the method and the continuity correction are configurable
    through RankSumConfig.

    When every pooled value is tied the rank-sum variance is zero; the
    statistic then equals its null expectation and the p-value is 1.0
    rather than NaN.

Degenerate groups:
    If either group is empty the comparison is undefined and
    rank_sum_test() raises DegenerateGroupError. test_gene() converts this
    to a "not computed" cell (None).

Usage:
    >>> res = rank_sum_test(np.array([5., 6., 7., 1., 2., 3.]),
    ...                     np.array([True, True, True, False, False, False]))
    >>> round(res.pvalue, 4)
    0.0495
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats as scipy_stats

from amlsubtypes.config import RankSumConfig
from amlsubtypes.core.errors import DegenerateGroupError

logger = logging.getLogger(__name__)

__all__ = ['RankSumResult', 'rank_sum_test', 'test_gene', 'rank_sum_row']


@dataclass(frozen=True)
class RankSumResult:
    """Outcome of one mutated-vs-unmutated comparison."""
    statistic: float
    pvalue: float
    n_mutated: int
    n_unmutated: int


def rank_sum_test(
    expression: NDArray[np.float64],
    mutated: NDArray[np.bool_],
    config: Optional[RankSumConfig] = None,
    subtype: Optional[str] = None,
) -> RankSumResult:
    """
    Compare expression between mutated and unmutated patients.

    Args:
        expression: Expression values over the patient axis
        mutated: Boolean mask over the same axis (True = mutated)
        config: Test variant (defaults to asymptotic, no continuity correction)
        subtype: Subtype name, only used in error messages

    Returns:
        RankSumResult with U for the mutated group and the two-sided p-value

    Raises:
        DegenerateGroupError: If either group is empty
        ValueError: If expression and mutated have different lengths
    """
    config = config or RankSumConfig()
    expression = np.asarray(expression, dtype=float)
    mutated = np.asarray(mutated, dtype=bool)
    if expression.shape != mutated.shape:
        raise ValueError(
            f"expression length ({expression.shape[0]}) must match mask length ({mutated.shape[0]})"
        )

    x = expression[mutated]
    y = expression[~mutated]
    if len(x) == 0 or len(y) == 0:
        raise DegenerateGroupError(subtype, len(x), len(y))

    if np.ptp(expression) == 0:
        return RankSumResult(
            statistic=len(x) * len(y) / 2.0,
            pvalue=1.0,
            n_mutated=len(x),
            n_unmutated=len(y),
        )

    statistic, pvalue = scipy_stats.mannwhitneyu(
        x, y,
        use_continuity=config.use_continuity,
        alternative=config.alternative,
        method=config.method,
    )
    return RankSumResult(
        statistic=float(statistic),
        pvalue=float(pvalue),
        n_mutated=len(x),
        n_unmutated=len(y),
    )


def test_gene(
    expression_row: pd.Series | NDArray[np.float64],
    mutations: pd.DataFrame,
    config: Optional[RankSumConfig] = None,
) -> Dict[str, Optional[RankSumResult]]:
    """
    Test one gene against every subtype column of a patients x subtypes frame.

    Args:
        expression_row: Expression over the patient axis. A Series must be
            indexed by the same patients, in the same order, as mutations.
        mutations: Patients x subtypes 0/1 frame

    Returns:
        Dict subtype -> RankSumResult, or None where the cell is not computable
    """
    if isinstance(expression_row, pd.Series):
        if not expression_row.index.equals(mutations.index):
            raise ValueError("Expression row and mutation matrix have different patient axes")
        values = expression_row.to_numpy(dtype=float)
    else:
        values = np.asarray(expression_row, dtype=float)

    results: Dict[str, Optional[RankSumResult]] = {}
    for subtype in mutations.columns:
        try:
            results[subtype] = rank_sum_test(
                values, mutations[subtype].to_numpy(dtype=bool), config, subtype=subtype
            )
        except DegenerateGroupError as e:
            logger.warning(f"Not computed: {e}")
            results[subtype] = None
    return results


def rank_sum_row(
    values: NDArray[np.float64],
    mutation_data: NDArray[np.int8],
    config: Optional[RankSumConfig] = None,
    subtypes: Optional[Sequence[str]] = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Vector form of test_gene over a patients x subtypes 0/1 array.

    Returns:
        (statistics, pvalues), each of length n_subtypes, NaN where the
        cell is not computable
    """
    n_subtypes = mutation_data.shape[1]
    statistics = np.full(n_subtypes, np.nan)
    pvalues = np.full(n_subtypes, np.nan)
    for j in range(n_subtypes):
        name = subtypes[j] if subtypes is not None else None
        try:
            result = rank_sum_test(values, mutation_data[:, j].astype(bool), config, subtype=name)
        except DegenerateGroupError:
            continue
        statistics[j] = result.statistic
        pvalues[j] = result.pvalue
    return statistics, pvalues
