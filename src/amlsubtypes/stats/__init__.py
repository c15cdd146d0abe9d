"""
Hypothesis testing and multiple-testing correction.

    rank_sum: Mann-Whitney U test per (gene, subtype)
    multiple_testing: row-wise Benjamini-Hochberg, labels, summaries
    results: the complete gene x subtype StatResult table
"""

from amlsubtypes.stats.multiple_testing import (
    CorrectedRow,
    bh_adjust,
    correct_row,
    format_summary,
    significance_label,
)
from amlsubtypes.stats.rank_sum import RankSumResult, rank_sum_row, rank_sum_test, test_gene
from amlsubtypes.stats.results import StatResult, StatRow, build_stat_result

__all__ = [
    'RankSumResult',
    'rank_sum_test',
    'rank_sum_row',
    'test_gene',
    'CorrectedRow',
    'bh_adjust',
    'significance_label',
    'format_summary',
    'correct_row',
    'StatRow',
    'StatResult',
    'build_stat_result',
]
