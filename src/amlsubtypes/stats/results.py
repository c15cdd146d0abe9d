"""
Gene x subtype statistics table.

The table is built once, offline, over every gene of the filtered z-scaled
matrix and every subtype of the panel. For each gene the subtypes form one
testing family: raw rank-sum p-values are adjusted with Benjamini-Hochberg
within the row, then mapped to significance labels and display summaries.

Completeness is a post-condition: gene keys must equal the expression gene
keys and subtype columns must equal the subtype panel, in order. A table
that fails this check is never returned (DataContractError).

Serialization uses a long form (one row per gene x subtype cell,
gene-major then subtype-minor), which round-trips through CSV without
losing order or the "not computed" state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from amlsubtypes.cohort import Cohort
from amlsubtypes.config import PipelineConfig, RankSumConfig, SignificanceConfig
from amlsubtypes.core.errors import DataContractError
from amlsubtypes.stats.multiple_testing import correct_row
from amlsubtypes.stats.rank_sum import rank_sum_row

logger = logging.getLogger(__name__)

__all__ = ['StatRow', 'StatResult', 'build_stat_result', 'LONG_COLUMNS']

LONG_COLUMNS = [
    'gene', 'genetic_subtype', 'statistic', 'pvalue', 'padj', 'label', 'summary', 'computed',
]


@dataclass(frozen=True)
class StatRow:
    """One gene's statistics across the subtype panel, in panel order."""
    gene: str
    subtypes: List[str]
    statistics: List[float]
    pvalues: List[float]
    padj: List[float]
    labels: List[Optional[str]]
    summaries: List[Optional[str]]
    computed: List[bool]

    def label_for(self, subtype: str) -> Optional[str]:
        return self.labels[self.subtypes.index(subtype)]

    def summary_for(self, subtype: str) -> Optional[str]:
        return self.summaries[self.subtypes.index(subtype)]

    def significant_subtypes(self) -> List[str]:
        """Subtypes with a non-absent label, in panel order."""
        return [s for s, label in zip(self.subtypes, self.labels) if label is not None]

    def to_dict(self) -> Dict[str, Any]:
        def _num(value: float) -> Optional[float]:
            return None if np.isnan(value) else float(value)

        return {
            'gene': self.gene,
            'subtypes': [
                {
                    'genetic_subtype': s,
                    'statistic': _num(stat),
                    'pvalue': _num(p),
                    'padj': _num(q),
                    'label': label,
                    'summary': summary,
                    'computed': bool(done),
                }
                for s, stat, p, q, label, summary, done in zip(
                    self.subtypes, self.statistics, self.pvalues, self.padj,
                    self.labels, self.summaries, self.computed,
                )
            ],
        }


class StatResult:
    """
    Complete gene x subtype statistics.

    Attributes:
        statistics: U statistics for the mutated group (float, NaN = not computed)
        pvalues: Raw two-sided p-values (float, NaN = not computed)
        padj: Row-wise BH-adjusted p-values (float, NaN = not computed)
        labels: Significance labels (object, None = not significant)
        summaries: "padj label" display strings (object, None = not significant)
        computed: Whether the cell's test could be run (bool)

    All frames share the same gene index and subtype columns.
    """

    def __init__(
        self,
        statistics: pd.DataFrame,
        pvalues: pd.DataFrame,
        padj: pd.DataFrame,
        labels: pd.DataFrame,
        summaries: pd.DataFrame,
        computed: pd.DataFrame,
    ):
        frames = {
            'pvalues': pvalues, 'padj': padj, 'labels': labels,
            'summaries': summaries, 'computed': computed,
        }
        for name, frame in frames.items():
            if not (frame.index.equals(statistics.index) and frame.columns.equals(statistics.columns)):
                raise DataContractError(f"StatResult.{name} is not aligned with the statistics table")

        self.statistics = statistics
        self.pvalues = pvalues
        self.padj = padj
        self.labels = labels
        self.summaries = summaries
        self.computed = computed

    @property
    def gene_ids(self) -> pd.Index:
        return self.pvalues.index

    @property
    def subtypes(self) -> pd.Index:
        return self.pvalues.columns

    def __contains__(self, gene: object) -> bool:
        return gene in self.pvalues.index

    def __len__(self) -> int:
        return len(self.pvalues)

    def row(self, gene: str) -> StatRow:
        """
        Statistics for one gene.

        Raises:
            KeyError: If gene is not in the table
        """
        if gene not in self.pvalues.index:
            raise KeyError(gene)
        return StatRow(
            gene=gene,
            subtypes=self.subtypes.tolist(),
            statistics=self.statistics.loc[gene].astype(float).tolist(),
            pvalues=self.pvalues.loc[gene].astype(float).tolist(),
            padj=self.padj.loc[gene].astype(float).tolist(),
            labels=[_none_if_missing(v) for v in self.labels.loc[gene]],
            summaries=[_none_if_missing(v) for v in self.summaries.loc[gene]],
            computed=self.computed.loc[gene].astype(bool).tolist(),
        )

    def significant_subtypes(self, gene: str) -> List[str]:
        return self.row(gene).significant_subtypes()

    def check_complete(self, gene_ids: pd.Index, subtypes: pd.Index) -> None:
        """
        Raises:
            DataContractError: If gene keys or subtype columns differ from
                the given axes (content or order)
        """
        if not self.gene_ids.equals(pd.Index(gene_ids)):
            raise DataContractError(
                f"Statistics table has {len(self.gene_ids)} genes but the expression "
                f"matrix has {len(gene_ids)}, or their order differs"
            )
        if not self.subtypes.equals(pd.Index(subtypes)):
            raise DataContractError(
                f"Statistics columns {list(self.subtypes)} do not match the subtype "
                f"panel {list(subtypes)}"
            )

    def to_long(self) -> pd.DataFrame:
        """One row per (gene, subtype), gene-major then subtype-minor."""
        n_genes, n_subtypes = self.pvalues.shape
        return pd.DataFrame({
            'gene': np.repeat(self.gene_ids.to_numpy(dtype=object), n_subtypes),
            'genetic_subtype': np.tile(self.subtypes.to_numpy(dtype=object), n_genes),
            'statistic': self.statistics.to_numpy(dtype=float).ravel(),
            'pvalue': self.pvalues.to_numpy(dtype=float).ravel(),
            'padj': self.padj.to_numpy(dtype=float).ravel(),
            'label': self.labels.to_numpy(dtype=object).ravel(),
            'summary': self.summaries.to_numpy(dtype=object).ravel(),
            'computed': self.computed.to_numpy(dtype=bool).ravel(),
        }, columns=LONG_COLUMNS)

    @classmethod
    def from_long(
        cls,
        frame: pd.DataFrame,
        gene_ids: Optional[Sequence[str]] = None,
        subtypes: Optional[Sequence[str]] = None,
    ) -> StatResult:
        """
        Rebuild from to_long() output.

        Args:
            frame: Long-form table with LONG_COLUMNS
            gene_ids: Gene axis; defaults to order of first appearance
            subtypes: Subtype axis; defaults to order of first appearance

        Raises:
            ValueError: If required columns are missing
            DataContractError: If a (gene, subtype) cell is missing or duplicated
        """
        missing = [c for c in LONG_COLUMNS if c not in frame.columns]
        if missing:
            raise ValueError(f"Statistics table is missing columns: {missing}")

        genes = pd.Index(
            gene_ids if gene_ids is not None else pd.unique(frame['gene']), name='gene'
        ).astype(str)
        columns = pd.Index(
            subtypes if subtypes is not None else pd.unique(frame['genetic_subtype']),
            name='genetic_subtype',
        ).astype(str)

        frame = frame.assign(
            gene=frame['gene'].astype(str),
            genetic_subtype=frame['genetic_subtype'].astype(str),
        )
        if frame.duplicated(['gene', 'genetic_subtype']).any():
            raise DataContractError("Statistics table has duplicated (gene, subtype) cells")
        if len(frame) != len(genes) * len(columns):
            raise DataContractError(
                f"Statistics table has {len(frame)} cells, expected "
                f"{len(genes)} genes × {len(columns)} subtypes"
            )

        indexed = frame.set_index(['gene', 'genetic_subtype'])
        target = pd.MultiIndex.from_product([genes, columns])
        if not target.isin(indexed.index).all():
            raise DataContractError("Statistics table does not cover every (gene, subtype) cell")
        indexed = indexed.reindex(target)

        def _wide(column: str, dtype) -> pd.DataFrame:
            values = indexed[column].to_numpy(dtype=dtype).reshape(len(genes), len(columns))
            return pd.DataFrame(values, index=genes, columns=columns)

        labels = _wide('label', object)
        summaries = _wide('summary', object)
        return cls(
            statistics=_wide('statistic', float),
            pvalues=_wide('pvalue', float),
            padj=_wide('padj', float),
            labels=labels.map(_none_if_missing),
            summaries=summaries.map(_none_if_missing),
            computed=_wide('computed', bool),
        )

    def __repr__(self) -> str:
        n_sig = int(self.labels.notna().to_numpy(dtype=bool).sum())
        return (
            f"StatResult({len(self.gene_ids)} genes × {len(self.subtypes)} subtypes, "
            f"{n_sig} significant cells)"
        )


def _none_if_missing(value: Any) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return str(value)


def _test_gene_row(
    values: np.ndarray,
    mutation_data: np.ndarray,
    rank_sum: RankSumConfig,
    significance: SignificanceConfig,
) -> tuple:
    statistics, pvalues = rank_sum_row(values, mutation_data, rank_sum)
    corrected = correct_row(pvalues, significance)
    return statistics, pvalues, corrected


def build_stat_result(
    cohort: Cohort,
    config: Optional[PipelineConfig] = None,
    n_jobs: int = 1,
    progress: bool = False,
) -> StatResult:
    """
    Test every gene against every subtype and correct per gene.

    Args:
        cohort: Aligned cohort (the z-scaled matrix is tested; ranks are
            identical to the raw values)
        config: Pipeline configuration (test variant and significance tiers)
        n_jobs: joblib workers over genes (1 = sequential)
        progress: Show a tqdm progress bar over genes

    Returns:
        Complete StatResult

    Raises:
        DataContractError: If the assembled table is not complete
    """
    config = config or PipelineConfig()
    zscaled = cohort.zscaled
    mutation_data = cohort.mutations.data
    subtypes = cohort.subtypes
    n_genes = zscaled.n_genes

    logger.info(
        f"Testing {n_genes} genes × {len(subtypes)} subtypes "
        f"({'sequential' if n_jobs == 1 else f'n_jobs={n_jobs}'})"
    )

    gene_iter = range(n_genes)
    if progress:
        gene_iter = tqdm(gene_iter, desc="Rank-sum tests", unit="gene")

    if n_jobs == 1:
        rows = [
            _test_gene_row(zscaled.data[i], mutation_data, config.rank_sum, config.significance)
            for i in gene_iter
        ]
    else:
        rows = Parallel(n_jobs=n_jobs)(
            delayed(_test_gene_row)(
                zscaled.data[i], mutation_data, config.rank_sum, config.significance
            )
            for i in gene_iter
        )

    shape = (n_genes, len(subtypes))
    statistics = np.full(shape, np.nan)
    pvalues = np.full(shape, np.nan)
    padj = np.full(shape, np.nan)
    labels = np.full(shape, None, dtype=object)
    summaries = np.full(shape, None, dtype=object)
    for i, (stat_row, p_row, corrected) in enumerate(rows):
        statistics[i] = stat_row
        pvalues[i] = p_row
        padj[i] = corrected.padj
        labels[i] = corrected.labels
        summaries[i] = corrected.summaries

    genes = pd.Index(zscaled.gene_ids, name='gene')
    columns = pd.Index(subtypes, name='genetic_subtype')

    def _frame(values: np.ndarray) -> pd.DataFrame:
        return pd.DataFrame(values, index=genes, columns=columns)

    result = StatResult(
        statistics=_frame(statistics),
        pvalues=_frame(pvalues),
        padj=_frame(padj),
        labels=_frame(labels),
        summaries=_frame(summaries),
        computed=_frame(~np.isnan(pvalues)),
    )
    result.check_complete(zscaled.gene_ids, subtypes)

    n_missing = int((~result.computed.to_numpy(dtype=bool)).sum())
    if n_missing:
        logger.warning(f"{n_missing} gene × subtype cells could not be computed")
    logger.info(f"Built {result!r}")
    return result
