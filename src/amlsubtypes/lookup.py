"""
Gene lookups for the interactive views.

Given one gene symbol, the lookup adapter assembles display-ready bundles
from the published artifacts. Bundles are renderer-agnostic: plain pandas
structures plus the numbers a plotting layer needs (labels, annotation
positions, figure size).

    HeatmapBundle:
        Patients ordered by ascending z-scaled expression, the subtype
        membership matrix (subtypes x patients) in that order, and a display
        label per subtype that carries the adjusted p-value when significant.

    BoxplotBundle:
        One facet per significant subtype: raw expression of mutated vs
        unmutated patients, with the adjusted p-value annotation. A gene
        without significant subtypes gives an explicit empty bundle.

Queries are validated against the autocomplete index before any table is
touched; unknown genes raise InvalidGeneQueryError with close matches.

Usage:
    >>> lookup = SubtypeExpressionLookup.from_artifacts(load_artifacts("artifacts/"))
    >>> bundle = lookup.heatmap("HIF1A")
    >>> bundle.row_labels[:2]
    ['ASXL1', 'DNMT3A padj=0.0012 **']
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from amlsubtypes.cohort import Cohort
from amlsubtypes.core.errors import InvalidGeneQueryError
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.stats.results import StatResult, StatRow

if TYPE_CHECKING:
    from amlsubtypes.io.loaders import ArtifactSet

logger = logging.getLogger(__name__)

__all__ = [
    'AutocompleteIndex',
    'HeatmapBundle',
    'BoxplotBundle',
    'SubtypeExpressionLookup',
    'MUTATION_STATUS_LEVELS',
]

MUTATION_STATUS_LEVELS = ["Unmutated", "Mutated"]

# Boxplot facets beyond this count get compact (smaller) strip labels
COMPACT_LABEL_THRESHOLD = 10
HEATMAP_FIGURE_SIZE = (14.0, 7.0)


class AutocompleteIndex:
    """Sorted set of queryable gene symbols."""

    def __init__(self, genes: Iterable[str]):
        self._members = frozenset(str(g) for g in genes)
        self._genes: Tuple[str, ...] = tuple(sorted(self._members))
        self._upper = {g.upper(): g for g in self._genes}

    @property
    def genes(self) -> Tuple[str, ...]:
        return self._genes

    def __contains__(self, gene: object) -> bool:
        return gene in self._members

    def __len__(self) -> int:
        return len(self._genes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._genes)

    def complete(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        """Genes starting with prefix (case-insensitive), in sorted order."""
        prefix = prefix.strip().upper()
        matches = [g for g in self._genes if g.upper().startswith(prefix)]
        return matches if limit is None else matches[:limit]

    def suggest(self, gene: str, n: int = 5) -> List[str]:
        """Closest symbols to a mistyped gene."""
        query = gene.strip().upper()
        if not query:
            return []
        if query in self._upper:
            return [self._upper[query]]
        close = difflib.get_close_matches(query, list(self._upper), n=n, cutoff=0.6)
        return [self._upper[c] for c in close]

    def __repr__(self) -> str:
        return f"AutocompleteIndex({len(self._genes)} genes)"


@dataclass(frozen=True)
class HeatmapBundle:
    """
    Everything a heatmap renderer needs for one gene.

    Attributes:
        gene: Queried gene symbol
        patient_order: Patients sorted by ascending z-scaled expression
        expression: Z-scaled expression in patient_order
        subtype_matrix: Subtypes (rows, alphabetical) x patients (patient_order),
            values 0/1
        row_labels: Display label per subtype row
        stat_row: The gene's statistics
        title: Column title including the cohort size
    """
    gene: str
    patient_order: pd.Index
    expression: pd.Series
    subtype_matrix: pd.DataFrame
    row_labels: List[str]
    stat_row: StatRow
    title: str
    figure_size: Tuple[float, float] = HEATMAP_FIGURE_SIZE

    @property
    def n_patients(self) -> int:
        return len(self.patient_order)

    @property
    def download_name(self) -> str:
        return f"{self.gene}_expression_vs_mutations_heatmap.png"

    def status_matrix(self) -> pd.DataFrame:
        """subtype_matrix with 0/1 replaced by Unmutated/Mutated."""
        return self.subtype_matrix.replace({0: MUTATION_STATUS_LEVELS[0], 1: MUTATION_STATUS_LEVELS[1]})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gene': self.gene,
            'title': self.title,
            'n_patients': self.n_patients,
            'patient_order': self.patient_order.tolist(),
            'expression': [float(v) for v in self.expression],
            'subtypes': self.subtype_matrix.index.tolist(),
            'row_labels': list(self.row_labels),
            'subtype_matrix': self.subtype_matrix.to_numpy().astype(int).tolist(),
            'figure_size': list(self.figure_size),
            'stats': self.stat_row.to_dict(),
        }


@dataclass(frozen=True)
class BoxplotBundle:
    """
    Significant-subtype boxplot data for one gene.

    Attributes:
        gene: Queried gene symbol
        subtypes: Significant subtypes (facets), alphabetical
        data: Long form with patient_id, genetic_subtype, mutation_status
            (ordered categorical Unmutated < Mutated) and expression (raw)
        annotations: One row per facet: genetic_subtype, group1, group2,
            label (the summary string), padj, y_position
        y_position: Height of the p-value annotations (max raw value x 1.05)
    """
    gene: str
    subtypes: List[str]
    data: pd.DataFrame
    annotations: pd.DataFrame
    y_position: float

    @property
    def n_significant(self) -> int:
        return len(self.subtypes)

    @property
    def is_empty(self) -> bool:
        return self.n_significant == 0

    @property
    def compact_labels(self) -> bool:
        return self.n_significant > COMPACT_LABEL_THRESHOLD

    @property
    def figure_size(self) -> Tuple[float, float]:
        return (5 + 1.2 * self.n_significant, 7.0)

    @property
    def y_label(self) -> str:
        return f"{self.gene}.log2RPKM"

    @property
    def download_name(self) -> str:
        return f"{self.gene}_significant_results_boxplots.png"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gene': self.gene,
            'is_empty': self.is_empty,
            'n_significant': self.n_significant,
            'subtypes': list(self.subtypes),
            'compact_labels': self.compact_labels,
            'figure_size': list(self.figure_size),
            'y_label': self.y_label,
            'y_position': self.y_position,
            'annotations': self.annotations.to_dict(orient='records'),
            'data': [
                {
                    'patient_id': r.patient_id,
                    'genetic_subtype': r.genetic_subtype,
                    'mutation_status': str(r.mutation_status),
                    'expression': float(r.expression),
                }
                for r in self.data.itertuples(index=False)
            ],
        }


class SubtypeExpressionLookup:
    """
    Read-only query layer over the published artifacts.

    Holds no mutable state after construction; concurrent reads are safe.

    Raises:
        DataContractError: At construction, if the matrices or the statistics
            table are not aligned
    """

    def __init__(
        self,
        raw: ExpressionMatrix,
        zscaled: ExpressionMatrix,
        mutations: MutationMatrix,
        stat_result: StatResult,
        autocomplete: Optional[AutocompleteIndex] = None,
    ):
        self._cohort = Cohort(raw=raw, zscaled=zscaled, mutations=mutations)
        stat_result.check_complete(raw.gene_ids, mutations.subtypes)
        self._stats = stat_result
        self._index = autocomplete or AutocompleteIndex(stat_result.gene_ids)
        self._subtype_order = sorted(mutations.subtypes)

    @classmethod
    def from_artifacts(cls, artifacts: ArtifactSet) -> SubtypeExpressionLookup:
        return cls(
            raw=artifacts.cohort.raw,
            zscaled=artifacts.cohort.zscaled,
            mutations=artifacts.cohort.mutations,
            stat_result=artifacts.stat_result,
            autocomplete=artifacts.autocomplete,
        )

    @property
    def autocomplete(self) -> AutocompleteIndex:
        return self._index

    @property
    def stat_result(self) -> StatResult:
        return self._stats

    def validate_gene(self, gene: str) -> str:
        """
        Normalize and check a query.

        Returns:
            The gene symbol with surrounding whitespace removed

        Raises:
            InvalidGeneQueryError: If the gene is not in the autocomplete index
        """
        if not isinstance(gene, str):
            raise InvalidGeneQueryError(str(gene))
        symbol = gene.strip()
        if not symbol or symbol not in self._index:
            raise InvalidGeneQueryError(symbol, self._index.suggest(symbol))
        return symbol

    def heatmap(self, gene: str) -> HeatmapBundle:
        """Heatmap bundle for one gene (see HeatmapBundle)."""
        gene = self.validate_gene(gene)
        zscaled = self._cohort.zscaled.row(gene)
        order = np.argsort(zscaled.to_numpy(), kind='stable')
        patient_order = zscaled.index[order]

        subtype_matrix = (
            self._cohort.mutations.to_frame()
            .iloc[order]
            .T
            .reindex(self._subtype_order)
        )
        subtype_matrix.index.name = 'genetic_subtype'
        subtype_matrix.columns.name = 'patient_id'

        stat_row = self._stats.row(gene)
        row_labels = []
        for subtype in self._subtype_order:
            summary = stat_row.summary_for(subtype)
            row_labels.append(subtype if summary is None else f"{subtype} padj={summary}")

        n_patients = len(patient_order)
        return HeatmapBundle(
            gene=gene,
            patient_order=patient_order,
            expression=zscaled.iloc[order],
            subtype_matrix=subtype_matrix,
            row_labels=row_labels,
            stat_row=stat_row,
            title=(
                f"BeatAML: {gene} Z-scaled expression vs. Common mutations\n"
                f"(n = {n_patients} patients)"
            ),
        )

    def boxplot(self, gene: str) -> BoxplotBundle:
        """Boxplot bundle for the gene's significant subtypes (see BoxplotBundle)."""
        gene = self.validate_gene(gene)
        stat_row = self._stats.row(gene)
        significant = [s for s in self._subtype_order if stat_row.label_for(s) is not None]

        raw = self._cohort.raw.row(gene)
        y_position = float(raw.max()) * 1.05

        mutations = self._cohort.mutations
        frames = []
        for subtype in significant:
            status = np.where(mutations.column(subtype), "Mutated", "Unmutated")
            frames.append(pd.DataFrame({
                'patient_id': raw.index.to_numpy(),
                'genetic_subtype': subtype,
                'mutation_status': status,
                'expression': raw.to_numpy(),
            }))
        columns = ['patient_id', 'genetic_subtype', 'mutation_status', 'expression']
        data = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=columns)
        data['mutation_status'] = pd.Categorical(
            data['mutation_status'], categories=MUTATION_STATUS_LEVELS, ordered=True
        )
        data['expression'] = data['expression'].astype(float)

        annotations = pd.DataFrame({
            'genetic_subtype': significant,
            'group1': MUTATION_STATUS_LEVELS[0],
            'group2': MUTATION_STATUS_LEVELS[1],
            'label': [stat_row.summary_for(s) for s in significant],
            'padj': [stat_row.padj[stat_row.subtypes.index(s)] for s in significant],
            'y_position': y_position,
        }, columns=['genetic_subtype', 'group1', 'group2', 'label', 'padj', 'y_position'])

        if not significant:
            logger.debug(f"{gene}: no significant subtypes")

        return BoxplotBundle(
            gene=gene,
            subtypes=significant,
            data=data,
            annotations=annotations,
            y_position=y_position,
        )

    def __repr__(self) -> str:
        return f"SubtypeExpressionLookup({self._cohort!r}, {len(self._index)} queryable genes)"
