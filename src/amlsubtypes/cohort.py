"""
Cohort alignment: expression and mutation data on one patient axis.

RNA-seq and exome sequencing use different sample identifiers. The clinical
table links both to a patient; only patients with data in both modalities
enter the cohort. The builder then:

    1. renames expression columns from RNA sample IDs to patient IDs and
       sorts the patient axis lexicographically
    2. keeps protein-coding genes with clean symbols, indexed by symbol
    3. applies the detection and variability filters
    4. derives the z-scaled view
    5. builds the subtype panel (genes mutated in >= min_prevalence of the
       cohort) as a patients x subtypes 0/1 matrix, with all-zero rows for
       patients without a qualifying mutation

Any structural inconsistency (no shared patients, duplicate symbols, axis
mismatch) raises DataContractError: the offline build must stop rather
than publish misaligned tables.

Usage:
    expression = load_expression_table("beataml_norm_exp.txt")
    calls = load_mutation_calls("beataml_wes_mutations.txt")
    sample_map = load_sample_map("beataml_clinical.xlsx")
    cohort = build_cohort(expression, calls, sample_map)
    cohort.report.to_dict()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from amlsubtypes.config import FilterConfig, InputColumns, PipelineConfig, SubtypeConfig
from amlsubtypes.core.errors import DataContractError
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.io.data_filters import clean_symbol_mask
from amlsubtypes.quality.filtering import (
    DetectionFilter,
    FilterStage,
    VariabilityFilter,
    ZScaleTransform,
)

logger = logging.getLogger(__name__)

__all__ = [
    'Cohort',
    'FilterReport',
    'build_cohort',
    'filter_expression',
    'resolve_patient_samples',
    'build_mutation_matrix',
    'min_patients_for_prevalence',
]


@dataclass(frozen=True)
class FilterReport:
    """Provenance of the gene and subtype filters, written to the manifest."""
    n_patients: int
    gene_stages: Tuple[FilterStage, ...] = ()
    n_mutated_genes: int = 0
    min_patients: int = 0
    subtype_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_patients': self.n_patients,
            'gene_stages': [stage.to_dict() for stage in self.gene_stages],
            'n_mutated_genes': self.n_mutated_genes,
            'min_patients': self.min_patients,
            'subtype_counts': dict(self.subtype_counts),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> FilterReport:
        return cls(
            n_patients=int(payload['n_patients']),
            gene_stages=tuple(
                FilterStage(
                    name=s['name'],
                    n_in=int(s['n_in']),
                    n_out=int(s['n_out']),
                    parameters=dict(s.get('parameters', {})),
                )
                for s in payload.get('gene_stages', [])
            ),
            n_mutated_genes=int(payload.get('n_mutated_genes', 0)),
            min_patients=int(payload.get('min_patients', 0)),
            subtype_counts={k: int(v) for k, v in payload.get('subtype_counts', {}).items()},
        )


@dataclass(frozen=True)
class Cohort:
    """
    Aligned, frozen inputs for the statistics build and the lookup layer.

    Attributes:
        raw: Filtered log2 normalized expression (genes x patients)
        zscaled: Row-wise z-scaled view of raw
        mutations: Patients x subtypes 0/1 matrix
        report: Filter provenance

    Invariants (checked at construction):
        - raw and zscaled share gene and patient indexes, in order
        - mutations.patient_ids equals raw.patient_ids, element for element
    """
    raw: ExpressionMatrix
    zscaled: ExpressionMatrix
    mutations: MutationMatrix
    report: Optional[FilterReport] = None

    def __post_init__(self) -> None:
        if not self.raw.gene_ids.equals(self.zscaled.gene_ids):
            raise DataContractError("Raw and z-scaled expression have different gene keys or order")
        if not self.raw.patient_ids.equals(self.zscaled.patient_ids):
            raise DataContractError("Raw and z-scaled expression have different patient axes")
        if not self.mutations.patient_ids.equals(self.raw.patient_ids):
            raise DataContractError(
                "Mutation matrix rows do not match expression columns element for element "
                f"({self.mutations.n_patients} mutation rows, {self.raw.n_patients} expression columns)"
            )

    @property
    def patient_ids(self) -> pd.Index:
        return self.raw.patient_ids

    @property
    def gene_ids(self) -> pd.Index:
        return self.raw.gene_ids

    @property
    def subtypes(self) -> pd.Index:
        return self.mutations.subtypes

    def __repr__(self) -> str:
        return (
            f"Cohort({self.raw.n_genes} genes × {self.raw.n_patients} patients, "
            f"{self.mutations.n_subtypes} subtypes)"
        )


def _require_columns(frame: pd.DataFrame, columns: List[str], what: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(
            f"{what} is missing required columns {missing}. "
            f"Available columns: {list(frame.columns)[:20]}"
        )


def resolve_patient_samples(
    sample_map: pd.DataFrame,
    expression_samples: pd.Index,
    columns: Optional[InputColumns] = None,
) -> pd.DataFrame:
    """
    Map patients to one RNA and one DNA sample, restricted to both modalities.

    Args:
        sample_map: Clinical table with patient, RNA sample and DNA sample columns
        expression_samples: RNA sample IDs present in the expression table
        columns: Column names (defaults to BeatAML names)

    Returns:
        DataFrame indexed by patient_id (sorted) with columns
        'rna_sample' and 'dna_sample'

    Raises:
        DataContractError: If no patient has both modalities, or one RNA or
            DNA sample maps to several patients
    """
    columns = columns or InputColumns()
    patient_col = columns.clinical_patient
    rna_col = columns.clinical_rna_sample
    dna_col = columns.clinical_dna_sample
    _require_columns(sample_map, [patient_col, rna_col, dna_col], "Sample map")

    pairs = sample_map[[patient_col, rna_col, dna_col]].dropna()
    pairs = pairs.astype(str).rename(columns={
        patient_col: 'patient_id', rna_col: 'rna_sample', dna_col: 'dna_sample',
    })
    expression_samples = pd.Index(expression_samples).astype(str)
    pairs = pairs[pairs['rna_sample'].isin(expression_samples)]
    pairs = pairs.drop_duplicates().sort_values(['patient_id', 'rna_sample', 'dna_sample'])

    n_dup = int(pairs['patient_id'].duplicated().sum())
    if n_dup:
        logger.warning(
            f"{n_dup} extra sample pairs for patients with several samples; "
            "keeping the first pair per patient"
        )
        pairs = pairs.drop_duplicates('patient_id', keep='first')

    for col, modality in (('rna_sample', 'RNA'), ('dna_sample', 'DNA')):
        shared = pairs[col].duplicated(keep=False)
        if shared.any():
            examples = pairs.loc[shared, col].unique().tolist()[:5]
            raise DataContractError(
                f"{modality} samples mapped to more than one patient: {examples}"
            )

    if pairs.empty:
        raise DataContractError(
            "No patient has both an RNA-seq sample in the expression table and a DNA-seq sample"
        )

    logger.info(f"Resolved {len(pairs)} patients present in both modalities")
    return pairs.set_index('patient_id')


def min_patients_for_prevalence(min_prevalence: float, n_patients: int) -> int:
    """ceil(min_prevalence x n_patients), at least 1."""
    # round() first so 0.05 * 600 is 30, not 31
    return max(1, math.ceil(round(min_prevalence * n_patients, 9)))


def build_mutation_matrix(
    mutation_calls: pd.DataFrame,
    dna_to_patient: pd.Series,
    patient_ids: pd.Index,
    config: Optional[SubtypeConfig] = None,
    columns: Optional[InputColumns] = None,
) -> Tuple[MutationMatrix, Dict[str, Any]]:
    """
    Build the patients x subtypes 0/1 matrix from per-call records.

    A subtype is a gene with a qualifying call in at least
    ceil(min_prevalence x cohort size) distinct patients. Subtypes are
    ordered alphabetically; rows follow patient_ids exactly, with zero rows
    for patients without any qualifying call.

    Args:
        mutation_calls: One row per call (sample ID, gene symbol, VAF)
        dna_to_patient: Series mapping DNA sample ID -> patient ID
        patient_ids: The cohort's patient axis
        config: Prevalence and VAF settings
        columns: Column names of mutation_calls

    Returns:
        (MutationMatrix, summary dict with n_mutated_genes, min_patients,
        subtype_counts)
    """
    config = config or SubtypeConfig()
    columns = columns or InputColumns()
    sample_col = columns.mutation_sample
    symbol_col = columns.mutation_symbol
    vaf_col = columns.mutation_vaf
    _require_columns(mutation_calls, [sample_col, symbol_col], "Mutation calls")

    calls = mutation_calls.dropna(subset=[sample_col, symbol_col])
    if vaf_col in calls.columns:
        vaf = pd.to_numeric(calls[vaf_col], errors='coerce')
        qualifying = vaf.isna() | (vaf >= config.min_vaf)
        n_dropped = int((~qualifying).sum())
        if n_dropped:
            logger.info(f"Dropped {n_dropped} calls with VAF < {config.min_vaf}")
        calls = calls[qualifying]
    elif config.min_vaf > 0:
        logger.warning(f"Column '{vaf_col}' not found; VAF filter not applied")

    patient_ids = pd.Index(patient_ids).astype(str)
    sample_to_patient = pd.Series(dna_to_patient).astype(str)
    sample_to_patient.index = sample_to_patient.index.astype(str)
    patients = calls[sample_col].astype(str).map(sample_to_patient)

    pairs = pd.DataFrame({
        'patient_id': patients,
        'symbol': calls[symbol_col].astype(str),
    }).dropna()
    pairs = pairs[pairs['patient_id'].isin(patient_ids)].drop_duplicates()

    counts = pairs.groupby('symbol')['patient_id'].nunique()
    min_patients = min_patients_for_prevalence(config.min_prevalence, len(patient_ids))
    subtypes = sorted(counts[counts >= min_patients].index)

    logger.info(
        f"Subtype panel: {len(subtypes)}/{len(counts)} mutated genes in >= {min_patients} "
        f"patients ({config.min_prevalence:.1%} of {len(patient_ids)})"
    )

    kept = pairs[pairs['symbol'].isin(subtypes)]
    frame = pd.DataFrame(0, index=patient_ids, columns=pd.Index(subtypes), dtype=np.int8)
    if not kept.empty:
        rows = patient_ids.get_indexer(kept['patient_id'])
        cols = frame.columns.get_indexer(kept['symbol'])
        values = frame.to_numpy(copy=True)
        values[rows, cols] = 1
        frame = pd.DataFrame(values, index=patient_ids, columns=frame.columns)

    summary = {
        'n_mutated_genes': int(len(counts)),
        'min_patients': int(min_patients),
        'subtype_counts': {s: int(counts[s]) for s in subtypes},
    }
    return MutationMatrix.from_frame(frame), summary


def filter_expression(
    matrix: ExpressionMatrix,
    config: Optional[FilterConfig] = None,
    symbol_col: str = "symbol",
    biotype_col: str = "biotype",
) -> Tuple[ExpressionMatrix, ExpressionMatrix, List[FilterStage]]:
    """
    Symbol, detection and variability filters, then z-scaling.

    Args:
        matrix: Expression keyed by stable gene IDs, with symbol and biotype
            in gene_annotations
        config: Filter thresholds

    Returns:
        (raw, zscaled, stages): filtered matrices keyed by symbol and the
        per-stage provenance

    Raises:
        DataContractError: If symbols collide after filtering or no gene
            survives a stage
    """
    config = config or FilterConfig()
    annotations = matrix.gene_annotations
    for col in (symbol_col, biotype_col):
        if col not in annotations.columns:
            raise ValueError(f"Expression annotations are missing column '{col}'")

    symbols = pd.Index(annotations[symbol_col])
    keep = (annotations[biotype_col] == config.biotype).to_numpy(dtype=bool, copy=True)
    keep = keep & clean_symbol_mask(symbols, config)
    coding = matrix.select_genes(keep)
    stages = [FilterStage(
        "SymbolFilter", matrix.n_genes, coding.n_genes,
        {
            'biotype': config.biotype,
            'excluded_substrings': list(config.excluded_substrings),
            'excluded_patterns': list(config.excluded_patterns),
        },
    )]
    logger.info(f"Symbol filter: kept {coding.n_genes}/{matrix.n_genes} genes")
    if coding.n_genes == 0:
        raise DataContractError("No protein-coding genes with clean symbols")

    filtered = coding
    for step in (
        DetectionFilter(config.detection_threshold, config.detection_fraction),
        VariabilityFilter(config.min_sd, config.ddof),
    ):
        before = filtered
        filtered = step.apply(before)
        stages.append(step.stage(before, filtered))
        if filtered.n_genes == 0:
            raise DataContractError(f"No genes passed {step}")

    # Symbol keys only need to be unique among genes that survive filtering
    filtered = filtered.relabel_genes(filtered.gene_annotations[symbol_col].astype(str))
    zscaled = ZScaleTransform(ddof=config.ddof).apply(filtered)
    return filtered, zscaled, stages


def build_cohort(
    expression_table: pd.DataFrame,
    mutation_calls: pd.DataFrame,
    sample_map: pd.DataFrame,
    config: Optional[PipelineConfig] = None,
) -> Cohort:
    """
    Align raw expression and mutation calls on one sorted patient axis.

    Args:
        expression_table: One row per gene: gene ID, symbol, biotype,
            optional annotation columns, then one numeric column per RNA sample
        mutation_calls: One row per mutation call
        sample_map: Patient / RNA sample / DNA sample table
        config: Pipeline configuration

    Returns:
        Cohort with filtered raw and z-scaled expression and the mutation matrix

    Raises:
        DataContractError: On any alignment or uniqueness violation
        ValueError: If required input columns are missing
    """
    config = config or PipelineConfig()
    columns = config.columns

    _require_columns(
        expression_table,
        [columns.expression_gene_id, columns.expression_symbol, columns.expression_biotype],
        "Expression table",
    )
    annotation_cols = [
        columns.expression_gene_id, columns.expression_symbol, columns.expression_biotype,
    ] + [c for c in columns.expression_annotations if c in expression_table.columns]
    sample_cols = pd.Index(
        [c for c in expression_table.columns if c not in annotation_cols]
    ).astype(str)

    patients = resolve_patient_samples(sample_map, sample_cols, columns)

    values = expression_table.drop(columns=annotation_cols)
    values.columns = values.columns.astype(str)
    values = values[patients['rna_sample'].tolist()]
    try:
        data = values.to_numpy(dtype=float)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Expression table contains non-numeric sample values: {e}") from e

    annotations = expression_table[annotation_cols].rename(columns={
        columns.expression_gene_id: 'stable_id',
        columns.expression_symbol: 'symbol',
        columns.expression_biotype: 'biotype',
    })
    full = ExpressionMatrix(
        data=data,
        gene_ids=expression_table[columns.expression_gene_id].astype(str),
        patient_ids=patients.index,
        gene_annotations=annotations.reset_index(drop=True),
    )
    logger.info(f"Expression: {full.n_genes} genes × {full.n_patients} patients before filtering")

    raw, zscaled, stages = filter_expression(full, config.filters)

    mutations, summary = build_mutation_matrix(
        mutation_calls,
        dna_to_patient=pd.Series(patients.index, index=patients['dna_sample']),
        patient_ids=raw.patient_ids,
        config=config.subtypes,
        columns=columns,
    )
    if mutations.n_subtypes == 0:
        logger.warning("No mutated gene passed the prevalence filter; subtype panel is empty")

    report = FilterReport(
        n_patients=raw.n_patients,
        gene_stages=tuple(stages),
        n_mutated_genes=summary['n_mutated_genes'],
        min_patients=summary['min_patients'],
        subtype_counts=summary['subtype_counts'],
    )
    cohort = Cohort(raw=raw, zscaled=zscaled, mutations=mutations, report=report)
    logger.info(f"Built {cohort!r}")
    return cohort
