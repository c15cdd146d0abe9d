"""
Readers for the raw BeatAML inputs and for published artifacts.

Raw inputs:
    Expression table (tab-delimited):
        stable_id  display_label  description  biotype  <sample> <sample> ...
        ENSG...    TP53           tumor prot.. protein_coding  5.21  4.87 ...

    Mutation calls (tab-delimited, one row per call):
        dbgap_sample_id  symbol  t_vaf  ...

    Sample map (clinical spreadsheet, .xlsx / .csv / .tsv):
        dbgap_subject_id  dbgap_rnaseq_sample  dbgap_dnaseq_sample  ...

Column names are configurable through InputColumns. Readers check that the
required columns are present and raise ValueError with the columns found
otherwise.

Artifacts:
    load_artifacts() reads a directory written by write_artifacts() and
    re-checks every alignment invariant before handing the tables to the
    lookup layer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from amlsubtypes.cohort import Cohort, FilterReport
from amlsubtypes.config import InputColumns
from amlsubtypes.core.errors import DataContractError
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.io.writers import ARTIFACT_FILES, MANIFEST_FILE
from amlsubtypes.lookup import AutocompleteIndex
from amlsubtypes.stats.results import StatResult

logger = logging.getLogger(__name__)

__all__ = [
    'ArtifactSet',
    'load_expression_table',
    'load_mutation_calls',
    'load_sample_map',
    'load_artifacts',
]


def _check_file(path: Path, what: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def _read_table(path: Path, what: str, **kwargs: Any) -> pd.DataFrame:
    try:
        df = pd.read_csv(path, **kwargs)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"{what} is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse {what} {path}: {e}") from e

    if len(df) == 0:
        raise ValueError(f"{what} contains no rows: {path}")
    return df


def _require(df: pd.DataFrame, required: List[str], what: str, path: Path) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(
            f"{what} {path} is missing columns {missing}. "
            f"Found: {list(df.columns)[:20]}"
        )


def load_expression_table(path: Path, columns: Optional[InputColumns] = None) -> pd.DataFrame:
    """
    Load the normalized expression table.

    Returns:
        DataFrame with the annotation columns as strings and one float
        column per RNA sample, in file order

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the table is empty, lacks required columns, or has
            non-numeric sample values
    """
    columns = columns or InputColumns()
    path = _check_file(path, "Expression table")
    text_cols = [
        columns.expression_gene_id, columns.expression_symbol, columns.expression_biotype,
        *columns.expression_annotations,
    ]
    df = _read_table(
        path, "Expression table", sep='\t',
        dtype={c: str for c in text_cols},
    )
    _require(
        df,
        [columns.expression_gene_id, columns.expression_symbol, columns.expression_biotype],
        "Expression table", path,
    )

    sample_cols = [c for c in df.columns if c not in text_cols]
    if not sample_cols:
        raise ValueError(f"Expression table has no sample columns: {path}")
    bad = [c for c in sample_cols if not pd.api.types.is_numeric_dtype(df[c])]
    if bad:
        raise ValueError(
            f"Expression table has non-numeric sample columns (first: {bad[:5]}): {path}"
        )
    n_nan = int(df[sample_cols].isna().to_numpy().sum())
    if n_nan:
        raise ValueError(f"Expression table has {n_nan} missing values: {path}")

    logger.info(f"Loaded expression table: {len(df)} genes × {len(sample_cols)} samples")
    return df


def load_mutation_calls(path: Path, columns: Optional[InputColumns] = None) -> pd.DataFrame:
    """
    Load per-call mutation records.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the table lacks the sample or symbol column
    """
    columns = columns or InputColumns()
    path = _check_file(path, "Mutation calls")
    df = _read_table(
        path, "Mutation calls", sep='\t', low_memory=False,
        dtype={columns.mutation_sample: str, columns.mutation_symbol: str},
    )
    _require(df, [columns.mutation_sample, columns.mutation_symbol], "Mutation calls", path)
    logger.info(
        f"Loaded {len(df)} mutation calls from "
        f"{df[columns.mutation_sample].nunique()} samples"
    )
    return df


def load_sample_map(
    path: Path,
    columns: Optional[InputColumns] = None,
    sheet_name: int | str = 0,
) -> pd.DataFrame:
    """
    Load the clinical sample map.

    Excel workbooks (.xlsx) are read with openpyxl; .csv and .tsv/.txt are
    read as delimited text.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the format is unsupported or required columns are missing
    """
    columns = columns or InputColumns()
    path = _check_file(path, "Sample map")
    id_cols = [columns.clinical_patient, columns.clinical_rna_sample, columns.clinical_dna_sample]
    dtype = {c: str for c in id_cols}

    suffix = path.suffix.lower()
    if suffix in ('.xlsx', '.xlsm'):
        try:
            df = pd.read_excel(path, sheet_name=sheet_name, engine='openpyxl', dtype=dtype)
        except ValueError as e:
            raise ValueError(f"Failed to read sample map workbook {path}: {e}") from e
        if df.empty:
            raise ValueError(f"Sample map contains no rows: {path}")
    elif suffix == '.csv':
        df = _read_table(path, "Sample map", dtype=dtype)
    elif suffix in ('.tsv', '.txt'):
        df = _read_table(path, "Sample map", sep='\t', dtype=dtype)
    else:
        raise ValueError(
            f"Unsupported sample map format: {suffix}. Use .xlsx, .csv, or .tsv"
        )

    _require(df, id_cols, "Sample map", path)
    logger.info(f"Loaded sample map: {len(df)} rows, {df[columns.clinical_patient].nunique()} patients")
    return df


@dataclass(frozen=True)
class ArtifactSet:
    """Published artifacts, re-validated on load."""
    cohort: Cohort
    stat_result: StatResult
    autocomplete: AutocompleteIndex
    manifest: Dict[str, Any] = field(default_factory=dict)
    directory: Optional[Path] = None


def _read_matrix_csv(path: Path, what: str) -> pd.DataFrame:
    df = _read_table(
        _check_file(path, what), what, index_col=0, converters={0: str},
        keep_default_na=False, na_values=[''], float_precision='round_trip',
    )
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    return df


NUMERIC_STAT_COLUMNS = ('statistic', 'pvalue', 'padj')


def _read_stat_results(path: Path) -> pd.DataFrame:
    path = _check_file(path, "Statistics table")
    try:
        df = pd.read_csv(
            path,
            keep_default_na=False,
            na_values={col: [''] for col in NUMERIC_STAT_COLUMNS},
            float_precision='round_trip',
            dtype={'gene': str, 'genetic_subtype': str, 'label': str, 'summary': str, 'computed': str},
        )
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Statistics table is empty: {path}") from e

    for col in NUMERIC_STAT_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col])
    for col in ('label', 'summary'):
        if col in df.columns:
            df[col] = df[col].mask(df[col] == '')
    if 'computed' in df.columns:
        df['computed'] = df['computed'].str.lower().eq('true')
    return df


def load_artifacts(directory: Path) -> ArtifactSet:
    """
    Load a published artifact directory.

    Raises:
        FileNotFoundError: If the directory, the manifest, or any table is missing
        DataContractError: If the tables are not aligned with each other
    """
    directory = Path(directory)
    manifest_path = directory / MANIFEST_FILE
    if not manifest_path.exists():
        raise FileNotFoundError(
            f"No {MANIFEST_FILE} in {directory}; run 'amlsubtypes prepare' first"
        )
    with open(manifest_path) as f:
        manifest = json.load(f)

    raw = ExpressionMatrix.from_frame(
        _read_matrix_csv(directory / ARTIFACT_FILES['raw'], "Raw expression")
    )
    zscaled = ExpressionMatrix.from_frame(
        _read_matrix_csv(directory / ARTIFACT_FILES['zscaled'], "Z-scaled expression")
    )
    mutations = MutationMatrix.from_frame(
        _read_matrix_csv(directory / ARTIFACT_FILES['mutations'], "Mutation matrix")
    )
    report = FilterReport.from_dict(manifest['filters']) if manifest.get('filters') else None
    cohort = Cohort(raw=raw, zscaled=zscaled, mutations=mutations, report=report)

    stat_result = StatResult.from_long(
        _read_stat_results(directory / ARTIFACT_FILES['stats']),
        gene_ids=raw.gene_ids,
        subtypes=mutations.subtypes,
    )
    stat_result.check_complete(raw.gene_ids, mutations.subtypes)

    autocomplete_path = _check_file(directory / ARTIFACT_FILES['autocomplete'], "Autocomplete list")
    genes = [line.strip() for line in autocomplete_path.read_text().splitlines() if line.strip()]
    autocomplete = AutocompleteIndex(genes)
    if set(autocomplete) != set(stat_result.gene_ids):
        raise DataContractError(
            "Autocomplete list does not match the genes of the statistics table"
        )

    logger.info(f"Loaded artifacts from {directory}: {cohort!r}")
    return ArtifactSet(
        cohort=cohort,
        stat_result=stat_result,
        autocomplete=autocomplete,
        manifest=manifest,
        directory=directory,
    )
