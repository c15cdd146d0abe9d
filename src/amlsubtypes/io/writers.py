"""
Artifact writer for the offline build.

The prepare step publishes one directory that the lookup layer reads:

    expression_raw.csv       genes x patients, log2 normalized expression
    expression_zscaled.csv   genes x patients, row-wise z-scaled
    mutation_matrix.csv      patients x subtypes, 0/1
    stat_results.csv         long form, one row per (gene, subtype)
    autocomplete_genes.txt   one queryable gene symbol per line, sorted
    manifest.json            configuration, filter provenance, shapes

Every table keeps its row and column order exactly; the loader relies on
it. All files are written atomically, and only after the cohort and the
statistics table have passed their alignment checks. The manifest is
written last, and an existing manifest is removed before the first table is
replaced, so a directory without a manifest is an incomplete build.

Examples:
    >>> write_artifacts(cohort, stat_result, Path("artifacts"), config=config)
    PosixPath('artifacts/manifest.json')
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from amlsubtypes import __version__
from amlsubtypes.cohort import Cohort
from amlsubtypes.config import PipelineConfig
from amlsubtypes.lookup import AutocompleteIndex
from amlsubtypes.stats.results import StatResult
from amlsubtypes.utils.fileio import atomic_write_csv, atomic_write_json, atomic_write_text

logger = logging.getLogger(__name__)

__all__ = ['write_artifacts', 'ARTIFACT_FILES', 'MANIFEST_FILE', 'FORMAT_VERSION']

FORMAT_VERSION = 1

ARTIFACT_FILES = {
    'raw': 'expression_raw.csv',
    'zscaled': 'expression_zscaled.csv',
    'mutations': 'mutation_matrix.csv',
    'stats': 'stat_results.csv',
    'autocomplete': 'autocomplete_genes.txt',
}
MANIFEST_FILE = 'manifest.json'

# Full float precision so reloaded tables compare equal
FLOAT_FORMAT = '%.17g'


def _manifest(
    cohort: Cohort,
    stat_result: StatResult,
    config: PipelineConfig,
) -> Dict[str, Any]:
    return {
        'format_version': FORMAT_VERSION,
        'amlsubtypes_version': __version__,
        'created': datetime.now(timezone.utc).isoformat(timespec='seconds'),
        'n_genes': int(cohort.raw.n_genes),
        'n_patients': int(cohort.raw.n_patients),
        'subtypes': cohort.subtypes.tolist(),
        'n_significant_cells': int(stat_result.labels.notna().to_numpy(dtype=bool).sum()),
        'n_not_computed_cells': int((~stat_result.computed.to_numpy(dtype=bool)).sum()),
        'files': dict(ARTIFACT_FILES),
        'config': config.to_dict(),
        'filters': cohort.report.to_dict() if cohort.report is not None else None,
    }


def write_artifacts(
    cohort: Cohort,
    stat_result: StatResult,
    output_dir: Path,
    config: Optional[PipelineConfig] = None,
) -> Path:
    """
    Publish the aligned matrices and statistics table.

    Args:
        cohort: Aligned cohort (alignment is checked at Cohort construction)
        stat_result: Complete statistics for cohort
        output_dir: Destination directory (created if missing)
        config: Configuration recorded in the manifest

    Returns:
        Path of the manifest

    Raises:
        DataContractError: If stat_result does not cover the cohort's genes
            and subtypes exactly; nothing is written in that case
    """
    config = config or PipelineConfig()
    stat_result.check_complete(cohort.gene_ids, cohort.subtypes)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    manifest_path = output_dir / MANIFEST_FILE
    # Directory reads as incomplete until the new manifest lands
    if manifest_path.exists():
        logger.info(f"Replacing existing artifacts in {output_dir}")
        manifest_path.unlink()

    raw = cohort.raw.to_frame()
    raw.index.name = 'gene'
    zscaled = cohort.zscaled.to_frame()
    zscaled.index.name = 'gene'

    atomic_write_csv(output_dir / ARTIFACT_FILES['raw'], raw, float_format=FLOAT_FORMAT)
    atomic_write_csv(output_dir / ARTIFACT_FILES['zscaled'], zscaled, float_format=FLOAT_FORMAT)
    atomic_write_csv(output_dir / ARTIFACT_FILES['mutations'], cohort.mutations.to_frame())
    atomic_write_csv(
        output_dir / ARTIFACT_FILES['stats'],
        stat_result.to_long(),
        index=False,
        float_format=FLOAT_FORMAT,
    )

    genes = AutocompleteIndex(stat_result.gene_ids).genes
    atomic_write_text(
        output_dir / ARTIFACT_FILES['autocomplete'],
        "".join(f"{g}\n" for g in genes),
    )

    atomic_write_json(manifest_path, _manifest(cohort, stat_result, config))

    logger.info(
        f"Wrote artifacts for {cohort.raw.n_genes} genes × {cohort.mutations.n_subtypes} "
        f"subtypes to {output_dir}"
    )
    return manifest_path
