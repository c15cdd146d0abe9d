"""
amlsubtypes prepare - offline build of the query artifacts.

Reads the raw BeatAML tables, aligns expression and mutations on one
patient axis, filters genes, runs every (gene, subtype) rank-sum test with
row-wise FDR correction, and publishes the artifact directory.

Nothing is written unless every alignment check passes.
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from amlsubtypes.cli._validators import _non_negative_float, _positive_int, _probability

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the prepare subcommand."""
    parser = subparsers.add_parser(
        "prepare",
        help="Build the artifact directory from raw BeatAML tables",
        description="Filter expression, build the subtype panel and test every gene against every subtype",
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")
    parser.add_argument("--expression", "-e", type=Path, required=True,
                        help="Normalized expression table (tab-delimited, genes x RNA samples)")
    parser.add_argument("--mutations", "-m", type=Path, required=True,
                        help="Mutation calls (tab-delimited, one row per call)")
    parser.add_argument("--clinical", type=Path, required=True,
                        help="Sample map linking patients to RNA and DNA samples (.xlsx, .csv, .tsv)")
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Artifact directory to write")
    parser.add_argument("--workers", "-j", type=_positive_int, default=1,
                        help="Parallel workers for the per-gene tests (default: 1)")
    parser.add_argument("--detection-threshold", type=float, default=None,
                        help="Detection filter: minimum log2 expression (default: 4.0)")
    parser.add_argument("--detection-fraction", type=_probability, default=None,
                        help="Detection filter: fraction of patients that must exceed the threshold "
                             "(default: 0.99)")
    parser.add_argument("--min-sd", type=_non_negative_float, default=None,
                        help="Variability filter: minimum standard deviation across patients (default: 1.0)")
    parser.add_argument("--min-prevalence", type=_probability, default=None,
                        help="Subtype panel: minimum fraction of patients mutated (default: 0.05)")
    parser.add_argument("--progress", action="store_true", default=False,
                        help="Show a progress bar over genes")
    parser.add_argument("--verbose", "-v", action="store_true", default=False,
                        help="Debug logging")

    parser.set_defaults(func=run_prepare)


def run_prepare(args: argparse.Namespace) -> int:
    """Execute the prepare command."""
    from amlsubtypes.cohort import build_cohort
    from amlsubtypes.config import load_pipeline_config
    from amlsubtypes.core.errors import DataContractError
    from amlsubtypes.io.loaders import load_expression_table, load_mutation_calls, load_sample_map
    from amlsubtypes.io.writers import write_artifacts
    from amlsubtypes.stats.results import build_stat_result

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        config = load_pipeline_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Config file error: {e}")
        return 1
    config = config.with_overrides(
        detection_threshold=args.detection_threshold,
        detection_fraction=args.detection_fraction,
        min_sd=args.min_sd,
        min_prevalence=args.min_prevalence,
    )

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  BeatAML subtype expression: offline build")
    print(f"{'='*70}")
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")

    try:
        expression = load_expression_table(args.expression, config.columns)
        calls = load_mutation_calls(args.mutations, config.columns)
        sample_map = load_sample_map(args.clinical, config.columns)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Input error: {e}")
        return 1

    try:
        cohort = build_cohort(expression, calls, sample_map, config)
        stat_result = build_stat_result(
            cohort, config, n_jobs=args.workers, progress=args.progress
        )
        manifest = write_artifacts(cohort, stat_result, args.output, config=config)
    except DataContractError as e:
        logger.error(f"Data contract violation, nothing published: {e}")
        return 2
    except ValueError as e:
        logger.error(f"Input error: {e}")
        return 1

    elapsed = datetime.now() - start_time
    print(f"\n{'='*70}")
    print(f"  Genes:     {cohort.raw.n_genes}")
    print(f"  Patients:  {cohort.raw.n_patients}")
    print(f"  Subtypes:  {cohort.mutations.n_subtypes} ({', '.join(cohort.subtypes)})")
    print(f"  Significant gene x subtype cells: {int(stat_result.labels.notna().to_numpy(dtype=bool).sum())}")
    print(f"  Manifest:  {manifest}")
    print(f"  Elapsed:   {elapsed}")
    print(f"{'='*70}\n")
    return 0
