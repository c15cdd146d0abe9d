"""
amlsubtypes query / genes - interactive lookups over published artifacts.

    query: heatmap and boxplot data for one gene, as a readable table or JSON
    genes: the autocomplete list, optionally filtered by prefix
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from amlsubtypes.cli._validators import _positive_int

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the query and genes subcommands."""
    parser = subparsers.add_parser(
        "query",
        help="Heatmap and boxplot data for one gene",
        description="Look up one gene: patients ordered by expression with subtype membership, "
                    "and mutated vs unmutated expression for each significant subtype",
    )
    parser.add_argument("--artifacts", "-a", type=Path, required=True,
                        help="Artifact directory written by 'amlsubtypes prepare'")
    parser.add_argument("--gene", "-g", required=True, help="Gene symbol (e.g. HIF1A)")
    parser.add_argument("--view", choices=["heatmap", "boxplot", "both"], default="both",
                        help="Which bundle to return (default: both)")
    parser.add_argument("--format", "-f", choices=["table", "json"], default="table",
                        help="Output format (default: table)")
    parser.add_argument("--export", type=Path, default=None,
                        help="Directory to write the bundle data as CSV")
    parser.add_argument("--verbose", "-v", action="store_true", default=False,
                        help="Debug logging")
    parser.set_defaults(func=run_query)

    genes = subparsers.add_parser(
        "genes",
        help="List queryable genes",
        description="Print the autocomplete gene list",
    )
    genes.add_argument("--artifacts", "-a", type=Path, required=True,
                       help="Artifact directory written by 'amlsubtypes prepare'")
    genes.add_argument("--prefix", "-p", default="",
                       help="Only genes starting with this prefix (case-insensitive)")
    genes.add_argument("--limit", "-n", type=_positive_int, default=None,
                       help="Maximum number of genes to print")
    genes.set_defaults(func=run_genes)


def _load_lookup(directory: Path):
    from amlsubtypes.io.loaders import load_artifacts
    from amlsubtypes.lookup import SubtypeExpressionLookup

    return SubtypeExpressionLookup.from_artifacts(load_artifacts(directory))


def _print_heatmap(bundle) -> None:
    print(bundle.title)
    print(f"  Lowest:  {bundle.patient_order[0]} ({bundle.expression.iloc[0]:.2f})")
    print(f"  Highest: {bundle.patient_order[-1]} ({bundle.expression.iloc[-1]:.2f})")
    print()
    counts = bundle.subtype_matrix.sum(axis=1)
    width = max((len(label) for label in bundle.row_labels), default=0)
    for label, subtype in zip(bundle.row_labels, bundle.subtype_matrix.index):
        print(f"  {label:<{width}}  mutated: {int(counts[subtype])}")


def _print_boxplot(bundle) -> None:
    if bundle.is_empty:
        print(f"{bundle.gene}: no subtype with a significant expression difference")
        return
    print(f"{bundle.gene}: {bundle.n_significant} significant subtypes")
    medians = (
        bundle.data
        .groupby(['genetic_subtype', 'mutation_status'], observed=True)['expression']
        .median()
    )
    for row in bundle.annotations.itertuples(index=False):
        print(
            f"  {row.genetic_subtype:<12} {row.label:<14} "
            f"median Unmutated={medians[(row.genetic_subtype, 'Unmutated')]:.2f} "
            f"Mutated={medians[(row.genetic_subtype, 'Mutated')]:.2f}"
        )


def _export(bundles: dict, directory: Path) -> None:
    from amlsubtypes.utils.fileio import atomic_write_csv

    directory.mkdir(parents=True, exist_ok=True)
    if 'heatmap' in bundles:
        heatmap = bundles['heatmap']
        frame = heatmap.subtype_matrix.copy()
        frame.index = heatmap.row_labels
        frame.loc['zscaled_expression'] = heatmap.expression.to_numpy()
        atomic_write_csv(directory / f"{heatmap.gene}_heatmap_data.csv", frame)
    if 'boxplot' in bundles:
        boxplot = bundles['boxplot']
        atomic_write_csv(directory / f"{boxplot.gene}_boxplot_data.csv", boxplot.data, index=False)
    logger.info(f"Exported bundle data to {directory}")


def run_query(args: argparse.Namespace) -> int:
    """Execute the query command."""
    from amlsubtypes.core.errors import DataContractError, InvalidGeneQueryError

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        lookup = _load_lookup(args.artifacts)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except DataContractError as e:
        logger.error(f"Artifacts are inconsistent: {e}")
        return 2

    try:
        bundles = {}
        if args.view in ("heatmap", "both"):
            bundles['heatmap'] = lookup.heatmap(args.gene)
        if args.view in ("boxplot", "both"):
            bundles['boxplot'] = lookup.boxplot(args.gene)
    except InvalidGeneQueryError as e:
        print(f"ERROR: {e}")
        return 1

    if args.format == "json":
        print(json.dumps({k: b.to_dict() for k, b in bundles.items()}, indent=2))
    else:
        if 'heatmap' in bundles:
            _print_heatmap(bundles['heatmap'])
        if 'boxplot' in bundles:
            if 'heatmap' in bundles:
                print()
            _print_boxplot(bundles['boxplot'])

    if args.export is not None:
        _export(bundles, args.export)
    return 0


def run_genes(args: argparse.Namespace) -> int:
    """Execute the genes command."""
    from amlsubtypes.core.errors import DataContractError

    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        lookup = _load_lookup(args.artifacts)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except DataContractError as e:
        logger.error(f"Artifacts are inconsistent: {e}")
        return 2

    for gene in lookup.autocomplete.complete(args.prefix, limit=args.limit):
        print(gene)
    return 0
