"""
amlsubtypes CLI - gene expression across AML genetic subtypes.

Commands:
    amlsubtypes prepare   - Build the artifact directory from raw BeatAML tables
    amlsubtypes query     - Heatmap and boxplot data for one gene
    amlsubtypes genes     - List queryable genes (autocomplete)
"""

import argparse
import sys
from typing import List, Optional

from amlsubtypes import __version__


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for amlsubtypes."""
    parser = argparse.ArgumentParser(
        prog="amlsubtypes",
        description="Expression of a gene across common AML genetic subtypes (BeatAML)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  prepare   Filter expression, build the subtype panel, run all rank-sum tests
  query     Heatmap and boxplot data for one gene
  genes     List queryable genes

Examples:
  amlsubtypes prepare --expression beataml_norm_exp.txt --mutations beataml_wes_mutations.txt \\
      --clinical beataml_clinical.xlsx --output artifacts/ --workers 4
  amlsubtypes query --artifacts artifacts/ --gene HIF1A
  amlsubtypes genes --artifacts artifacts/ --prefix HIF
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from amlsubtypes.cli import prepare, query
    prepare.register_parser(subparsers)
    query.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
