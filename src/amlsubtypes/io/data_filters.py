"""
Gene symbol filters for expression tables.

Expression files list every annotated locus. Only genes with a "clean"
protein-coding symbol are worth querying:

    - symbols containing "." or "-" are readthrough transcripts, clone-based
      names or antisense loci (e.g. "AC004893.1", "HLA-A" style collisions)
    - symbols like "C9orf72" are open-reading-frame placeholders

Classes:
    SymbolFilter: exclude symbols containing literal substrings
    RegexSymbolFilter: exclude symbols matching regex patterns

Example:
    >>> symbols = pd.Index(["TP53", "AC004893.1", "C9orf72", "HLA-DRB1"])
    >>> SymbolFilter([".", "-"]).filter(symbols)
    Index(['TP53', 'C9orf72'], dtype='object')
    >>> RegexSymbolFilter([r"^C\\d+orf\\d+$"]).filter(symbols)
    Index(['TP53', 'AC004893.1', 'HLA-DRB1'], dtype='object')
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from amlsubtypes.config import FilterConfig

__all__ = ['SymbolFilter', 'RegexSymbolFilter', 'clean_symbol_mask']


class SymbolFilter:
    """
    Exclude gene symbols containing any of the given literal substrings.

    Args:
        patterns: Substrings that mark a symbol for exclusion
        case_sensitive: Whether matching is case-sensitive (default: True)

    Attributes:
        n_filtered_: Number of symbols excluded by the last filter() call
    """

    regex = False

    def __init__(self, patterns: Sequence[str], case_sensitive: bool = True):
        if not patterns:
            raise ValueError("At least one pattern must be provided")

        self.patterns = list(patterns)
        self.case_sensitive = case_sensitive
        self.n_filtered_: int | None = None

    def _matches(self, symbols: pd.Index) -> np.ndarray:
        hits = np.zeros(len(symbols), dtype=bool)
        for pattern in self.patterns:
            hits |= np.asarray(
                symbols.str.contains(
                    pattern,
                    case=self.case_sensitive,
                    na=True,
                    regex=self.regex,
                ),
                dtype=bool,
            )
        return hits

    def keep_mask(self, symbols: pd.Index) -> np.ndarray:
        """Boolean mask of symbols that do NOT match any pattern."""
        symbols = pd.Index(symbols).astype(str)
        mask = ~self._matches(symbols)
        self.n_filtered_ = int((~mask).sum())
        return mask

    def filter(self, symbols: pd.Index) -> pd.Index:
        """Return the symbols that survive the filter, in input order."""
        symbols = pd.Index(symbols)
        return symbols[self.keep_mask(symbols)]

    def get_filtered_ids(self, symbols: pd.Index) -> pd.Index:
        """Return the symbols this filter would EXCLUDE."""
        symbols = pd.Index(symbols)
        return symbols[self._matches(symbols.astype(str))]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(patterns={self.patterns}, "
            f"case_sensitive={self.case_sensitive})"
        )


class RegexSymbolFilter(SymbolFilter):
    """Exclude gene symbols matching any of the given regex patterns."""

    regex = True


def clean_symbol_mask(symbols: pd.Index, config: FilterConfig) -> np.ndarray:
    """
    Combined substring + regex symbol filter from configuration.

    Missing symbols are never clean.
    """
    symbols = pd.Index(symbols)
    mask = ~pd.isna(symbols)
    if config.excluded_substrings:
        mask = mask & SymbolFilter(config.excluded_substrings).keep_mask(symbols)
    if config.excluded_patterns:
        mask = mask & RegexSymbolFilter(config.excluded_patterns).keep_mask(symbols)
    return np.asarray(mask, dtype=bool)
