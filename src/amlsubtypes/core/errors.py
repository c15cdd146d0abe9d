"""
Error taxonomy for the subtype expression pipeline.

Three failure classes with different propagation rules:

    DataContractError:
        The aligned inputs violate a structural invariant (patient axis
        mismatch, duplicate gene keys, incomplete statistics table).
        Fatal for the offline build - nothing is published.

    DegenerateGroupError:
        A single (gene, subtype) rank-sum test cannot be computed because
        one of the two groups is empty. Recovered per cell as "not computed";
        never aborts the batch.

    InvalidGeneQueryError:
        A user asked for a gene that is not in the autocomplete index.
        User-facing validation error; no table lookup is attempted.
"""

from __future__ import annotations

from typing import Sequence

__all__ = [
    'AMLSubtypesError',
    'DataContractError',
    'DegenerateGroupError',
    'InvalidGeneQueryError',
]


class AMLSubtypesError(Exception):
    """Base class for all pipeline errors."""
    pass


class DataContractError(AMLSubtypesError):
    """Raised when aligned matrices or the statistics table break a structural invariant."""
    pass


class DegenerateGroupError(AMLSubtypesError):
    """Raised when a rank-sum test has an empty mutated or unmutated group."""

    def __init__(self, subtype: str | None, n_mutated: int, n_unmutated: int):
        self.subtype = subtype
        self.n_mutated = n_mutated
        self.n_unmutated = n_unmutated
        label = f"subtype '{subtype}'" if subtype is not None else "comparison"
        super().__init__(
            f"Cannot test {label}: mutated group has {n_mutated} patients, "
            f"unmutated group has {n_unmutated} patients (both must be non-empty)"
        )


class InvalidGeneQueryError(AMLSubtypesError, ValueError):
    """Raised when a queried gene is not a member of the autocomplete index."""

    def __init__(self, gene: str, suggestions: Sequence[str] = ()):
        self.gene = gene
        self.suggestions = list(suggestions)
        message = f"Gene '{gene}' is not available"
        if self.suggestions:
            message += f". Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)
