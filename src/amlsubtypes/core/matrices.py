"""
Immutable matrix containers for the aligned cohort.

Two shapes of data share one patient axis:

    ExpressionMatrix:
        Rows = genes (unique symbols after filtering)
        Columns = patients
        Values = log2 normalized expression, or its row-wise z-scaled view

    MutationMatrix:
        Rows = patients (same sequence as the expression columns)
        Columns = genetic subtypes (recurrently mutated genes)
        Values = 0 (unmutated) / 1 (mutated)

Engineering Design:
    - Immutable: numpy buffers are copied on construction and marked
      read-only; all operations return new instances
    - Validated: constructors check shapes, key uniqueness and value domains
    - Order preserving: row and column order is part of the contract and is
      never changed implicitly (no sorting inside the containers)

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
    >>>
    >>> expr = ExpressionMatrix(
    ...     data=np.array([[5.0, 6.0], [7.0, 1.0]]),
    ...     gene_ids=pd.Index(["HIF1A", "MYC"]),
    ...     patient_ids=pd.Index(["P1", "P2"]),
    ... )
    >>> muts = MutationMatrix(
    ...     data=np.array([[1], [0]]),
    ...     patient_ids=pd.Index(["P1", "P2"]),
    ...     subtypes=pd.Index(["NPM1"]),
    ... )
    >>> expr.row("HIF1A").tolist()
    [5.0, 6.0]
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from amlsubtypes.core.errors import DataContractError

__all__ = ['ExpressionMatrix', 'MutationMatrix']


def _frozen(array: np.ndarray, dtype) -> np.ndarray:
    """Copy into a read-only array of the given dtype."""
    out = np.array(array, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


def _as_index(values: Sequence[str] | pd.Index, name: str) -> pd.Index:
    index = pd.Index(values, name=name)
    if index.hasnans:
        raise ValueError(f"{name} contains missing identifiers")
    return index.astype(str)


def _check_unique(index: pd.Index, what: str) -> None:
    if index.has_duplicates:
        duplicates = index[index.duplicated()].unique().tolist()
        raise DataContractError(
            f"{what} must be unique; found {len(duplicates)} duplicated keys "
            f"(first: {duplicates[:5]})"
        )


class ExpressionMatrix:
    """
    Immutable genes x patients expression matrix.

    Attributes:
        data: Read-only float array (n_genes, n_patients)
        gene_ids: Row keys (gene symbols or stable IDs)
        patient_ids: Column keys, the patient axis
        gene_annotations: Per-gene annotation columns (biotype, stable ID, ...)
            indexed like gene_ids

    Shape Invariants:
        - data.shape == (len(gene_ids), len(patient_ids))
        - gene_ids and patient_ids are unique
        - gene_annotations.index equals gene_ids
    """

    def __init__(
        self,
        data: np.ndarray,
        gene_ids: pd.Index | Sequence[str],
        patient_ids: pd.Index | Sequence[str],
        gene_annotations: Optional[pd.DataFrame] = None,
    ):
        data = np.asarray(data)
        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")
        if not np.issubdtype(data.dtype, np.number):
            raise TypeError(f"data must be numeric, got dtype {data.dtype}")

        gene_ids = _as_index(gene_ids, "gene_id")
        patient_ids = _as_index(patient_ids, "patient_id")

        n_genes, n_patients = data.shape
        if len(gene_ids) != n_genes:
            raise ValueError(
                f"gene_ids length ({len(gene_ids)}) must match data rows ({n_genes})"
            )
        if len(patient_ids) != n_patients:
            raise ValueError(
                f"patient_ids length ({len(patient_ids)}) must match data columns ({n_patients})"
            )

        _check_unique(gene_ids, "Gene keys")
        _check_unique(patient_ids, "Patient IDs")

        if gene_annotations is None:
            gene_annotations = pd.DataFrame(index=gene_ids)
        elif not isinstance(gene_annotations, pd.DataFrame):
            raise TypeError(
                f"gene_annotations must be pd.DataFrame, got {type(gene_annotations)}"
            )
        elif len(gene_annotations) != n_genes:
            raise ValueError(
                f"gene_annotations has {len(gene_annotations)} rows for {n_genes} genes"
            )
        gene_annotations = gene_annotations.copy()
        gene_annotations.index = gene_ids

        self._data = _frozen(data, float)
        self._gene_ids = gene_ids
        self._patient_ids = patient_ids
        self._gene_annotations = gene_annotations

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        gene_annotations: Optional[pd.DataFrame] = None,
    ) -> ExpressionMatrix:
        """Build from a genes x patients DataFrame, keeping its order."""
        return cls(
            data=frame.to_numpy(dtype=float),
            gene_ids=frame.index,
            patient_ids=frame.columns,
            gene_annotations=gene_annotations,
        )

    @property
    def data(self) -> np.ndarray:
        """Expression values (genes x patients), read-only."""
        return self._data

    @property
    def gene_ids(self) -> pd.Index:
        return self._gene_ids

    @property
    def patient_ids(self) -> pd.Index:
        return self._patient_ids

    @property
    def gene_annotations(self) -> pd.DataFrame:
        return self._gene_annotations

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    @property
    def n_genes(self) -> int:
        return self._data.shape[0]

    @property
    def n_patients(self) -> int:
        return self._data.shape[1]

    def __contains__(self, gene: object) -> bool:
        return gene in self._gene_ids

    def row(self, gene: str) -> pd.Series:
        """
        Expression of one gene across the patient axis.

        Raises:
            KeyError: If gene is not a row key
        """
        position = self._gene_ids.get_loc(gene)
        return pd.Series(self._data[position], index=self._patient_ids, name=gene)

    def select_genes(self, mask: np.ndarray | pd.Series) -> ExpressionMatrix:
        """
        Subset rows by boolean mask, preserving order.

        Raises:
            ValueError: If mask length doesn't match n_genes
        """
        if isinstance(mask, pd.Series):
            mask = mask.to_numpy()
        mask = np.asarray(mask, dtype=bool)
        if len(mask) != self.n_genes:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_genes ({self.n_genes})"
            )
        return ExpressionMatrix(
            data=self._data[mask, :],
            gene_ids=self._gene_ids[mask],
            patient_ids=self._patient_ids,
            gene_annotations=self._gene_annotations.loc[mask],
        )

    def reindex_patients(self, patient_ids: Sequence[str] | pd.Index) -> ExpressionMatrix:
        """
        Reorder/subset columns to exactly the given patient sequence.

        Raises:
            DataContractError: If any requested patient is not a column
        """
        patient_ids = _as_index(patient_ids, "patient_id")
        positions = self._patient_ids.get_indexer(patient_ids)
        if (positions < 0).any():
            missing = patient_ids[positions < 0].tolist()
            raise DataContractError(
                f"{len(missing)} patients are not columns of the expression matrix "
                f"(first: {missing[:5]})"
            )
        return ExpressionMatrix(
            data=self._data[:, positions],
            gene_ids=self._gene_ids,
            patient_ids=patient_ids,
            gene_annotations=self._gene_annotations,
        )

    def relabel_genes(self, gene_ids: Sequence[str] | pd.Index) -> ExpressionMatrix:
        """
        Replace row keys (e.g. stable IDs -> symbols).

        Raises:
            DataContractError: If the new keys collide
        """
        return ExpressionMatrix(
            data=self._data,
            gene_ids=gene_ids,
            patient_ids=self._patient_ids,
            gene_annotations=self._gene_annotations.reset_index(drop=True),
        )

    def with_data(self, data: np.ndarray) -> ExpressionMatrix:
        """Same keys and annotations, new values (used by transforms)."""
        return ExpressionMatrix(
            data=data,
            gene_ids=self._gene_ids,
            patient_ids=self._patient_ids,
            gene_annotations=self._gene_annotations,
        )

    def to_frame(self) -> pd.DataFrame:
        """Genes x patients DataFrame copy."""
        return pd.DataFrame(
            self._data.copy(), index=self._gene_ids, columns=self._patient_ids
        )

    def __repr__(self) -> str:
        if self.n_genes == 0 or self.n_patients == 0:
            return f"ExpressionMatrix({self.n_genes} genes × {self.n_patients} patients)"
        return (
            f"ExpressionMatrix({self.n_genes} genes × {self.n_patients} patients)\n"
            f"  Genes: {self.gene_ids[0]}...{self.gene_ids[-1]}\n"
            f"  Patients: {self.patient_ids[0]}...{self.patient_ids[-1]}"
        )


class MutationMatrix:
    """
    Immutable patients x subtypes binary mutation matrix.

    Attributes:
        data: Read-only int8 array (n_patients, n_subtypes) with values in {0, 1}
        patient_ids: Row keys, the patient axis
        subtypes: Column keys, the genetic subtype panel

    Patients without any qualifying mutation are all-zero rows; they are
    members of every subtype's unmutated group.
    """

    def __init__(
        self,
        data: np.ndarray,
        patient_ids: pd.Index | Sequence[str],
        subtypes: pd.Index | Sequence[str],
    ):
        data = np.asarray(data)
        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        patient_ids = _as_index(patient_ids, "patient_id")
        subtypes = _as_index(subtypes, "genetic_subtype")

        n_patients, n_subtypes = data.shape
        if len(patient_ids) != n_patients:
            raise ValueError(
                f"patient_ids length ({len(patient_ids)}) must match data rows ({n_patients})"
            )
        if len(subtypes) != n_subtypes:
            raise ValueError(
                f"subtypes length ({len(subtypes)}) must match data columns ({n_subtypes})"
            )

        _check_unique(patient_ids, "Patient IDs")
        _check_unique(subtypes, "Subtype keys")

        if data.size and not np.isin(data, (0, 1)).all():
            raise ValueError("Mutation matrix values must be 0 or 1")

        self._data = _frozen(data, np.int8)
        self._patient_ids = patient_ids
        self._subtypes = subtypes

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> MutationMatrix:
        """Build from a patients x subtypes DataFrame, keeping its order."""
        return cls(
            data=frame.to_numpy(),
            patient_ids=frame.index,
            subtypes=frame.columns,
        )

    @property
    def data(self) -> np.ndarray:
        """Mutation status (patients x subtypes), read-only."""
        return self._data

    @property
    def patient_ids(self) -> pd.Index:
        return self._patient_ids

    @property
    def subtypes(self) -> pd.Index:
        return self._subtypes

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    @property
    def n_patients(self) -> int:
        return self._data.shape[0]

    @property
    def n_subtypes(self) -> int:
        return self._data.shape[1]

    def column(self, subtype: str) -> np.ndarray:
        """Boolean mutated mask for one subtype, aligned to patient_ids."""
        position = self._subtypes.get_loc(subtype)
        return self._data[:, position].astype(bool)

    def mutated_counts(self) -> pd.Series:
        """Number of mutated patients per subtype."""
        return pd.Series(
            self._data.sum(axis=0).astype(int), index=self._subtypes, name="n_mutated"
        )

    def reindex_patients(self, patient_ids: Sequence[str] | pd.Index) -> MutationMatrix:
        """
        Reorder rows to exactly the given patient sequence.

        Raises:
            DataContractError: If any requested patient is not a row
        """
        patient_ids = _as_index(patient_ids, "patient_id")
        positions = self._patient_ids.get_indexer(patient_ids)
        if (positions < 0).any():
            missing = patient_ids[positions < 0].tolist()
            raise DataContractError(
                f"{len(missing)} patients are not rows of the mutation matrix "
                f"(first: {missing[:5]})"
            )
        return MutationMatrix(
            data=self._data[positions, :],
            patient_ids=patient_ids,
            subtypes=self._subtypes,
        )

    def to_frame(self) -> pd.DataFrame:
        """Patients x subtypes DataFrame copy."""
        return pd.DataFrame(
            self._data.copy(), index=self._patient_ids, columns=self._subtypes
        )

    def __repr__(self) -> str:
        return (
            f"MutationMatrix({self.n_patients} patients × {self.n_subtypes} subtypes)\n"
            f"  Subtypes: {list(self.subtypes)}"
        )
