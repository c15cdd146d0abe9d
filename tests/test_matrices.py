"""
Tests for the immutable ExpressionMatrix and MutationMatrix containers.
"""

import numpy as np
import pandas as pd
import pytest

from amlsubtypes.core.errors import DataContractError
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix


@pytest.fixture
def expr():
    return ExpressionMatrix(
        data=np.array([[5.0, 6.0, 7.0], [1.0, 2.0, 3.0]]),
        gene_ids=["HIF1A", "MYC"],
        patient_ids=["P1", "P2", "P3"],
        gene_annotations=pd.DataFrame({"biotype": ["protein_coding", "protein_coding"]}),
    )


class TestExpressionMatrix:

    def test_shape_and_keys(self, expr):
        assert expr.shape == (2, 3)
        assert expr.n_genes == 2
        assert expr.n_patients == 3
        assert list(expr.gene_ids) == ["HIF1A", "MYC"]
        assert "HIF1A" in expr
        assert "TP53" not in expr

    def test_data_is_read_only_copy(self):
        source = np.array([[1.0, 2.0]])
        matrix = ExpressionMatrix(source, ["G"], ["P1", "P2"])
        source[0, 0] = 99.0
        assert matrix.data[0, 0] == 1.0
        with pytest.raises(ValueError):
            matrix.data[0, 0] = 5.0

    def test_row_is_indexed_by_patients(self, expr):
        row = expr.row("MYC")
        assert list(row.index) == ["P1", "P2", "P3"]
        np.testing.assert_array_equal(row.to_numpy(), [1.0, 2.0, 3.0])

    def test_duplicate_gene_keys_rejected(self):
        with pytest.raises(DataContractError, match="Gene keys"):
            ExpressionMatrix(np.zeros((2, 2)), ["A", "A"], ["P1", "P2"])

    def test_duplicate_patients_rejected(self):
        with pytest.raises(DataContractError, match="Patient IDs"):
            ExpressionMatrix(np.zeros((1, 2)), ["A"], ["P1", "P1"])

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError, match="gene_ids length"):
            ExpressionMatrix(np.zeros((2, 2)), ["A"], ["P1", "P2"])
        with pytest.raises(ValueError, match="must be 2D"):
            ExpressionMatrix(np.zeros(3), ["A"], ["P1"])

    def test_non_numeric_rejected(self):
        with pytest.raises(TypeError):
            ExpressionMatrix(np.array([["a", "b"]]), ["A"], ["P1", "P2"])

    def test_select_genes_preserves_order_and_annotations(self, expr):
        subset = expr.select_genes(np.array([False, True]))
        assert list(subset.gene_ids) == ["MYC"]
        assert subset.gene_annotations.loc["MYC", "biotype"] == "protein_coding"
        assert expr.n_genes == 2

    def test_reindex_patients(self, expr):
        reordered = expr.reindex_patients(["P3", "P1"])
        np.testing.assert_array_equal(reordered.data[0], [7.0, 5.0])
        with pytest.raises(DataContractError):
            expr.reindex_patients(["P4"])

    def test_relabel_genes_detects_collisions(self, expr):
        assert list(expr.relabel_genes(["A", "B"]).gene_ids) == ["A", "B"]
        with pytest.raises(DataContractError):
            expr.relabel_genes(["A", "A"])

    def test_frame_round_trip_keeps_order(self, expr):
        rebuilt = ExpressionMatrix.from_frame(expr.to_frame())
        assert rebuilt.gene_ids.equals(expr.gene_ids)
        assert rebuilt.patient_ids.equals(expr.patient_ids)
        np.testing.assert_array_equal(rebuilt.data, expr.data)


class TestMutationMatrix:

    def test_binary_values_enforced(self):
        with pytest.raises(ValueError, match="0 or 1"):
            MutationMatrix(np.array([[2]]), ["P1"], ["NPM1"])

    def test_column_and_counts(self):
        muts = MutationMatrix(
            np.array([[1, 0], [1, 1], [0, 0]]),
            ["P1", "P2", "P3"],
            ["FLT3", "NPM1"],
        )
        np.testing.assert_array_equal(muts.column("FLT3"), [True, True, False])
        assert muts.mutated_counts().to_dict() == {"FLT3": 2, "NPM1": 1}
        assert muts.data.dtype == np.int8

    def test_empty_panel_allowed(self):
        muts = MutationMatrix(np.zeros((2, 0)), ["P1", "P2"], [])
        assert muts.n_subtypes == 0
        assert muts.n_patients == 2

    def test_reindex_patients(self):
        muts = MutationMatrix(np.array([[1], [0]]), ["P1", "P2"], ["NPM1"])
        assert muts.reindex_patients(["P2", "P1"]).data[:, 0].tolist() == [0, 1]
        with pytest.raises(DataContractError):
            muts.reindex_patients(["P9"])
