"""
Tests for gene symbol filters, the detection and variability filters, and
row-wise z-scaling.
"""

import numpy as np
import pandas as pd
import pytest

from amlsubtypes.config import FilterConfig
from amlsubtypes.core.matrices import ExpressionMatrix
from amlsubtypes.io.data_filters import RegexSymbolFilter, SymbolFilter, clean_symbol_mask
from amlsubtypes.quality.filtering import (
    DetectionFilter,
    VariabilityFilter,
    ZScaleTransform,
    _GeneFilter,
)


def _matrix(rows, genes=None):
    data = np.asarray(rows, dtype=float)
    genes = genes or [f"G{i}" for i in range(data.shape[0])]
    patients = [f"P{j:03d}" for j in range(data.shape[1])]
    return ExpressionMatrix(data, genes, patients)


class TestSymbolFilters:

    def test_substring_filter_is_literal(self):
        symbols = pd.Index(["TP53", "AC004893.1", "HLA-A", "NPM1"])
        filt = SymbolFilter([".", "-"])
        assert list(filt.filter(symbols)) == ["TP53", "NPM1"]
        assert filt.n_filtered_ == 2
        assert list(filt.get_filtered_ids(symbols)) == ["AC004893.1", "HLA-A"]

    def test_orf_pattern(self):
        symbols = pd.Index(["C9orf72", "C1orf112", "CORF1", "C9orf72A", "KRAS"])
        kept = RegexSymbolFilter([r"^C\d+orf\d+$"]).filter(symbols)
        assert list(kept) == ["CORF1", "C9orf72A", "KRAS"]

    def test_case_insensitive(self):
        symbols = pd.Index(["abc", "ABC", "XYZ"])
        assert list(SymbolFilter(["abc"], case_sensitive=False).filter(symbols)) == ["XYZ"]

    def test_requires_patterns(self):
        with pytest.raises(ValueError):
            SymbolFilter([])

    def test_clean_symbol_mask(self):
        symbols = pd.Index(["TP53", "AC004893.1", "HLA-A", "C9orf72", None, "GATA2"])
        mask = clean_symbol_mask(symbols, FilterConfig())
        np.testing.assert_array_equal(mask, [True, False, False, False, False, True])


class TestGeneFilterBase:

    def test_keep_mask_must_be_implemented(self):
        class NoMask(_GeneFilter):
            pass

        with pytest.raises(TypeError):
            NoMask(name="NoMask", params={})

    def test_subclass_with_mask(self):
        class FirstRowOnly(_GeneFilter):
            def keep_mask(self, matrix):
                return np.arange(matrix.n_genes) == 0

        kept = FirstRowOnly(name="FirstRowOnly", params={}).apply(_matrix([[1.0, 2.0], [3.0, 4.0]]))
        assert list(kept.gene_ids) == ["G0"]


class TestDetectionFilter:

    def test_strict_threshold_and_fraction(self):
        n = 200
        all_above = np.full(n, 5.0)
        one_missing = all_above.copy()
        one_missing[0] = 3.0                  # 199/200 = 99.5% > 99%
        two_missing = all_above.copy()
        two_missing[:2] = 3.0                 # 198/200 = 99%, not > 99%
        at_threshold = np.full(n, 4.0)        # 4 is not > 4
        matrix = _matrix([all_above, one_missing, two_missing, at_threshold])

        filt = DetectionFilter(threshold=4.0, min_fraction=0.99)
        np.testing.assert_array_equal(filt.keep_mask(matrix), [True, True, False, False])
        assert list(filt.apply(matrix).gene_ids) == ["G0", "G1"]

    def test_stage_records_parameters(self):
        matrix = _matrix([[5.0, 5.0], [1.0, 1.0]])
        filt = DetectionFilter()
        stage = filt.stage(matrix, filt.apply(matrix))
        assert stage.n_in == 2
        assert stage.n_out == 1
        assert stage.n_removed == 1
        assert stage.parameters == {"threshold": 4.0, "min_fraction": 0.99}

    def test_nan_rejected(self):
        matrix = _matrix([[5.0, np.nan]])
        with pytest.raises(ValueError, match="NaN"):
            DetectionFilter().apply(matrix)

    def test_input_unchanged(self):
        matrix = _matrix([[5.0, 5.0], [1.0, 1.0]])
        DetectionFilter().apply(matrix)
        assert matrix.n_genes == 2


class TestVariabilityFilter:

    def test_sample_sd_strictly_above(self):
        # sample SDs: ~1.58, exactly 1.0, 0
        matrix = _matrix([
            [1.0, 2.0, 3.0, 4.0, 5.0],
            [4.0, 5.0, 6.0, 4.0, 6.0],
            [7.0, 7.0, 7.0, 7.0, 7.0],
        ])
        sd = matrix.data.std(axis=1, ddof=1)
        assert sd[1] == pytest.approx(1.0)
        filt = VariabilityFilter(min_sd=1.0)
        assert list(filt.apply(matrix).gene_ids) == ["G0"]

    def test_single_patient_keeps_nothing(self):
        matrix = _matrix([[5.0], [9.0]])
        assert not VariabilityFilter().keep_mask(matrix).any()

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            VariabilityFilter(min_sd=-1.0).apply(_matrix([[1.0, 2.0]]))


class TestZScaleTransform:

    def test_rows_have_mean_zero_sd_one(self):
        rng = np.random.RandomState(0)
        matrix = _matrix(rng.normal(8, 2, size=(20, 30)))
        scaled = ZScaleTransform().apply(matrix)
        np.testing.assert_allclose(scaled.data.mean(axis=1), 0.0, atol=1e-12)
        np.testing.assert_allclose(scaled.data.std(axis=1, ddof=1), 1.0, rtol=1e-12)

    def test_keys_preserved(self):
        matrix = _matrix([[1.0, 2.0, 4.0]], genes=["HIF1A"])
        scaled = ZScaleTransform().apply(matrix)
        assert scaled.gene_ids.equals(matrix.gene_ids)
        assert scaled.patient_ids.equals(matrix.patient_ids)

    def test_rank_order_preserved(self):
        matrix = _matrix([[3.0, 9.0, 1.0, 4.0]])
        scaled = ZScaleTransform().apply(matrix)
        np.testing.assert_array_equal(
            np.argsort(scaled.data[0]), np.argsort(matrix.data[0])
        )

    def test_flat_row_rejected(self):
        with pytest.raises(ValueError, match="zero standard deviation"):
            ZScaleTransform().apply(_matrix([[2.0, 2.0, 2.0]]))

    def test_too_few_patients(self):
        with pytest.raises(ValueError, match="more than 1 patients"):
            ZScaleTransform().apply(_matrix([[2.0]]))
