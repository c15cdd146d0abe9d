"""
Tests for row-wise Benjamini-Hochberg correction and significance labels.
"""

import numpy as np
import pytest

from amlsubtypes.config import SignificanceConfig
from amlsubtypes.stats.multiple_testing import (
    bh_adjust,
    correct_row,
    format_summary,
    significance_label,
)


class TestBHAdjust:

    def test_known_values(self):
        pvalues = np.array([0.01, 0.04, 0.03, 0.005])
        # sorted: 0.005, 0.01, 0.03, 0.04 -> x4/1, x4/2, x4/3, x4/4 then cumulative min from the top
        expected = np.array([0.02, 0.04, 0.04, 0.02])
        np.testing.assert_allclose(bh_adjust(pvalues), expected)

    def test_adjusted_at_least_raw_and_order_preserving(self):
        rng = np.random.RandomState(3)
        pvalues = rng.uniform(0, 1, size=50)
        adjusted = bh_adjust(pvalues)
        assert adjusted.shape == pvalues.shape
        assert np.all(adjusted >= pvalues)
        assert np.all(adjusted <= 1.0)
        order = np.argsort(pvalues)
        assert np.all(np.diff(adjusted[order]) >= 0)

    def test_nan_excluded_from_family(self):
        pvalues = np.array([0.01, np.nan, 0.04])
        adjusted = bh_adjust(pvalues)
        assert np.isnan(adjusted[1])
        np.testing.assert_allclose(adjusted[[0, 2]], bh_adjust(np.array([0.01, 0.04])))

    def test_all_nan(self):
        assert np.isnan(bh_adjust(np.array([np.nan, np.nan]))).all()

    def test_empty(self):
        assert bh_adjust(np.array([])).shape == (0,)

    def test_single_test_unchanged(self):
        np.testing.assert_allclose(bh_adjust(np.array([0.0495])), [0.0495])


class TestSignificanceLabel:

    @pytest.mark.parametrize("padj, label", [
        (0.00005, "***"),
        (0.0001, "**"),
        (0.0005, "**"),
        (0.001, "**"),
        (0.005, "**"),
        (0.01, "*"),
        (0.049, "*"),
        (0.05, None),
        (0.5, None),
        (np.nan, None),
        (None, None),
    ])
    def test_tiers(self, padj, label):
        assert significance_label(padj) == label

    def test_custom_tiers(self):
        config = SignificanceConfig(tiers=((0.1, "sig"),))
        assert significance_label(0.07, config) == "sig"


class TestFormatSummary:

    def test_two_significant_figures(self):
        assert format_summary(0.0012345, "**") == "0.0012 **"
        assert format_summary(0.018047, "*") == "0.018 *"
        assert format_summary(1.234e-7, "***") == "1.2e-07 ***"

    def test_no_label_no_summary(self):
        assert format_summary(0.2, None) is None
        assert format_summary(np.nan, None) is None


class TestCorrectRow:

    def test_row(self):
        row = correct_row(np.array([0.009024, 0.296, np.nan]))
        np.testing.assert_allclose(row.padj[:2], [0.018048, 0.296])
        assert np.isnan(row.padj[2])
        assert row.labels == ["*", None, None]
        assert row.summaries == ["0.018 *", None, None]
