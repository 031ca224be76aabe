"""
Tests for the Matheron and Cressie-Hawkins estimators.
"""

import numpy as np
import pytest

from GeoVarioFit.aggregation import PairStatistics
from GeoVarioFit.estimators import (
    cressie,
    cressie_from_stats,
    estimator_name,
    get_estimator,
    matheron,
    matheron_from_stats,
)
from GeoVarioFit.exceptions import InvalidParameter


def _stats_from_increments(groups):
    """PairStatistics with one bin per list of increments."""
    stats = PairStatistics.zeros(len(groups))
    for k, x in enumerate(groups):
        x = np.asarray(x, float)
        stats.count[k] = x.size
        stats.sum_sq[k] = np.sum(x**2)
        stats.sum_sqrt_abs[k] = np.sum(np.sqrt(np.abs(x)))
        stats.sum_abs[k] = np.sum(np.abs(x))
    return stats


class TestIncrementEstimators:
    """Estimators on raw increments."""

    def test_matheron_value(self):
        assert matheron(np.array([1.0, -1.0, 0.0, 0.0])) == pytest.approx(0.25)

    def test_cressie_value(self):
        x = np.array([1.0, -4.0, 0.25])
        n = x.size
        expected = np.mean(np.sqrt(np.abs(x))) ** 4 / (2.0 * (0.457 + 0.494 / n))
        assert cressie(x) == pytest.approx(expected)

    def test_empty_is_nan(self):
        assert np.isnan(matheron(np.zeros(0)))
        assert np.isnan(cressie(np.zeros(0)))

    def test_matheron_non_negative(self):
        rng = np.random.default_rng(5)
        assert matheron(rng.normal(size=50)) >= 0.0

    def test_cressie_resists_outlier(self):
        x = np.r_[np.full(30, 0.5), 50.0]
        assert cressie(x) < matheron(x)


class TestStatsEstimators:
    """Estimators on sufficient statistics agree with the increment forms."""

    def test_consistent_with_increments(self):
        rng = np.random.default_rng(11)
        groups = [rng.normal(size=n) for n in (1, 7, 40)]
        stats = _stats_from_increments(groups)
        np.testing.assert_allclose(matheron_from_stats(stats), [matheron(g) for g in groups])
        np.testing.assert_allclose(cressie_from_stats(stats), [cressie(g) for g in groups])

    def test_empty_bin_is_nan(self):
        stats = _stats_from_increments([[1.0, -1.0], []])
        m = matheron_from_stats(stats)
        c = cressie_from_stats(stats)
        assert m[0] == pytest.approx(0.5)
        assert np.isnan(m[1]) and np.isnan(c[1])


class TestLookup:
    """Estimator tags and aliases."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("matheron", "matheron"),
            ("Classical", "matheron"),
            ("cressie", "cressie"),
            ("cressie_hawkins", "cressie"),
            ("CressieHawkins", "cressie"),
            ("robust", "cressie"),
        ],
    )
    def test_aliases(self, name, expected):
        assert estimator_name(name) == expected

    def test_get_estimator(self):
        assert get_estimator("classical") is matheron_from_stats
        assert get_estimator("robust") is cressie_from_stats

    @pytest.mark.parametrize("name", ["dowd", "", None, 3])
    def test_unknown(self, name):
        with pytest.raises(InvalidParameter):
            get_estimator(name)
