"""
Tests for empirical variograms and variogram surfaces.
"""

import numpy as np
import pandas as pd
import pytest

from GeoVarioFit.empirical import (
    EmpiricalVariogram,
    directional_variogram,
    empirical_variogram,
    variogram_surface,
)
from GeoVarioFit.exceptions import InvalidParameter


class TestEmpiricalVariogram:
    """Tests for empirical_variogram."""

    def test_unit_square(self, square_samples):
        coords, values = square_samples
        vario = empirical_variogram(coords, values, maxlag=2.0, nlags=2)
        np.testing.assert_allclose(vario.lags, [0.5, 1.5])
        np.testing.assert_array_equal(vario.npairs, [4, 2])
        np.testing.assert_allclose(vario.gamma, [0.25, 0.5])
        np.testing.assert_allclose(vario.distances, [1.0, np.sqrt(2.0)])

    def test_points_are_valid(self, sample_data):
        vario = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, nlags=15)
        assert len(vario) > 0
        assert np.all(vario.npairs >= 1)
        assert np.all(np.diff(vario.lags) > 0)
        assert np.all(vario.gamma >= 0.0)
        assert np.all(vario.distances <= 60.0)

    def test_repeatable(self, sample_data):
        a = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, n_jobs=1)
        b = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, n_jobs=3)
        np.testing.assert_array_equal(a.npairs, b.npairs)
        np.testing.assert_allclose(a.gamma, b.gamma, rtol=1e-12)

    def test_identical_calls_are_bit_identical(self, sample_data):
        a = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, n_jobs=4)
        b = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, n_jobs=4)
        np.testing.assert_array_equal(a.npairs, b.npairs)
        np.testing.assert_array_equal(a.gamma, b.gamma)
        np.testing.assert_array_equal(a.lags, b.lags)
        np.testing.assert_array_equal(a.distances, b.distances)

    def test_engines_agree(self, sample_data):
        a = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, engine="numba")
        b = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=60.0, engine="kdtree")
        np.testing.assert_array_equal(a.npairs, b.npairs)
        np.testing.assert_allclose(a.gamma, b.gamma, rtol=1e-10)

    def test_single_sample_is_empty(self):
        vario = empirical_variogram([[0.0, 0.0]], [1.0], maxlag=1.0)
        assert vario.is_empty
        assert vario.total_pairs == 0

    def test_all_pairs_beyond_maxlag(self):
        vario = empirical_variogram([[0.0, 0.0], [5.0, 0.0]], [1.0, 2.0], maxlag=1.0)
        assert len(vario) == 0

    def test_one_dimensional_coordinates(self):
        vario = empirical_variogram([0.0, 1.0, 2.0], [0.0, 1.0, 0.0], maxlag=2.0, nlags=2)
        np.testing.assert_array_equal(vario.npairs, [2, 1])
        np.testing.assert_allclose(vario.gamma, [0.5, 0.0])

    def test_cressie_below_matheron_with_outlier(self):
        rng = np.random.default_rng(2)
        coords = rng.uniform(0, 10, size=(60, 2))
        values = rng.normal(0, 0.1, 60)
        coords[0] = [5.0, 5.0]
        values[0] = 25.0
        m = empirical_variogram(coords, values, maxlag=6.0, nlags=3, estimator="matheron")
        c = empirical_variogram(coords, values, maxlag=6.0, nlags=3, estimator="cressie")
        assert c.estimator == "cressie"
        assert np.all(c.gamma < m.gamma)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"maxlag": 0.0},
            {"maxlag": 2.0, "nlags": 0},
            {"maxlag": 2.0, "estimator": "dowd"},
            {"maxlag": 2.0, "direction": [1.0, 0.0], "tolerance": 120.0},
            {"maxlag": 2.0, "direction": [1.0, 0.0, 0.0]},
            {"maxlag": 2.0, "engine": "gpu"},
        ],
    )
    def test_invalid_parameters(self, square_samples, kwargs):
        coords, values = square_samples
        with pytest.raises(InvalidParameter):
            empirical_variogram(coords, values, **kwargs)

    def test_points_and_frame(self, square_samples):
        vario = empirical_variogram(*square_samples, maxlag=2.0, nlags=2)
        first = vario[0]
        assert first.lag == pytest.approx(0.5)
        assert first.gamma == pytest.approx(0.25)
        assert first.npairs == 4
        assert [p.npairs for p in vario] == [4, 2]
        frame = vario.to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["lag", "gamma", "npairs", "distance"]

    def test_arrays_are_read_only(self, square_samples):
        vario = empirical_variogram(*square_samples, maxlag=2.0, nlags=2)
        with pytest.raises(ValueError):
            vario.gamma[0] = 1.0


class TestConstruction:
    """Direct construction of EmpiricalVariogram."""

    def test_unequal_lengths(self):
        with pytest.raises(InvalidParameter):
            EmpiricalVariogram(lags=[1.0, 2.0], gamma=[0.1], npairs=[3, 4])

    def test_zero_pairs(self):
        with pytest.raises(InvalidParameter):
            EmpiricalVariogram(lags=[1.0, 2.0], gamma=[0.1, 0.2], npairs=[3, 0])

    def test_unordered_lags(self):
        with pytest.raises(InvalidParameter):
            EmpiricalVariogram(lags=[2.0, 1.0], gamma=[0.1, 0.2], npairs=[3, 4])

    def test_distances_default_to_lags(self):
        vario = EmpiricalVariogram(lags=[1.0, 2.0], gamma=[0.1, 0.2], npairs=[3, 4])
        np.testing.assert_array_equal(vario.distances, vario.lags)


class TestDirectional:
    """Tests for directional_variogram."""

    def test_zero_tolerance_keeps_only_aligned_pairs(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 1.0]])
        values = np.array([0.0, 1.0, 2.0, 5.0])
        vario = directional_variogram(coords, values, [1.0, 0.0], maxlag=2.0, nlags=2, tolerance=0.0)
        np.testing.assert_array_equal(vario.npairs, [2, 1])
        np.testing.assert_allclose(vario.gamma, [0.5, 2.0])
        assert vario.direction == (1.0, 0.0)
        assert vario.tolerance == 0.0

    @pytest.mark.parametrize("engine", ["numba", "kdtree"])
    def test_zero_tolerance_diagonal(self, engine):
        coords = np.array([[0.0, 0.0], [1.0, 1.0], [3.0, 3.0], [1.0, 0.0]])
        values = np.array([0.0, 1.0, 3.0, 7.0])
        vario = directional_variogram(
            coords, values, [1.0, 1.0], maxlag=5.0, nlags=5, tolerance=0.0, engine=engine
        )
        # (0,0)-(1,1) and (1,1)-(3,3) at sqrt(2) and sqrt(8), (0,0)-(3,3) at sqrt(18)
        np.testing.assert_array_equal(vario.npairs, [1, 1, 1])
        np.testing.assert_allclose(vario.gamma, [0.5, 2.0, 4.5])
        assert vario.total_pairs == 3

    def test_direction_required(self, square_samples):
        with pytest.raises(InvalidParameter):
            directional_variogram(*square_samples, None, maxlag=2.0)

    def test_wide_cone_equals_omnidirectional(self, sample_data):
        omni = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=40.0, nlags=8)
        wide = directional_variogram(
            sample_data["coords"], sample_data["values"], [0.3, 1.0], maxlag=40.0, nlags=8, tolerance=90.0
        )
        np.testing.assert_array_equal(omni.npairs, wide.npairs)
        np.testing.assert_allclose(omni.gamma, wide.gamma)


class TestSurface:
    """Tests for variogram_surface."""

    def test_shape_and_angles(self, sample_data):
        surf = variogram_surface(sample_data["coords"], sample_data["values"], maxlag=40.0, nlags=8, nangs=6)
        assert surf.gamma.shape == (6, 8)
        np.testing.assert_allclose(surf.angles, [15.0, 45.0, 75.0, 105.0, 135.0, 165.0])
        assert surf.sector_width == pytest.approx(30.0)

    def test_sectors_partition_pairs(self, sample_data):
        surf = variogram_surface(sample_data["coords"], sample_data["values"], maxlag=40.0, nlags=8, nangs=6)
        omni = empirical_variogram(sample_data["coords"], sample_data["values"], maxlag=40.0, nlags=8)
        np.testing.assert_array_equal(surf.npairs.sum(axis=0), omni.npairs)

    def test_column_matches_directional(self, sample_data):
        coords, values = sample_data["coords"], sample_data["values"]
        surf = variogram_surface(coords, values, maxlag=40.0, nlags=8, nangs=6)
        col = surf.column(2)
        direct = directional_variogram(
            coords, values, col.direction, maxlag=40.0, nlags=8, tolerance=col.tolerance, engine="kdtree"
        )
        np.testing.assert_array_equal(col.npairs, direct.npairs)
        np.testing.assert_allclose(col.gamma, direct.gamma, rtol=1e-10)

    def test_empty_cells_are_nan(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0]])
        surf = variogram_surface(coords, [0.0, 1.0], maxlag=2.0, nlags=2, nangs=4)
        assert surf.npairs[0, 0] == 1
        assert surf.gamma[0, 0] == pytest.approx(0.5)
        assert np.isnan(surf.gamma[1:]).all()
        assert np.isnan(surf.gamma[0, 1])

    def test_frame(self, square_samples):
        surf = variogram_surface(*square_samples, maxlag=2.0, nlags=2, nangs=4)
        frame = surf.to_frame()
        assert len(frame) == 8
        assert list(frame.columns) == ["angle", "lag", "gamma", "npairs", "distance"]
        assert frame["npairs"].sum() == 6

    def test_needs_two_dimensions(self):
        with pytest.raises(InvalidParameter):
            variogram_surface([0.0, 1.0, 2.0], [0.0, 1.0, 2.0], maxlag=2.0)
