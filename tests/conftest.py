"""
Pytest configuration and shared fixtures for GeoVarioFit tests.
"""

import numpy as np
import pytest

from GeoVarioFit.empirical import EmpiricalVariogram
from GeoVarioFit.models import VARIOGRAM_MODELS


@pytest.fixture
def sample_data():
    """Scattered 2-D samples with a smooth trend plus noise."""
    rng = np.random.default_rng(42)
    n = 150

    x = rng.uniform(0, 100, n)
    y = rng.uniform(0, 100, n)
    values = np.sin(x / 15.0) + np.cos(y / 20.0) + rng.normal(0, 0.2, n)

    return {"coords": np.column_stack([x, y]), "values": values}


@pytest.fixture
def square_samples():
    """Four corners of the unit square with alternating values."""
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    values = np.array([1.0, 0.0, 1.0, 0.0])
    return coords, values


@pytest.fixture
def synthetic_variogram():
    """Noise-free empirical variogram generated from a known model."""

    def _make(shape, r=6.0, s=2.0, g=0.3):
        lags = np.arange(1, 21) * 0.5
        gamma = VARIOGRAM_MODELS[shape](lags, r, s, g)
        npairs = 100 + 10 * np.arange(20)
        return EmpiricalVariogram(lags=lags, gamma=gamma, npairs=npairs)

    return _make
