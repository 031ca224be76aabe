"""
Empirical variograms: omnidirectional, directional and variogram surfaces.
"""

import logging
import math
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from GeoVarioFit.aggregation import PairStatistics, aggregate_pairs
from GeoVarioFit.binning import (
    LagBins,
    make_angular_sectors,
    make_direction_filter,
    make_lag_bins,
)
from GeoVarioFit.estimators import ESTIMATORS, estimator_name
from GeoVarioFit.exceptions import InvalidParameter
from GeoVarioFit.utils import as_samples

logger = logging.getLogger(__name__)


class EmpiricalVariogramPoint(NamedTuple):
    lag: float
    gamma: float
    npairs: int


def _frozen_array(x, dtype):
    a = np.array(x, dtype=dtype).ravel()
    a.setflags(write=False)
    return a


@dataclass(frozen=True, eq=False)
class EmpiricalVariogram:
    """
    Empirical variogram: one point per non-empty lag bin, ordered by increasing lag.

    Attributes
    ----------
    lags : (k,) ndarray
        Bin centres.
    gamma : (k,) ndarray
        Estimated semivariance per bin.
    npairs : (k,) ndarray of int
        Pair count per bin (always >= 1).
    distances : (k,) ndarray
        Mean pair separation per bin (defaults to `lags`).
    estimator : str
        Estimator tag used.
    maxlag, nlags : float, int or None
        Binning the variogram was computed with.
    direction, tolerance : tuple, float or None
        Direction filter, if the variogram is directional.
    """

    lags: np.ndarray
    gamma: np.ndarray
    npairs: np.ndarray
    distances: Optional[np.ndarray] = None
    estimator: str = "matheron"
    maxlag: Optional[float] = None
    nlags: Optional[int] = None
    direction: Optional[Tuple[float, ...]] = None
    tolerance: Optional[float] = None

    def __post_init__(self):
        lags = _frozen_array(self.lags, float)
        gamma = _frozen_array(self.gamma, float)
        npairs = _frozen_array(self.npairs, np.int64)
        distances = lags if self.distances is None else _frozen_array(self.distances, float)
        if not (lags.shape == gamma.shape == npairs.shape == distances.shape):
            raise InvalidParameter(
                f"lags, gamma, npairs and distances must have equal lengths, got "
                f"{lags.size}, {gamma.size}, {npairs.size}, {distances.size}"
            )
        if np.any(npairs < 1):
            raise InvalidParameter("every empirical variogram point needs npairs >= 1")
        if lags.size > 1 and np.any(np.diff(lags) <= 0):
            raise InvalidParameter("lags must be strictly increasing")
        object.__setattr__(self, "lags", lags)
        object.__setattr__(self, "gamma", gamma)
        object.__setattr__(self, "npairs", npairs)
        object.__setattr__(self, "distances", distances)

    @classmethod
    def from_stats(cls, stats: PairStatistics, bins: LagBins, estimator="matheron", direction=None, tolerance=None):
        """Apply `estimator` to 1-D PairStatistics and drop empty bins."""
        key = estimator_name(estimator)
        gamma = ESTIMATORS[key](stats)
        keep = stats.count > 0
        return cls(
            lags=bins.centers[keep],
            gamma=gamma[keep],
            npairs=stats.count[keep],
            distances=stats.mean_lag()[keep],
            estimator=key,
            maxlag=bins.maxlag,
            nlags=bins.nlags,
            direction=direction,
            tolerance=tolerance,
        )

    def __len__(self):
        return int(self.lags.size)

    def __iter__(self):
        for h, g, n in zip(self.lags, self.gamma, self.npairs):
            yield EmpiricalVariogramPoint(float(h), float(g), int(n))

    def __getitem__(self, k):
        return EmpiricalVariogramPoint(float(self.lags[k]), float(self.gamma[k]), int(self.npairs[k]))

    @property
    def is_empty(self) -> bool:
        return self.lags.size == 0

    @property
    def total_pairs(self) -> int:
        return int(self.npairs.sum())

    def to_frame(self) -> pd.DataFrame:
        """Tabular form (lag, gamma, npairs, distance) for plotting or export."""
        return pd.DataFrame(
            {
                "lag": self.lags,
                "gamma": self.gamma,
                "npairs": self.npairs,
                "distance": self.distances,
            }
        )


@dataclass(frozen=True, eq=False)
class EmpiricalVariogramSurface:
    """
    Variogram surface over a (angle, lag) grid.

    Attributes
    ----------
    lags : (nlags,) ndarray
        Lag bin centres.
    angles : (nangs,) ndarray
        Sector centres in degrees, counter-clockwise from the first coordinate axis, in [0, 180).
    gamma : (nangs, nlags) ndarray
        Estimated semivariance; NaN where a cell received no pairs.
    npairs : (nangs, nlags) ndarray of int
    distances : (nangs, nlags) ndarray
        Mean pair separation per cell (NaN where empty).
    """

    lags: np.ndarray
    angles: np.ndarray
    gamma: np.ndarray
    npairs: np.ndarray
    distances: np.ndarray
    estimator: str = "matheron"
    maxlag: Optional[float] = None

    @property
    def nangs(self) -> int:
        return int(self.angles.size)

    @property
    def sector_width(self) -> float:
        return 180.0 / self.nangs

    def column(self, k: int) -> EmpiricalVariogram:
        """Empirical variogram of angular sector `k` (empty cells dropped)."""
        keep = self.npairs[k] > 0
        theta = math.radians(float(self.angles[k]))
        return EmpiricalVariogram(
            lags=self.lags[keep],
            gamma=self.gamma[k][keep],
            npairs=self.npairs[k][keep],
            distances=self.distances[k][keep],
            estimator=self.estimator,
            maxlag=self.maxlag,
            nlags=int(self.lags.size),
            direction=(math.cos(theta), math.sin(theta)),
            tolerance=0.5 * self.sector_width,
        )

    def to_frame(self) -> pd.DataFrame:
        """Long table with one row per (angle, lag) cell."""
        ang, lag = np.meshgrid(self.angles, self.lags, indexing="ij")
        return pd.DataFrame(
            {
                "angle": ang.ravel(),
                "lag": lag.ravel(),
                "gamma": self.gamma.ravel(),
                "npairs": self.npairs.ravel(),
                "distance": self.distances.ravel(),
            }
        )


# Main Functions
def empirical_variogram(
    coordinates,
    values,
    maxlag: float,
    nlags: int = 20,
    estimator: str = "matheron",
    direction: Optional[Sequence[float]] = None,
    tolerance: float = 45.0,
    engine: str = "numba",
    n_jobs: Optional[int] = None,
    distance_type: str = "euclidean",
) -> EmpiricalVariogram:
    """
    Compute an empirical (experimental) semivariogram.

    Parameters
    ----------
    coordinates : array_like, shape (n, d)
        Sample locations. If distance_type == 'geographic', columns are [lat, lon] in degrees.
    values : array_like, shape (n,)
        Sample values z_i (finite).
    maxlag : float
        Maximum lag; pairs farther apart are ignored.
    nlags : int, default 20
        Number of equal-width lag bins covering (0, maxlag].
    estimator : {'matheron', 'cressie'}
        Per-bin estimator.
    direction : sequence of float, optional
        If given, only pairs within `tolerance` degrees of ±direction are used.
    tolerance : float, default 45.0
        Angular tolerance (degrees) of the direction filter.
    engine : {'numba', 'kdtree'}
        Pair aggregation engine, see `aggregate_pairs`.
    n_jobs : int, optional
        Parallel chunks for the numba engine.
    distance_type : {'euclidean', 'geographic'}
        Lag metric.

    Returns
    -------
    EmpiricalVariogram
        Non-empty bins only, ordered by lag; empty when no pair qualifies.

    Notes
    -----
    - Matheron: γ̂(h) = Σ d² / (2 n).
    - Cressie–Hawkins: γ̂(h) = [(1/n) Σ |d|^½]⁴ / [2 (0.457 + 0.494/n)].
    """

    key = estimator_name(estimator)
    bins = make_lag_bins(maxlag, nlags)
    coords, vals = as_samples(coordinates, values)

    dfilter = None
    if direction is not None:
        dfilter = make_direction_filter(direction, tolerance, ndim=coords.shape[1])

    stats = aggregate_pairs(
        coords, vals, bins, direction=dfilter, engine=engine, n_jobs=n_jobs, distance_type=distance_type
    )
    vario = EmpiricalVariogram.from_stats(
        stats,
        bins,
        estimator=key,
        direction=None if dfilter is None else dfilter.direction,
        tolerance=None if dfilter is None else dfilter.tolerance,
    )
    logger.info("Empirical variogram (%s): %d of %d bins non-empty", key, len(vario), bins.nlags)
    return vario

def directional_variogram(coordinates, values, direction, maxlag, nlags=20, tolerance=45.0, **kwargs):
    """Empirical variogram restricted to pairs within `tolerance` degrees of ±direction."""
    if direction is None:
        raise InvalidParameter("directional_variogram requires a direction")
    return empirical_variogram(
        coordinates, values, maxlag, nlags=nlags, direction=direction, tolerance=tolerance, **kwargs
    )

def variogram_surface(
    coordinates,
    values,
    maxlag: float,
    nlags: int = 20,
    nangs: int = 36,
    estimator: str = "matheron",
    engine: str = "numba",
    n_jobs: Optional[int] = None,
) -> EmpiricalVariogramSurface:
    """
    Compute a variogram surface (varioplane) over the plane of the first two coordinates.

    Each pair is assigned to one of `nangs` angular sectors on [0°, 180°) and one lag bin;
    the estimator runs independently per sector.

    Returns
    -------
    EmpiricalVariogramSurface
        gamma has shape (nangs, nlags), NaN where a cell is empty.
    """

    key = estimator_name(estimator)
    bins = make_lag_bins(maxlag, nlags)
    sectors = make_angular_sectors(nangs)
    coords, vals = as_samples(coordinates, values)

    stats = aggregate_pairs(coords, vals, bins, sectors=sectors, engine=engine, n_jobs=n_jobs)
    gamma = ESTIMATORS[key](stats)
    logger.info(
        "Variogram surface (%s): %d of %d cells non-empty",
        key, int(np.count_nonzero(stats.count)), stats.count.size,
    )
    return EmpiricalVariogramSurface(
        lags=bins.centers,
        angles=sectors.centers,
        gamma=gamma,
        npairs=stats.count,
        distances=stats.mean_lag(),
        estimator=key,
        maxlag=bins.maxlag,
    )
