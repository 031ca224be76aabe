"""
This file contains the pair aggregator: it streams over all unordered sample pairs, bins them by lag (and direction or
angular sector) and accumulates the sufficient statistics the estimators need.
"""

import logging
import math
from dataclasses import dataclass

import numba
import numpy as np
from numba import njit, prange
from scipy.spatial import cKDTree

from GeoVarioFit.binning import (
    AngularSectors,
    DirectionFilter,
    LagBins,
    pair_axis_angle,
    lag_index,
    sector_index,
)
from GeoVarioFit.exceptions import InvalidParameter
from GeoVarioFit.utils import as_samples, geodesic_pairwise

logger = logging.getLogger(__name__)

ENGINES = ("numba", "kdtree")
DISTANCE_TYPES = ("euclidean", "geographic")

# aggregation modes of the numba kernel
_OMNI, _DIRECTIONAL, _SURFACE = 0, 1, 2


@dataclass
class PairStatistics:
    """
    Per-bin sufficient statistics of the pair increments d = z_i - z_j.

    Arrays have shape (nlags,) for omnidirectional/directional variograms and
    (nangs, nlags) for variogram surfaces.
    """

    count: np.ndarray
    sum_sq: np.ndarray
    sum_sqrt_abs: np.ndarray
    sum_abs: np.ndarray
    sum_lag: np.ndarray
    n_duplicates: int = 0

    @classmethod
    def zeros(cls, shape):
        return cls(
            count=np.zeros(shape, dtype=np.int64),
            sum_sq=np.zeros(shape),
            sum_sqrt_abs=np.zeros(shape),
            sum_abs=np.zeros(shape),
            sum_lag=np.zeros(shape),
        )

    @property
    def shape(self):
        return self.count.shape

    @property
    def total_pairs(self) -> int:
        return int(self.count.sum())

    def mean_lag(self):
        """Mean pair separation per bin (NaN for empty bins)."""
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(self.count > 0, self.sum_lag / self.count, np.nan)

    def merge(self, other):
        """Element-wise sum of two accumulators over the same bins."""
        if self.shape != other.shape:
            raise InvalidParameter(f"cannot merge statistics of shape {self.shape} and {other.shape}")
        return PairStatistics(
            count=self.count + other.count,
            sum_sq=self.sum_sq + other.sum_sq,
            sum_sqrt_abs=self.sum_sqrt_abs + other.sum_sqrt_abs,
            sum_abs=self.sum_abs + other.sum_abs,
            sum_lag=self.sum_lag + other.sum_lag,
            n_duplicates=self.n_duplicates + other.n_duplicates,
        )

    __add__ = merge


# Pair Kernel
@njit(parallel=True, cache=True)
def _accumulate_pairs(coords, values, width, nlags, maxlag, mode, axis, tol, sector_width, nangs, nchunks):
    """
    Map step: chunk c handles rows c, c + nchunks, ... against every later row and
    accumulates into its own slice of the output arrays.
    """
    n, d = coords.shape
    count = np.zeros((nchunks, nangs, nlags), dtype=np.int64)
    sum_sq = np.zeros((nchunks, nangs, nlags))
    sum_sqrt = np.zeros((nchunks, nangs, nlags))
    sum_abs = np.zeros((nchunks, nangs, nlags))
    sum_lag = np.zeros((nchunks, nangs, nlags))
    ndup = np.zeros(nchunks, dtype=np.int64)

    for c in prange(nchunks):
        for i in range(c, n, nchunks):
            for j in range(i + 1, n):
                hh = 0.0
                for k in range(d):
                    dk = coords[i, k] - coords[j, k]
                    hh += dk * dk
                h = math.sqrt(hh)
                if h == 0.0:
                    ndup[c] += 1
                    continue
                b = lag_index(h, width, nlags, maxlag)
                if b < 0:
                    continue
                a = 0
                if mode == _DIRECTIONAL:
                    if pair_axis_angle(coords, i, j, axis) > tol:
                        continue
                elif mode == _SURFACE:
                    a = sector_index(coords[i, 0] - coords[j, 0], coords[i, 1] - coords[j, 1], sector_width, nangs)
                dz = values[i] - values[j]
                adz = abs(dz)
                count[c, a, b] += 1
                sum_sq[c, a, b] += dz * dz
                sum_sqrt[c, a, b] += math.sqrt(adz)
                sum_abs[c, a, b] += adz
                sum_lag[c, a, b] += h

    return count, sum_sq, sum_sqrt, sum_abs, sum_lag, ndup

def _bincount_stats(a, b, h, dz, nangs, nlags, n_duplicates):
    """Accumulate already-binned pairs with numpy.bincount."""
    flat = a * nlags + b
    size = nangs * nlags
    adz = np.abs(dz)
    return PairStatistics(
        count=np.bincount(flat, minlength=size).astype(np.int64).reshape(nangs, nlags),
        sum_sq=np.bincount(flat, weights=dz * dz, minlength=size).reshape(nangs, nlags),
        sum_sqrt_abs=np.bincount(flat, weights=np.sqrt(adz), minlength=size).reshape(nangs, nlags),
        sum_abs=np.bincount(flat, weights=adz, minlength=size).reshape(nangs, nlags),
        sum_lag=np.bincount(flat, weights=h, minlength=size).reshape(nangs, nlags),
        n_duplicates=int(n_duplicates),
    )

def _aggregate_numba(coords, values, bins, direction, sectors, n_jobs):
    mode = _OMNI
    axis = np.zeros(coords.shape[1])
    tol = 0.0
    nangs = 1
    sector_width = math.pi
    if direction is not None:
        mode = _DIRECTIONAL
        axis = direction.axis
        tol = direction.tolerance_rad
    elif sectors is not None:
        mode = _SURFACE
        nangs = sectors.nangs
        sector_width = sectors.width_rad

    nchunks = numba.get_num_threads() if n_jobs is None else int(n_jobs)
    if nchunks <= 0:
        raise InvalidParameter(f"n_jobs must be a positive integer, got {n_jobs!r}")
    nchunks = max(1, min(nchunks, coords.shape[0]))

    count, sum_sq, sum_sqrt, sum_abs, sum_lag, ndup = _accumulate_pairs(
        coords, values, bins.width, bins.nlags, bins.maxlag, mode, axis, tol, sector_width, nangs, nchunks
    )

    # reduce step: one merge per chunk
    return PairStatistics(
        count=count.sum(axis=0),
        sum_sq=sum_sq.sum(axis=0),
        sum_sqrt_abs=sum_sqrt.sum(axis=0),
        sum_abs=sum_abs.sum(axis=0),
        sum_lag=sum_lag.sum(axis=0),
        n_duplicates=int(ndup.sum()),
    )

def _aggregate_kdtree(coords, values, bins, direction, sectors):
    # fixed-radius neighbor search bounded by maxlag
    pairs = cKDTree(coords).query_pairs(r=bins.maxlag, output_type="ndarray")
    i = pairs[:, 0].astype(np.intp)
    j = pairs[:, 1].astype(np.intp)

    V = coords[i] - coords[j]
    h = np.sqrt((V * V).sum(axis=1))
    n_dup = int(np.count_nonzero(h == 0.0))

    b = bins.index(h)
    keep = b >= 0
    nangs = 1
    a = np.zeros_like(b)
    if direction is not None:
        keep &= direction.accepts(V)
    elif sectors is not None:
        nangs = sectors.nangs
        a = sectors.index(V)

    dz = values[i] - values[j]
    return _bincount_stats(a[keep], b[keep], h[keep], dz[keep], nangs, bins.nlags, n_dup)

def _aggregate_geographic(coords, values, bins):
    D = geodesic_pairwise(coords, coords)
    iu, ju = np.triu_indices(coords.shape[0], k=1)
    h = D[iu, ju]
    n_dup = int(np.count_nonzero(h == 0.0))
    b = bins.index(h)
    keep = b >= 0
    dz = values[iu] - values[ju]
    return _bincount_stats(
        np.zeros(int(keep.sum()), dtype=np.int64), b[keep], h[keep], dz[keep], 1, bins.nlags, n_dup
    )

# Main Function
def aggregate_pairs(
    coordinates,
    values,
    bins: LagBins,
    direction: DirectionFilter = None,
    sectors: AngularSectors = None,
    engine: str = "numba",
    n_jobs: int = None,
    distance_type: str = "euclidean",
) -> PairStatistics:
    """
    Accumulate per-bin pair statistics over all unordered sample pairs.

    Parameters
    ----------
    coordinates : array_like, shape (n, d)
        Sample locations. For distance_type='geographic', columns are [lat, lon] in degrees.
    values : array_like, shape (n,)
        Sample values (finite).
    bins : LagBins
        Lag binning, see `make_lag_bins`.
    direction : DirectionFilter, optional
        Restrict to pairs within tolerance of a direction.
    sectors : AngularSectors, optional
        Split pairs into planar angular sectors (variogram surface). Exclusive with `direction`.
    engine : {'numba', 'kdtree'}
        'numba' evaluates every pair in a parallel compiled kernel; 'kdtree' first restricts
        to pairs within maxlag using scipy's cKDTree.
    n_jobs : int, optional
        Number of chunks for the numba engine (default: numba's thread count).
    distance_type : {'euclidean', 'geographic'}
        'geographic' computes geodesic lags in km via pyproj (omnidirectional only).

    Returns
    -------
    PairStatistics
        Shape (nlags,), or (nangs, nlags) when `sectors` is given.
    """

    coords, vals = as_samples(coordinates, values)

    if engine not in ENGINES:
        raise InvalidParameter(f"Invalid engine {engine!r}: choose from {', '.join(ENGINES)}")
    if distance_type not in DISTANCE_TYPES:
        raise InvalidParameter(f"Invalid distance_type {distance_type!r}: choose from {', '.join(DISTANCE_TYPES)}")
    if direction is not None and sectors is not None:
        raise InvalidParameter("direction and sectors are mutually exclusive")
    if direction is not None and direction.ndim != coords.shape[1]:
        raise InvalidParameter(
            f"direction has dimension {direction.ndim}, samples have {coords.shape[1]}"
        )
    if sectors is not None and coords.shape[1] < 2:
        raise InvalidParameter("variogram surfaces require at least two coordinate dimensions")

    if distance_type == "geographic":
        if direction is not None or sectors is not None:
            raise InvalidParameter("geographic distances support omnidirectional variograms only")
        stats = _aggregate_geographic(coords, vals, bins)
    elif engine == "kdtree":
        stats = _aggregate_kdtree(coords, vals, bins, direction, sectors)
    else:
        stats = _aggregate_numba(coords, vals, bins, direction, sectors, n_jobs)

    if sectors is None:
        stats = PairStatistics(
            count=stats.count[0],
            sum_sq=stats.sum_sq[0],
            sum_sqrt_abs=stats.sum_sqrt_abs[0],
            sum_abs=stats.sum_abs[0],
            sum_lag=stats.sum_lag[0],
            n_duplicates=stats.n_duplicates,
        )

    if stats.n_duplicates:
        logger.warning("%d pairs with zero separation (duplicate locations) were ignored", stats.n_duplicates)
    logger.info(
        "Aggregated %d of %d pairs into %d bins",
        stats.total_pairs, coords.shape[0] * (coords.shape[0] - 1) // 2, stats.count.size,
    )
    return stats
