"""
Lag bins, direction filters and angular sectors.

Bins are left-open, right-closed intervals (lo, hi] of equal width covering
(0, maxlag]. A pair separated by h is assigned to bin ceil(h / width) - 1;
pairs at h = 0 (duplicate locations) or beyond maxlag are not binned.

Directions are sign-symmetric since pairs are unordered: a direction filter
accepts the pair vector v if the angle between v and either u or -u is within
the tolerance, and angular sectors partition [0°, 180°).
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
from numba import njit

from GeoVarioFit.exceptions import InvalidParameter

# relative perpendicular length below which a pair counts as exactly aligned
ALIGN_EPS = 1e-12


# Scalar kernels shared with the numba pair aggregator
@njit(cache=True)
def lag_index(h, width, nlags, maxlag):
    """Bin index of lag h, or -1 when h is zero or beyond maxlag."""
    if h <= 0.0 or h > maxlag:
        return -1
    k = int(math.ceil(h / width)) - 1
    if k >= nlags:
        k = nlags - 1
    return k

@njit(cache=True)
def pair_axis_angle(coords, i, j, u):
    """Angle (radians, in [0, pi/2]) between coords[i] - coords[j] and the axis ±u, u unit."""
    d = coords.shape[1]
    dot = 0.0
    for k in range(d):
        dot += (coords[i, k] - coords[j, k]) * u[k]
    perp = 0.0
    vv = 0.0
    for k in range(d):
        vk = coords[i, k] - coords[j, k]
        r = vk - dot * u[k]
        perp += r * r
        vv += vk * vk
    perp = math.sqrt(perp)
    # round-off of the projection on a non-axis direction
    if perp <= ALIGN_EPS * math.sqrt(vv):
        return 0.0
    return math.atan2(perp, abs(dot))

@njit(cache=True)
def sector_index(v0, v1, sector_width, nangs):
    """Sector index of the planar direction (v0, v1) folded onto [0, pi)."""
    theta = math.atan2(v1, v0)
    if theta < 0.0:
        theta += math.pi
    if theta >= math.pi:
        theta -= math.pi
    k = int(math.floor(theta / sector_width))
    if k >= nangs:
        k = nangs - 1
    return k


@dataclass(frozen=True)
class LagBins:
    """Equal-width lag bins covering (0, maxlag]."""

    maxlag: float
    nlags: int

    @property
    def width(self) -> float:
        return self.maxlag / self.nlags

    @property
    def edges(self) -> np.ndarray:
        return np.linspace(0.0, self.maxlag, self.nlags + 1)

    @property
    def centers(self) -> np.ndarray:
        e = self.edges
        return 0.5 * (e[:-1] + e[1:])

    def index(self, h):
        """
        Vectorised bin index.

        Parameters
        ----------
        h : float or array_like
            Lag distance(s).

        Returns
        -------
        int or ndarray of int
            Bin index per lag; -1 where h <= 0 or h > maxlag.
        """
        h_arr = np.asarray(h, dtype=float)
        with np.errstate(invalid="ignore"):
            k = np.ceil(h_arr / self.width) - 1
        k = np.minimum(k, self.nlags - 1)
        k = np.where((h_arr <= 0.0) | (h_arr > self.maxlag), -1, k).astype(np.int64)
        return int(k) if k.ndim == 0 else k


def make_lag_bins(maxlag: float, nlags: int = 20) -> LagBins:
    """
    Build `nlags` contiguous bins covering (0, maxlag].

    Raises
    ------
    InvalidParameter
        If maxlag is not a positive finite number or nlags is not a positive integer.
    """
    try:
        maxlag = float(maxlag)
    except (TypeError, ValueError):
        raise InvalidParameter(f"maxlag must be a number, got {maxlag!r}") from None
    if not np.isfinite(maxlag) or maxlag <= 0.0:
        raise InvalidParameter(f"maxlag must be > 0, got {maxlag}")
    if isinstance(nlags, bool) or not isinstance(nlags, (int, np.integer)) or nlags <= 0:
        raise InvalidParameter(f"nlags must be a positive integer, got {nlags!r}")
    return LagBins(maxlag=maxlag, nlags=int(nlags))


@dataclass(frozen=True)
class DirectionFilter:
    """
    Accepts pairs whose separation vector lies within `tolerance` degrees
    of ±direction. `direction` is stored normalised.
    """

    direction: tuple
    tolerance: float = 45.0

    @property
    def axis(self) -> np.ndarray:
        return np.asarray(self.direction, dtype=float)

    @property
    def tolerance_rad(self) -> float:
        return math.radians(self.tolerance)

    @property
    def ndim(self) -> int:
        return len(self.direction)

    def _angles_rad(self, V: np.ndarray) -> np.ndarray:
        if V.shape[1] != self.ndim:
            raise InvalidParameter(
                f"vector dimension {V.shape[1]} does not match direction dimension {self.ndim}"
            )
        u = self.axis
        dot = (V * u).sum(axis=1)
        perp = np.sqrt(((V - dot[:, None] * u) ** 2).sum(axis=1))
        perp = np.where(perp <= ALIGN_EPS * np.sqrt((V * V).sum(axis=1)), 0.0, perp)
        return np.arctan2(perp, np.abs(dot))

    def angles(self, vectors) -> np.ndarray:
        """Angle (degrees) between each row of `vectors` and the axis."""
        return np.degrees(self._angles_rad(np.atleast_2d(np.asarray(vectors, dtype=float))))

    def accepts(self, vectors):
        """
        True where the pair vector lies within tolerance of ±direction.

        A single vector returns a bool, a stack of vectors a boolean array.
        """
        ok = self._angles_rad(np.atleast_2d(np.asarray(vectors, dtype=float))) <= self.tolerance_rad
        return bool(ok[0]) if np.ndim(vectors) == 1 else ok


def make_direction_filter(
    direction: Sequence[float],
    tolerance: float = 45.0,
    ndim: Optional[int] = None,
) -> DirectionFilter:
    """
    Build a direction filter.

    Parameters
    ----------
    direction : sequence of float
        Direction vector; normalised internally.
    tolerance : float, default 45.0
        Half-angle of the accepted cone, degrees, in [0, 90].
    ndim : int, optional
        Expected dimension of the sample coordinates.

    Raises
    ------
    InvalidParameter
        On a zero or non-finite direction, a tolerance outside [0, 90], or a
        dimension mismatch.
    """
    u = np.atleast_1d(np.asarray(direction, dtype=float))
    if u.ndim != 1 or u.size == 0:
        raise InvalidParameter(f"direction must be a 1-D vector, got {direction!r}")
    if not np.all(np.isfinite(u)):
        raise InvalidParameter("direction contains NaN or Inf")
    norm = float(np.linalg.norm(u))
    if norm == 0.0:
        raise InvalidParameter("direction must be a non-zero vector")
    if ndim is not None and u.size != ndim:
        raise InvalidParameter(f"direction has dimension {u.size}, samples have {ndim}")
    tolerance = float(tolerance)
    if not (0.0 <= tolerance <= 90.0):
        raise InvalidParameter(f"tolerance must lie in [0, 90] degrees, got {tolerance}")
    return DirectionFilter(direction=tuple(float(x) for x in u / norm), tolerance=tolerance)


@dataclass(frozen=True)
class AngularSectors:
    """`nangs` equal sectors partitioning planar directions on [0°, 180°)."""

    nangs: int

    @property
    def width(self) -> float:
        """Sector width in degrees."""
        return 180.0 / self.nangs

    @property
    def width_rad(self) -> float:
        return math.pi / self.nangs

    @property
    def centers(self) -> np.ndarray:
        """Sector centres in degrees, counter-clockwise from the first axis."""
        return (np.arange(self.nangs) + 0.5) * self.width

    def index(self, vectors: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """Sector index of each planar vector (first two components are used)."""
        V = np.atleast_2d(np.asarray(vectors, dtype=float))
        theta = np.arctan2(V[:, 1], V[:, 0])
        theta = np.where(theta < 0.0, theta + np.pi, theta)
        theta = np.where(theta >= np.pi, theta - np.pi, theta)
        k = np.floor(theta / self.width_rad).astype(np.int64)
        return np.minimum(k, self.nangs - 1)


def make_angular_sectors(nangs: int = 36) -> AngularSectors:
    if isinstance(nangs, bool) or not isinstance(nangs, (int, np.integer)) or nangs <= 0:
        raise InvalidParameter(f"nangs must be a positive integer, got {nangs!r}")
    return AngularSectors(nangs=int(nangs))
