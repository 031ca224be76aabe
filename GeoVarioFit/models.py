"""
This file contains the theoretical semivariogram models and the VariogramModel value type.

All shapes share the parameterization (h, r, s, g): effective range r, total sill s and nugget g, with
γ(h) = g + (s - g) f(h / r). γ(0) = g and γ(h) → s as h grows (exactly s beyond r for compact shapes).
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

import numpy as np

from GeoVarioFit.exceptions import InvalidParameter
from GeoVarioFit.utils import pairwise_distances

# Semivariogram Models
def gaussian(h, r, s, g=0.0):
    """
    Semivariogram: Gaussian

    Definition
    ----------
        γ(h) = g + (s - g) * ( 1 - exp(-3 h² / r²) )

    Parameters
    ----------
    h : array-like or float
        Nonnegative lag distance(s).
    r : float
        Effective range (≈95% of the partial sill reached at h = r).
    s : float
        Sill.
    g : float, default 0.0
        Nugget.

    Returns
    -------
    gamma : ndarray or float
        Semivariogram values with the same shape as `h`.

    Notes
    -----
    Very smooth near the origin; approaches the sill asymptotically.
    """

    h = np.abs(np.asarray(h, float))
    return g + (s - g) * (1.0 - np.exp(-3.0 * (h / r)**2))

def exponential(h, r, s, g=0.0):
    """
    Semivariogram: Exponential

    Definition
    ----------
        γ(h) = g + (s - g) * ( 1 - exp(-3 h / r) )

    Parameters
    ----------
    h : array-like or float
        Nonnegative lag distance(s).
    r : float
        Effective range (≈95% of the partial sill reached at h = r).
    s : float
        Sill.
    g : float, default 0.0
        Nugget.

    Returns
    -------
    gamma : ndarray or float

    Notes
    -----
    Linear behaviour at the origin; approaches the sill asymptotically.
    """

    h = np.abs(np.asarray(h, float))
    return g + (s - g) * (1.0 - np.exp(-3.0 * h / r))

def spherical(h, r, s, g=0.0):
    """
    Semivariogram: Spherical (compact support)

    Definition
    ----------
    Set x = h / r. Then
        γ(h) = g + (s - g) * [ 1.5 x - 0.5 x^3 ]     for 0 <= x < 1
               s                                    for x >= 1

    Notes
    -----
    Reaches the sill exactly at h = r.
    """

    h = np.abs(np.asarray(h, float))
    x = h / r
    part = g + (s - g) * (1.5*x - 0.5*x**3)
    return np.where(x < 1.0, part, s)

def cubic(h, r, s, g=0.0):
    """
    Semivariogram: Cubic (compact support)

    Definition
    ----------
    Set x = h / r. Then
        γ(h) = g + (s - g) * [ 7 x^2 - (35/4) x^3 + (7/2) x^5 - (3/4) x^7 ]  for 0 <= x < 1
               s                                                            for x >= 1
    """

    h = np.abs(np.asarray(h, float))
    x = h / r
    poly = 7*x**2 - (35.0/4.0)*x**3 + (7.0/2.0)*x**5 - (3.0/4.0)*x**7
    return np.where(x < 1.0, g + (s - g) * poly, s)

def pentaspherical(h, r, s, g=0.0):
    """
    Semivariogram: Pentaspherical (compact support)

    Definition
    ----------
    Set x = h / r. Then
        γ(h) = g + (s - g) * [ (15/8) x - (5/4) x^3 + (3/8) x^5 ]  for 0 <= x < 1
               s                                                  for x >= 1
    """

    h = np.abs(np.asarray(h, float))
    x = h / r
    poly = (15.0/8.0)*x - (5.0/4.0)*x**3 + (3.0/8.0)*x**5
    return np.where(x < 1.0, g + (s - g) * poly, s)

VARIOGRAM_MODELS: Dict[str, Callable] = {
    "gaussian": gaussian,
    "spherical": spherical,
    "exponential": exponential,
    "cubic": cubic,
    "pentaspherical": pentaspherical,
}

def shape_name(shape):
    """Canonical shape tag (case-insensitive); InvalidParameter if unknown."""
    key = shape.strip().lower() if isinstance(shape, str) else shape
    if key not in VARIOGRAM_MODELS:
        raise InvalidParameter(
            f"Unknown variogram shape {shape!r}: choose from {', '.join(VARIOGRAM_MODELS)}"
        )
    return key


@dataclass(frozen=True)
class VariogramModel:
    """
    A theoretical variogram with bound parameters.

    Parameters
    ----------
    shape : str
        One of VARIOGRAM_MODELS.
    range : float
        Effective range, > 0.
    sill : float
        Total sill (plateau including the nugget), >= 0.
    nugget : float, default 0.0
        Nugget, >= 0. nugget <= sill is conventional but not enforced.

    Evaluate with `model(h)` for lags, or `model(a, b)` between two locations or point supports.
    """

    shape: str
    range: float
    sill: float
    nugget: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "shape", shape_name(self.shape))
        for name in ("range", "sill", "nugget"):
            value = float(getattr(self, name))
            if not math.isfinite(value):
                raise InvalidParameter(f"{name} must be finite, got {value}")
            object.__setattr__(self, name, value)
        if self.range <= 0.0:
            raise InvalidParameter(f"range must be > 0, got {self.range}")
        if self.sill < 0.0:
            raise InvalidParameter(f"sill must be >= 0, got {self.sill}")
        if self.nugget < 0.0:
            raise InvalidParameter(f"nugget must be >= 0, got {self.nugget}")

    @property
    def partial_sill(self) -> float:
        return self.sill - self.nugget

    @property
    def params(self) -> Dict[str, float]:
        return {"range": self.range, "sill": self.sill, "nugget": self.nugget}

    def evaluate(self, h):
        """γ at lag(s) h; a scalar lag returns a float."""
        out = VARIOGRAM_MODELS[self.shape](h, self.range, self.sill, self.nugget)
        return float(out) if np.ndim(out) == 0 else out

    def __call__(self, h, other=None, *, metric: Union[str, Callable] = "euclidean"):
        """
        Evaluate the variogram.

        `model(h)` evaluates at lag(s) h. `model(a, b)` evaluates between two
        locations, reducing them to a lag with `metric`; when `a` or `b` hold
        several points (the support of an extended geometry) the result is the
        mean variogram over the product of the supports, see `block_mean`.
        """
        if other is None:
            return self.evaluate(h)
        return self.block_mean(h, other, metric=metric)

    def pairwise(self, a, b, metric: Union[str, Callable] = "euclidean") -> np.ndarray:
        """γ matrix between point sets a (n, d) and b (m, d)."""
        return np.asarray(self.evaluate(pairwise_distances(a, b, metric=metric)), dtype=float)

    def block_mean(
        self,
        support_a,
        support_b,
        weights_a: Optional[np.ndarray] = None,
        weights_b: Optional[np.ndarray] = None,
        metric: Union[str, Callable] = "euclidean",
    ) -> float:
        """
        Mean variogram between two supports by quadrature.

        Parameters
        ----------
        support_a, support_b : array_like, shape (n, d) / (m, d)
            Quadrature nodes discretizing each geometry; a single point is a
            support of one node, so point-to-point evaluation is the special case.
        weights_a, weights_b : array_like, optional
            Quadrature weights (normalised internally); uniform by default.
        metric : str or callable
            See `utils.pairwise_distances`.

        Returns
        -------
        float
            Σ_ij wa_i wb_j γ(|a_i - b_j|).
        """
        A = np.atleast_2d(np.asarray(support_a, float))
        B = np.atleast_2d(np.asarray(support_b, float))
        wa = _quadrature_weights(weights_a, A.shape[0])
        wb = _quadrature_weights(weights_b, B.shape[0])
        G = self.pairwise(A, B, metric=metric)
        return float(wa @ G @ wb)

    def covariance(self, h):
        """Covariance C(h) = sill - γ(h) of the stationary process."""
        out = self.sill - np.asarray(self.evaluate(h), dtype=float)
        return float(out) if np.ndim(out) == 0 else out

def _quadrature_weights(w, n):
    if w is None:
        return np.full(n, 1.0 / n)
    w = np.asarray(w, float).ravel()
    if w.shape[0] != n:
        raise InvalidParameter(f"expected {n} quadrature weights, got {w.shape[0]}")
    total = w.sum()
    if not np.isfinite(total) or total <= 0.0 or np.any(w < 0.0):
        raise InvalidParameter("quadrature weights must be non-negative with a positive sum")
    return w / total

def make_model(shape, r, s, g=0.0):
    """Shorthand for VariogramModel(shape, range=r, sill=s, nugget=g)."""
    return VariogramModel(shape=shape, range=r, sill=s, nugget=g)
