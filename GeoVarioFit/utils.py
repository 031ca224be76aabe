import logging
import numpy as np
from pyproj import Geod
from scipy.spatial.distance import cdist

from GeoVarioFit.exceptions import InvalidParameter

# validate a sample set (coordinates + values)
def as_samples(coordinates, values):
    """
    Coerce and validate a sample set.

    Parameters
    ----------
    coordinates : array_like, shape (n, d) or (n,)
        Sample locations. A 1-D array is read as n locations in one dimension.
    values : array_like, shape (n,)
        Sample values.

    Returns
    -------
    coords : (n, d) ndarray of float
    values : (n,) ndarray of float

    Raises
    ------
    InvalidParameter
        If the set is empty, lengths disagree, or any entry is NaN/Inf.
    """

    coords = np.asarray(coordinates, dtype=float)
    vals = np.asarray(values, dtype=float).ravel()

    if coords.ndim == 1:
        coords = coords.reshape(-1, 1)
    elif coords.ndim != 2:
        raise InvalidParameter(f"coordinates must have shape (n, d), got {coords.shape}")

    if coords.shape[0] == 0:
        raise InvalidParameter("sample set is empty")
    if coords.shape[0] != vals.shape[0]:
        raise InvalidParameter(
            f"coordinates and values disagree in length: {coords.shape[0]} != {vals.shape[0]}"
        )
    if not np.all(np.isfinite(coords)):
        raise InvalidParameter("coordinates contain NaN or Inf")
    if not np.all(np.isfinite(vals)):
        raise InvalidParameter("values contain NaN or Inf; filter them before estimation")

    return np.ascontiguousarray(coords), np.ascontiguousarray(vals)

# geographic pairwise distance
def geodesic_pairwise(X_src, X_dst, *, ellps="WGS84"):
    """
    Great-circle pairwise distances between two sets of [lat, lon] points (deg).

    Parameters
    ----------
    X_src : ndarray, shape (n, 2)   columns [lat, lon] in degrees
    X_dst : ndarray, shape (m, 2)   columns [lat, lon] in degrees
    ellps : str                     pyproj ellipsoid name (e.g. 'WGS84')

    Returns
    -------
    D_km : ndarray, shape (n, m)    distances in kilometers
    """
    X_src = np.atleast_2d(np.asarray(X_src, float))
    X_dst = np.atleast_2d(np.asarray(X_dst, float))
    if X_src.shape[1] != 2 or X_dst.shape[1] != 2:
        raise InvalidParameter("geographic distances require [lat, lon] coordinates of shape (n, 2)")
    n = X_src.shape[0]
    m = X_dst.shape[0]

    geod = Geod(ellps=ellps)

    # broadcast to (n,m)
    lon1M = np.broadcast_to(X_src[:, None, 1], (n, m))
    lat1M = np.broadcast_to(X_src[:, None, 0], (n, m))
    lon2M = np.broadcast_to(X_dst[None, :, 1], (n, m))
    lat2M = np.broadcast_to(X_dst[None, :, 0], (n, m))

    _, _, dist_m = geod.inv(lon1M, lat1M, lon2M, lat2M)
    return np.asarray(dist_m, dtype=float).reshape(n, m) / 1000.0

# pairwise distances under a named or callable metric
def pairwise_distances(X_a, X_b, metric="euclidean"):
    """
    Distance matrix between two sets of locations.

    Parameters
    ----------
    X_a : (n, d) array_like
    X_b : (m, d) array_like
    metric : str or callable, default 'euclidean'
        'geographic' uses the WGS84 geodesic (inputs [lat, lon] in degrees,
        output in km). Any other string or callable is handed to
        `scipy.spatial.distance.cdist`.

    Returns
    -------
    D : (n, m) ndarray of float
    """

    if isinstance(metric, str) and metric == "geographic":
        return geodesic_pairwise(X_a, X_b)

    X_a = np.atleast_2d(np.asarray(X_a, float))
    X_b = np.atleast_2d(np.asarray(X_b, float))
    if X_a.shape[1] != X_b.shape[1]:
        raise InvalidParameter(
            f"locations differ in dimension: {X_a.shape[1]} != {X_b.shape[1]}"
        )
    try:
        return cdist(X_a, X_b, metric=metric)
    except ValueError as err:
        raise InvalidParameter(f"Invalid metric {metric!r}: {err}") from err

# Compute weights
WEIGHT_POLICIES = ("uniform", "count", "count_decay", "count_exponential", "count_powered")

def compute_distance_weights(h_lag, n_j, weight_type="count", weight_params=None):

    """
    Build per-bin weights for fitting.

    Parameters
    ----------
    h_lag : (k,) array_like of float
        Bin centers (same order as the target vector).
    n_j : (k,) array_like of float
        Pair counts per bin.
    weight_type : {'uniform', 'count', 'count_decay', 'count_exponential', 'count_powered'}
        'uniform'           : w(h)=1 (plain OLS)
        'count'             : w(h)=n_j
        'count_decay'       : w(h)=n_j * 1/(1+h/b)
        'count_exponential' : w(h)=n_j * exp(-h/b)
        'count_powered'     : w(h)=n_j * (1+h/b)^(-alpha)
    weight_params : list[float] | dict | None
        If list, expected [b, alpha]; if dict, keys {'b','alpha'}.
        Defaults are b = 0.25*max(h) and alpha = 1.0.

    Returns
    -------
    weights : (k,) ndarray of float
        Weight per bin.

    Raises
    ------
    InvalidParameter
        If `weight_type` is unknown or `b` is not positive.
    """

    h_lag = np.asarray(h_lag, float)
    n_j = np.asarray(n_j, float)

    if weight_type not in WEIGHT_POLICIES:
        raise InvalidParameter(
            f"Invalid weight_type {weight_type!r}: choose from {', '.join(WEIGHT_POLICIES)}"
        )

    # decay scale and exponent
    b_default = 0.25 * float(h_lag.max()) if h_lag.size and h_lag.max() > 0 else 1.0
    if weight_params is None:
        b, alpha = b_default, 1.0
    elif isinstance(weight_params, dict):
        b = float(weight_params.get("b", b_default))
        alpha = float(weight_params.get("alpha", 1.0))
    else:
        weight_params = list(weight_params)
        b = float(weight_params[0]) if len(weight_params) > 0 else b_default
        alpha = float(weight_params[1]) if len(weight_params) > 1 else 1.0

    if weight_type in ("count_decay", "count_exponential", "count_powered") and not b > 0:
        raise InvalidParameter(f"weight decay scale b must be > 0, got {b}")

    if weight_type == "uniform":
        w = np.ones_like(h_lag, dtype=float)
    elif weight_type == "count":
        w = n_j * np.ones_like(h_lag, dtype=float)
    elif weight_type == "count_decay":
        w = n_j * (1.0 / (1.0 + h_lag / b))
    elif weight_type == "count_exponential":
        w = n_j * np.exp(-h_lag / b)
    else:
        w = n_j * (1.0 + h_lag / b) ** (-alpha)

    return w

# R2 of a fitted curve
def r2_score_weighted(y, yhat, w=None):
    """
    Weighted coefficient of determination, R^2.

    Computes
        R^2_w = 1 - SSE_w / SST_w
    where
        SSE_w = Σ_i w_i (y_i - ŷ_i)^2
        SST_w = Σ_i w_i (y_i - ȳ_w)^2
        ȳ_w   = (Σ_i w_i y_i) / (Σ_i w_i)

    If `w` is None, all weights are treated as 1 (ordinary R^2).

    Returns
    -------
    r2 : float
        Weighted R^2 in (-inf, 1]. Returns `np.nan` if the weighted variance
        `SST_w` is zero (e.g., all `y` identical under the weights).
    """

    y = np.asarray(y, float).ravel()
    yhat = np.asarray(yhat, float).ravel()
    if w is None:
        w = np.ones_like(y)
    w = np.asarray(w, float).ravel()
    wsum = np.sum(w)
    if wsum == 0:
        return np.nan
    ybar = np.sum(w * y) / wsum
    ss_res = np.sum(w * (y - yhat)**2)
    ss_tot = np.sum(w * (y - ybar)**2)
    return float(1.0 - ss_res / ss_tot) if ss_tot > 0 else np.nan

_LOGGING_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

def init_logging(file=None, level="info"):
    """
    Initialise logging for the package.

    Parameters
    ----------
    file : str
        File to send log messages to. If None (default) messages go to stderr.
    level : str
        One of "debug", "info", "warn", "error", "critical".
    """
    try:
        level_i = _LOGGING_LEVELS[level.lower()]
    except KeyError:
        raise InvalidParameter(f"Unknown logging level: {level}") from None

    logging.basicConfig(
        filename=file,
        filemode="a",
        encoding="utf-8",
        format="%(levelname)s at %(asctime)s : %(name)s : %(message)s",
        level=level_i,
    )
    logging.captureWarnings(True)
