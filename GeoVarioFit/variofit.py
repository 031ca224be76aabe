"""
This file contains the functions required for fitting theoretical variogram models to empirical variograms by weighted
least squares, as well as one-call and grouped estimation + fitting.
"""

import logging
import time
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.optimize import least_squares
from tqdm.auto import tqdm

from GeoVarioFit.empirical import EmpiricalVariogram, empirical_variogram
from GeoVarioFit.exceptions import (
    ConvergenceFailure,
    ConvergenceWarning,
    InsufficientData,
    InvalidParameter,
)
from GeoVarioFit.binning import make_lag_bins
from GeoVarioFit.models import VARIOGRAM_MODELS, VariogramModel, shape_name
from GeoVarioFit.utils import compute_distance_weights, r2_score_weighted

logger = logging.getLogger(__name__)

PARAM_NAMES = ("range", "sill", "nugget")


@dataclass
class FitResult:
    """
    Outcome of a least-squares variogram fit.

    Attributes
    ----------
    model : VariogramModel
        Fitted model (best iterate if not converged).
    residual : float
        Weighted sum of squares Σ w_i (γ(h_i) - γ̂_i)².
    converged : bool
        False when the evaluation or time budget ran out first.
    r2 : float
        Weighted R² at the bin centres, same weights as the objective.
    weights : ndarray
        Per-bin weights used.
    nfev : int
        Residual evaluations spent on the selected fit.
    message : str
        Optimizer status message.
    candidates : dict
        shape -> FitResult for every shape tried when fitting several shapes.
    """

    model: VariogramModel
    residual: float
    converged: bool
    r2: float
    weights: np.ndarray = field(repr=False)
    nfev: int = 0
    message: str = ""
    candidates: Dict[str, "FitResult"] = field(default_factory=dict, repr=False)

    @property
    def shape(self) -> str:
        return self.model.shape

    @property
    def params(self) -> Dict[str, float]:
        return self.model.params


class _BudgetExhausted(Exception):
    pass


class _BestIterate:
    """Keeps the lowest-cost parameter vector seen by the residual function."""

    def __init__(self):
        self.cost = np.inf
        self.theta = None
        self.nfev = 0

    def update(self, theta, res):
        self.nfev += 1
        cost = float(res @ res)
        if np.isfinite(cost) and cost < self.cost:
            self.cost = cost
            self.theta = np.array(theta, dtype=float)

# Objective Function for Fitting
def objective_func(params, h, gamma, weights, semivario_fn):
    """
    Weighted SSE objective: Σ w_i [γ̂_i - model_fn(h_i; θ)]^2.

    Parameters
    ----------
    params : sequence of float
        θ = (range, sill, nugget).
    h, gamma, weights : (k,) arrays
        Bin centers, empirical semivariance, and weights.
    semivario_fn : callable
        Signature `semivario_fn(h, r, s, g)` → (k,) array.

    Returns
    -------
    float
        Weighted sum of squared residuals.
    """

    gamma_pred = semivario_fn(h, *params)
    return float(np.sum(weights * (gamma - gamma_pred)**2))

def make_init_and_bounds(h, gamma, npairs, xmax_factor=2.0, fix_nugget=False, min_nugget_pairs=10):
    """
    Initial guesses & bounds for (range, sill, nugget).

    Parameters
    ----------
    h : array_like (k,)
        Bin centers.
    gamma : array_like (k,)
        Empirical semivariogram at bin centers.
    npairs : array_like (k,)
        Pair counts per bin.
    xmax_factor : float or None, default 2.0
        Upper bound for the range: xmax_factor * max(h). None leaves it unbounded.
    fix_nugget : bool, default False
        If True, the nugget is fixed at 0.0 and left out of the free parameters.
    min_nugget_pairs : int, default 10
        The smallest-lag estimate seeds the nugget only if its bin holds at least this many pairs.

    Returns
    -------
    starts : list of ndarray
        Initial parameter vectors, the primary guess first.
    lower, upper : ndarray
        Bounds aligned with the parameter vector.
    free : ndarray of bool
        Mask of the parameters being fitted.

    Notes
    -----
    - Primary start: range = max(h), sill = max(γ̂), nugget = γ̂ at the smallest lag.
    - Secondary start: range = max(h) / 2.
    - The range is lower-bounded by half the smallest lag.
    """

    h = np.asarray(h, float).ravel()
    g = np.asarray(gamma, float).ravel()
    n = np.asarray(npairs, float).ravel()

    if xmax_factor is not None and not xmax_factor >= 1.0:
        raise InvalidParameter(f"xmax_factor must be >= 1 or None, got {xmax_factor}")

    # lag scales
    pos = h[h > 0]
    h_min = float(pos.min()) if pos.size else 1.0
    h_max = float(pos.max()) if pos.size else 1.0

    r_lo = 0.5 * h_min
    r_hi = xmax_factor * h_max if xmax_factor is not None else np.inf

    s0 = max(float(np.max(g)), 0.0)
    if fix_nugget or n[0] < min_nugget_pairs:
        g0 = 0.0
    else:
        g0 = min(max(float(g[0]), 0.0), s0)

    lower = np.array([r_lo, 0.0, 0.0])
    upper = np.array([r_hi, np.inf, np.inf])
    free = np.array([True, True, not fix_nugget])

    starts = []
    for r0 in (h_max, 0.5 * h_max):
        x0 = np.array([float(np.clip(r0, r_lo, r_hi)), s0, g0])
        if not any(np.array_equal(x0, s) for s in starts):
            starts.append(x0)

    return starts, lower, upper, free

def _fit_single(shape, h, gamma, weights, starts, lower, upper, free, max_nfev, deadline, tol):
    """Bounded trust-region fit of one shape; returns (theta, converged, nfev, message)."""

    fn = VARIOGRAM_MODELS[shape]
    sqrt_w = np.sqrt(weights)
    best = None

    for x0 in starts:
        tracker = _BestIterate()
        theta = x0.copy()

        def residuals(theta_free):
            theta[free] = theta_free
            res = sqrt_w * (fn(h, *theta) - gamma)
            tracker.update(theta, res)
            if deadline is not None and time.monotonic() > deadline:
                raise _BudgetExhausted
            return res

        timed_out = False
        try:
            sol = least_squares(
                residuals,
                x0[free],
                bounds=(lower[free], upper[free]),
                method="trf",
                x_scale="jac",
                ftol=tol,
                xtol=tol,
                gtol=tol,
                max_nfev=max_nfev,
            )
            theta_hat = x0.copy()
            theta_hat[free] = sol.x
            converged = sol.status > 0
            message = sol.message
            # a finite-difference probe can beat the accepted step when the budget ran out
            if not converged and tracker.cost < objective_func(theta_hat, h, gamma, weights, fn):
                theta_hat = tracker.theta
        except _BudgetExhausted:
            timed_out = True
            theta_hat = tracker.theta if tracker.theta is not None else x0.copy()
            converged = False
            message = "time budget exhausted"

        cost = objective_func(theta_hat, h, gamma, weights, fn)
        if best is None or cost < best[0]:
            best = (cost, theta_hat, converged, tracker.nfev, message)
        if timed_out:
            break

    _, theta_hat, converged, nfev, message = best
    return theta_hat, converged, nfev, message

def _candidate_shapes(shape, candidates):
    if isinstance(shape, (list, tuple)):
        if candidates is not None:
            raise InvalidParameter("pass candidate shapes either as `shape` or as `candidates`, not both")
        names = [shape_name(s) for s in shape]
    elif isinstance(shape, str) and shape.strip().lower() == "any":
        names = list(VARIOGRAM_MODELS) if candidates is None else [shape_name(s) for s in candidates]
    else:
        if candidates is not None:
            raise InvalidParameter("candidates only apply to shape='any'")
        names = [shape_name(shape)]
    if not names:
        raise InvalidParameter("no candidate shapes given")
    # keep first occurrence order
    return list(dict.fromkeys(names))

# Main Function: model fitting
def fit_variogram(
    empirical: EmpiricalVariogram,
    shape: Union[str, Sequence[str]] = "any",
    weights: str = "count",
    weight_params=None,
    candidates: Optional[Sequence[str]] = None,
    fix_nugget: bool = False,
    xmax_factor: Optional[float] = 2.0,
    max_nfev: int = 2000,
    timeout: Optional[float] = None,
    tol: float = 1e-10,
    min_nugget_pairs: int = 10,
    raise_on_failure: bool = False,
) -> FitResult:
    """
    Fit a theoretical variogram to an empirical variogram by weighted least squares.

    Parameters
    ----------
    empirical : EmpiricalVariogram
        Points (h_i, γ̂_i, n_i) to fit.
    shape : str or sequence of str, default 'any'
        A shape of VARIOGRAM_MODELS, 'any' to try every candidate, or a list of candidates.
    weights : {'uniform', 'count', 'count_decay', 'count_exponential', 'count_powered'}
        Bin weighting policy, see `utils.compute_distance_weights`.
    weight_params : list or dict or None
        Decay parameters [b, alpha] for the decaying policies.
    candidates : sequence of str, optional
        Shapes tried when shape='any' (default: all of VARIOGRAM_MODELS).
    fix_nugget : bool, default False
        If True, the nugget is fixed at 0.
    xmax_factor : float or None, default 2.0
        Upper bound of the range as a multiple of the largest lag.
    max_nfev : int, default 2000
        Residual-evaluation budget per start and shape.
    timeout : float, optional
        Wall-clock budget in seconds for the whole call.
    tol : float, default 1e-10
        ftol/xtol/gtol handed to scipy.optimize.least_squares.
    min_nugget_pairs : int, default 10
        Minimum pairs in the first bin for it to seed the nugget.
    raise_on_failure : bool, default False
        Raise ConvergenceFailure (carrying the best result) instead of warning when the
        budget runs out.

    Returns
    -------
    FitResult
        The best fit; for several candidates the one with the lowest weighted residual.

    Raises
    ------
    InsufficientData
        When the empirical variogram has fewer points than free parameters.
    InvalidParameter
        For unknown shapes or weight policies, or invalid budgets.
    ConvergenceFailure
        Only with raise_on_failure=True.

    Notes
    -----
    The fit minimizes Σ_i w_i (γ(h_i; r, s, g) - γ̂_i)² with r ∈ [h_min/2, xmax_factor·h_max],
    s ≥ 0 and g ≥ 0, using the trust-region reflective method of `scipy.optimize.least_squares`
    from the starts given by `make_init_and_bounds`.
    """

    names = _candidate_shapes(shape, candidates)
    if int(max_nfev) <= 0:
        raise InvalidParameter(f"max_nfev must be a positive integer, got {max_nfev!r}")
    if timeout is not None and not timeout > 0:
        raise InvalidParameter(f"timeout must be > 0 seconds, got {timeout!r}")

    h = np.asarray(empirical.lags, float)
    g = np.asarray(empirical.gamma, float)
    n = np.asarray(empirical.npairs, float)

    nfree = 2 if fix_nugget else 3
    if h.size < nfree:
        raise InsufficientData(
            f"empirical variogram has {h.size} points, at least {nfree} are needed to fit {nfree} parameters"
        )

    w = compute_distance_weights(h, n, weight_type=weights, weight_params=weight_params)
    starts, lower, upper, free = make_init_and_bounds(
        h, g, n, xmax_factor=xmax_factor, fix_nugget=fix_nugget, min_nugget_pairs=min_nugget_pairs
    )
    deadline = None if timeout is None else time.monotonic() + float(timeout)

    results = {}
    for name in names:
        theta, converged, nfev, message = _fit_single(
            name, h, g, w, starts, lower, upper, free, int(max_nfev), deadline, tol
        )
        fn = VARIOGRAM_MODELS[name]
        model = VariogramModel(shape=name, range=theta[0], sill=theta[1], nugget=theta[2])
        results[name] = FitResult(
            model=model,
            residual=objective_func(theta, h, g, w, fn),
            converged=converged,
            r2=r2_score_weighted(g, fn(h, *theta), w=w),
            weights=w,
            nfev=nfev,
            message=message,
        )
        logger.debug(
            "Fitted %s: range=%.6g sill=%.6g nugget=%.6g residual=%.6g converged=%s",
            name, theta[0], theta[1], theta[2], results[name].residual, converged,
        )

    best = min(results.values(), key=lambda res: res.residual)
    if len(results) > 1:
        best.candidates = results
        logger.info("Selected %s among %s (residual %.6g)", best.shape, ", ".join(results), best.residual)

    if not best.converged:
        msg = f"{best.shape} fit did not fully converge ({best.message}); returning the best iterate"
        if raise_on_failure:
            raise ConvergenceFailure(msg, result=best)
        warnings.warn(msg, ConvergenceWarning, stacklevel=2)

    return best

# Main Function: estimation + fitting
def variofit(
    values,
    coordinates,
    maxlag,
    nlags=20,
    estimator="matheron",
    shape="any",
    weights="count",
    weight_params=None,
    direction=None,
    tolerance=45.0,
    distance_type="euclidean",
    engine="numba",
    n_jobs=None,
    **fit_kwargs,
):
    """
    Compute an empirical semivariogram and fit a variogram model to it.

    Parameters
    ----------
    values : array_like, shape (n,)
        Sample values z_i at each coordinate.
    coordinates : array_like, shape (n, d)
        Sample locations ([lat, lon] degrees when distance_type == 'geographic').
    maxlag, nlags, estimator, direction, tolerance, distance_type, engine, n_jobs
        Passed to `empirical_variogram`.
    shape, weights, weight_params, **fit_kwargs
        Passed to `fit_variogram`.

    Returns
    -------
    empirical : EmpiricalVariogram
    fit : FitResult
    """

    empirical = empirical_variogram(
        coordinates,
        values,
        maxlag,
        nlags=nlags,
        estimator=estimator,
        direction=direction,
        tolerance=tolerance,
        engine=engine,
        n_jobs=n_jobs,
        distance_type=distance_type,
    )
    fit = fit_variogram(empirical, shape=shape, weights=weights, weight_params=weight_params, **fit_kwargs)
    return empirical, fit

# Main function: multi fitting
def variofitmulti(
    df,
    values_col,
    index_col,
    coord_cols,
    maxlag,
    nlags=20,
    estimator="matheron",
    shape="any",
    weights="count",
    weight_params=None,
    distance_type="euclidean",
    progress=True,
    **kwargs,
):
    """
    Fit an empirical semivariogram and model per group in `index_col`, and collect:
      - summary with n_samples, n_bins, fitted shape and params, residual, r2, convergence
      - wide DataFrames for npairs and gamma over the common lag axis

    Parameters
    ----------
    df : pandas.DataFrame
        Input table containing values, group ids, and coordinate columns.
    values_col : str
        Column name for the target values.
    index_col : str
        Column name whose values define groups.
    coord_cols : sequence of str
        Coordinate columns ([lat, lon] for distance_type='geographic').
    maxlag, nlags, estimator, shape, weights, weight_params, distance_type, **kwargs
        Passed through to `variofit`.
    progress : bool, default True
        Show a tqdm progress bar over groups.

    Returns
    -------
    summary : DataFrame
        One row per group. Groups with too few bins to fit carry NaN parameters.
    df_npairs : DataFrame
        Wide matrix indexed by the lag axis, one column per group.
    df_gamma : DataFrame
        Same layout as df_npairs, storing empirical semivariance.
    results : dict
        {group_id: (EmpiricalVariogram, FitResult or None)}
    """
    missing = [c for c in [values_col, index_col, *coord_cols] if c not in df.columns]
    if missing:
        raise InvalidParameter(f"columns not found in DataFrame: {missing}")

    # full list of bin centers (global index for wide frames)
    full_h = np.round(make_lag_bins(maxlag, nlags).centers, 12)
    df_npairs = pd.DataFrame(index=pd.Index(full_h, name="lag"))
    df_gamma = pd.DataFrame(index=pd.Index(full_h, name="lag"))

    results = {}
    summary_rows = []

    # split estimation options from fitting options
    vario_kwargs = {k: kwargs.pop(k) for k in ("direction", "tolerance", "engine", "n_jobs") if k in kwargs}

    gb = df.groupby(index_col, sort=False)

    for gid, gdf in tqdm(gb, total=gb.ngroups, desc="Fitting groups", disable=not progress):

        vals = gdf[values_col].to_numpy(dtype=float)
        coords = gdf[list(coord_cols)].to_numpy(dtype=float)

        empirical = empirical_variogram(
            coords, vals, maxlag, nlags=nlags, estimator=estimator, distance_type=distance_type,
            **vario_kwargs,
        )
        try:
            fit = fit_variogram(empirical, shape=shape, weights=weights, weight_params=weight_params, **kwargs)
        except InsufficientData as err:
            logger.warning("Group %r not fitted: %s", gid, err)
            fit = None

        results[gid] = (empirical, fit)

        # align this group's vectors to the global bin axis
        h = np.round(empirical.lags, 12)
        df_npairs[gid] = pd.Series(empirical.npairs, index=h).reindex(full_h).to_numpy()
        df_gamma[gid] = pd.Series(empirical.gamma, index=h).reindex(full_h).to_numpy()

        summary_rows.append({
            index_col: gid,
            "n_samples": int(len(vals)),
            "mean": float(np.mean(vals)),
            "std": float(np.std(vals, ddof=1)) if len(vals) > 1 else np.nan,
            "n_bins": len(empirical),
            "shape": fit.shape if fit is not None else None,
            **{k: (fit.params[k] if fit is not None else np.nan) for k in PARAM_NAMES},
            "residual": fit.residual if fit is not None else np.nan,
            "r2": fit.r2 if fit is not None else np.nan,
            "converged": fit.converged if fit is not None else False,
        })

    summary = pd.DataFrame(
        summary_rows,
        columns=[index_col, "n_samples", "mean", "std", "n_bins", "shape", *PARAM_NAMES, "residual", "r2", "converged"],
    )
    return summary, df_npairs, df_gamma, results
