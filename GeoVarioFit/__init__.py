"""
GeoVarioFit
-----------
Empirical variograms (omnidirectional, directional, surfaces) with Matheron and
Cressie-Hawkins estimators, and weighted least-squares fitting of theoretical
variogram models.
"""

__version__ = "0.1.0"

# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------
from .exceptions import (
    ConvergenceFailure,
    ConvergenceWarning,
    GeoVarioFitError,
    InsufficientData,
    InvalidParameter,
)

# ---------------------------------------------------------------------
# Utilities (distances, weights, logging)
# ---------------------------------------------------------------------
from .utils import (
    compute_distance_weights,
    geodesic_pairwise,
    init_logging,
    pairwise_distances,
    r2_score_weighted,
)

# ---------------------------------------------------------------------
# Binning and pair aggregation
# ---------------------------------------------------------------------
from .binning import (
    AngularSectors,
    DirectionFilter,
    LagBins,
    make_angular_sectors,
    make_direction_filter,
    make_lag_bins,
)
from .aggregation import PairStatistics, aggregate_pairs

# ---------------------------------------------------------------------
# Empirical variograms
# ---------------------------------------------------------------------
from .estimators import ESTIMATORS, cressie, get_estimator, matheron
from .empirical import (
    EmpiricalVariogram,
    EmpiricalVariogramPoint,
    EmpiricalVariogramSurface,
    directional_variogram,
    empirical_variogram,
    variogram_surface,
)

# ---------------------------------------------------------------------
# Models and fitting
# ---------------------------------------------------------------------
from .models import VARIOGRAM_MODELS, VariogramModel, make_model
from .variofit import FitResult, fit_variogram, variofit, variofitmulti

__all__ = [
    "__version__",
    "GeoVarioFitError", "InvalidParameter", "InsufficientData", "ConvergenceFailure", "ConvergenceWarning",
    "compute_distance_weights", "geodesic_pairwise", "init_logging", "pairwise_distances", "r2_score_weighted",
    "LagBins", "DirectionFilter", "AngularSectors", "make_lag_bins", "make_direction_filter", "make_angular_sectors",
    "PairStatistics", "aggregate_pairs",
    "ESTIMATORS", "matheron", "cressie", "get_estimator",
    "EmpiricalVariogram", "EmpiricalVariogramPoint", "EmpiricalVariogramSurface",
    "empirical_variogram", "directional_variogram", "variogram_surface",
    "VARIOGRAM_MODELS", "VariogramModel", "make_model",
    "FitResult", "fit_variogram", "variofit", "variofitmulti",
]
