"""
Exceptions and warnings raised by GeoVarioFit.
"""


class GeoVarioFitError(Exception):
    """Base class for GeoVarioFit errors"""

    pass


class InvalidParameter(GeoVarioFitError, ValueError):
    """Bad configuration: non-positive maxlag or bin count, unknown tags, malformed samples"""

    pass


class InsufficientData(GeoVarioFitError, ValueError):
    """Too few empirical variogram points for the requested fit"""

    pass


class ConvergenceFailure(GeoVarioFitError, RuntimeError):
    """
    The optimizer exhausted its budget before meeting its tolerance.

    The best iterate found is attached as `result` (a FitResult with
    `converged=False`).
    """

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result


class ConvergenceWarning(UserWarning):
    """Emitted when a fit is returned without having fully converged"""

    pass
