"""Exception hierarchy for the fusion UKF."""

# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class FusionUKFError(RuntimeError):
    """Base exception for fusion UKF errors."""


class FilterParameterError(FusionUKFError, ValueError):
    """Raised for invalid dimensions, noise levels or measurement vectors."""


class NumericalInstabilityError(FusionUKFError):
    """Raised when a factorisation or division in the filter is undefined.

    Covers a non positive-definite augmented covariance (no Cholesky
    factor), a singular innovation covariance and radar sigma points that
    sit on top of the sensor (range close to zero).
    """


class MeasurementOrderError(FusionUKFError, ValueError):
    """Raised when a measurement is older than the previous one."""
