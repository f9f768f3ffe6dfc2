"""Unscented Kalman Filter for lidar / radar object tracking.

Quick start::

    from fusionukf import Measurement, UnscentedKalmanFilter

    ukf = UnscentedKalmanFilter()
    ukf.process_measurement(Measurement.lidar(0.46, 0.25, 1477010443000000))
    ukf.process_measurement(Measurement.radar(0.90, 0.01, 2.20, 1477010443050000))
    px, py, v, yaw, yawd = ukf.x
"""

from .config import FilterConfig
from .core import (
    FilterParameterError,
    FusionUKFError,
    MeasurementOrderError,
    NumericalInstabilityError,
    UnscentedKalmanFilter,
)
from .measurement import Measurement, SensorType
from .sigma import normalize_angle
from .version import __version__, __version_info__

__all__ = [
    "UnscentedKalmanFilter",
    "FilterConfig",
    "Measurement",
    "SensorType",
    "normalize_angle",
    "FusionUKFError",
    "FilterParameterError",
    "MeasurementOrderError",
    "NumericalInstabilityError",
    "__version__",
    "__version_info__",
]
