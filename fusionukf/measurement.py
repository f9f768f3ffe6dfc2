"""Sensor measurement value consumed by the filter."""

from __future__ import annotations

import enum
from dataclasses import dataclass

import numpy as np

from .exceptions import FilterParameterError

#: Timestamps are integer microseconds.
TIMESTAMP_SCALE = 1e6


class SensorType(enum.Enum):
    LIDAR = "lidar"
    RADAR = "radar"

    @property
    def meas_dim(self) -> int:
        """Length of the raw measurement vector for this sensor."""
        return 2 if self is SensorType.LIDAR else 3


@dataclass(frozen=True, eq=False)
class Measurement:
    """One reading from a lidar or radar sensor.

    Parameters
    ----------
    sensor_type : SensorType
        Which sensor produced the reading.
    raw_measurements : array_like
        Lidar: ``(px, py)``.  Radar: ``(rho, phi, rho_dot)``.
    timestamp : int
        Acquisition time in microseconds.

    Examples
    --------
    >>> m = Measurement(SensorType.LIDAR, [1.0, 0.5], 1477010443000000)
    >>> m.raw_measurements
    array([1. , 0.5])
    """

    sensor_type: SensorType
    raw_measurements: np.ndarray
    timestamp: int

    def __post_init__(self) -> None:
        sensor_type = SensorType(self.sensor_type)
        raw = np.array(self.raw_measurements, dtype=np.float64).ravel()
        if raw.shape[0] != sensor_type.meas_dim:
            raise FilterParameterError(
                f"{sensor_type.value} measurement must have "
                f"{sensor_type.meas_dim} elements, got {raw.shape[0]}"
            )
        if not np.all(np.isfinite(raw)):
            raise FilterParameterError(
                f"{sensor_type.value} measurement is not finite: {raw}"
            )
        raw.setflags(write=False)
        object.__setattr__(self, "sensor_type", sensor_type)
        object.__setattr__(self, "raw_measurements", raw)
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @classmethod
    def lidar(cls, px: float, py: float, timestamp: int) -> "Measurement":
        return cls(SensorType.LIDAR, (px, py), timestamp)

    @classmethod
    def radar(cls, rho: float, phi: float, rho_dot: float, timestamp: int) -> "Measurement":
        return cls(SensorType.RADAR, (rho, phi, rho_dot), timestamp)

    def elapsed_since(self, previous_timestamp: int) -> float:
        """Seconds between *previous_timestamp* and this measurement."""
        return (self.timestamp - previous_timestamp) / TIMESTAMP_SCALE
