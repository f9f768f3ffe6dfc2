"""Unscented Kalman Filter for lidar / radar object tracking.

Example
-------
>>> from fusionukf import Measurement, UnscentedKalmanFilter
>>>
>>> ukf = UnscentedKalmanFilter()
>>> _ = ukf.process_measurement(Measurement.lidar(1.0, 0.5, 0))
>>> _ = ukf.process_measurement(Measurement.radar(1.2, 0.45, 0.9, 50000))
>>> px, py, v, yaw, yawd = ukf.x
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

from .config import FilterConfig
from .exceptions import (
    FilterParameterError,
    FusionUKFError,
    MeasurementOrderError,
    NumericalInstabilityError,
)
from .measurement import Measurement, SensorType
from .models import (
    BEARING_INDEX,
    LIDAR_H,
    predict_sigma_points,
    radar_measurement,
    radar_to_cartesian,
)
from .sigma import (
    LAMBDA,
    N_AUG,
    N_X,
    YAW_INDEX,
    generate_sigma_points,
    normalize_angle,
    predict_mean_and_covariance,
    residuals,
    sigma_weights,
)
from .utils import (
    is_positive_definite,
    nearest_positive_definite,
    symmetrize,
    validate_square,
    validate_vector,
)

__all__ = [
    "FusionUKFError",
    "FilterParameterError",
    "MeasurementOrderError",
    "NumericalInstabilityError",
    "UnscentedKalmanFilter",
]

logger = logging.getLogger(__name__)


def _inverse(S: np.ndarray, context: str) -> np.ndarray:
    """Invert an innovation covariance, translating numpy failures."""
    try:
        Si = np.linalg.inv(S)
    except np.linalg.LinAlgError as exc:
        raise NumericalInstabilityError(
            f"{context}: innovation covariance is singular"
        ) from exc
    if not np.all(np.isfinite(Si)):
        raise NumericalInstabilityError(f"{context}: innovation covariance is not finite")
    return Si


# ---------------------------------------------------------------------------
# Main class
# ---------------------------------------------------------------------------


class UnscentedKalmanFilter:
    """CTRV Unscented Kalman Filter fusing lidar and radar.

    The state is ``[px, py, v, yaw, yawd]``: position (m), speed (m/s),
    heading (rad, wrapped into ``(-pi, pi]``) and heading rate (rad/s).

    Parameters
    ----------
    config : FilterConfig, optional
        Noise model and behaviour switches.  Defaults to
        ``FilterConfig()``.
    **overrides
        Fields replaced on *config*, e.g. ``use_radar=False``.

    Attributes
    ----------
    use_lidar, use_radar : bool
        When False, measurements from that sensor are ignored once the
        filter is initialised.
    nis_lidar, nis_radar : float or None
        Normalised innovation squared of the latest update per sensor.

    Raises
    ------
    FilterParameterError
        If the configuration is invalid.

    Examples
    --------
    >>> ukf = UnscentedKalmanFilter(std_a=2.0, use_radar=False)
    >>> ukf.use_radar
    False
    """

    def __init__(self, config: Optional[FilterConfig] = None, **overrides: Any) -> None:
        if config is None:
            config = FilterConfig(**overrides)
        elif overrides:
            config = config.replace(**overrides)
        self._config = config

        self.use_lidar = config.use_lidar
        self.use_radar = config.use_radar

        self._weights = sigma_weights(N_AUG, LAMBDA)
        self._noise_var = config.process_noise_var()
        self._R_lidar = config.lidar_noise_cov()
        self._R_radar = config.radar_noise_cov()

        self.reset()

    # -- Properties ---------------------------------------------------------

    @property
    def config(self) -> FilterConfig:
        return self._config

    @property
    def state_dim(self) -> int:
        """State vector dimension (5)."""
        return N_X

    @property
    def is_initialized(self) -> bool:
        """True once the first measurement has seeded the state."""
        return self._is_initialized

    @property
    def previous_timestamp(self) -> Optional[int]:
        """Timestamp (microseconds) of the last measurement applied."""
        return self._previous_timestamp

    @property
    def weights(self) -> np.ndarray:
        """Sigma point weights (length 15)."""
        return self._weights.copy()

    @property
    def sigma_points_pred(self) -> Optional[np.ndarray]:
        """Predicted ``(5, 15)`` sigma points of the current cycle.

        None before the first prediction and after an update has
        replaced the belief they were drawn from.
        """
        if self._Xsig_pred is None:
            return None
        return self._Xsig_pred.copy()

    @property
    def x(self) -> np.ndarray:
        """Current state estimate as a 1-D numpy array of length 5.

        Examples
        --------
        >>> ukf.x = np.array([1.0, 2.0, 0.5, 0.1, 0.0])
        """
        return self._x.copy()

    @x.setter
    def x(self, value: np.ndarray) -> None:
        value = validate_vector(value, N_X, "state")
        value[YAW_INDEX] = normalize_angle(value[YAW_INDEX])
        self._x = value
        self._Xsig_pred = None

    @property
    def P(self) -> np.ndarray:
        """State covariance matrix (5 x 5)."""
        return self._P.copy()

    @P.setter
    def P(self, value: np.ndarray) -> None:
        value = validate_square(value, "P")
        if value.shape[0] != N_X:
            raise FilterParameterError(
                f"P shape {value.shape} does not match state_dim={N_X}"
            )
        self._P = value.copy()
        self._Xsig_pred = None

    # -- Methods ------------------------------------------------------------

    def reset(self) -> "UnscentedKalmanFilter":
        """Forget all measurements.

        The state goes back to zero and the covariance to
        ``config.initial_covariance``; the next measurement initialises
        the filter again.

        Returns
        -------
        UnscentedKalmanFilter
            *self*, for method chaining.
        """
        self._x = np.zeros(N_X)
        self._P = self._config.initial_P()
        self._Xsig_pred = None
        self._is_initialized = False
        self._previous_timestamp = None
        self.nis_lidar = None
        self.nis_radar = None
        return self

    def process_measurement(self, measurement: Measurement) -> "UnscentedKalmanFilter":
        """Fold one lidar or radar measurement into the estimate.

        The first measurement only seeds position and timestamp.  Every
        later one runs :meth:`predict` over the elapsed time followed by
        the sensor-specific update.

        Numerical failures do not escape (unless
        ``config.raise_on_instability`` is set): a failed prediction is
        retried once from ``config.initial_covariance`` around the
        current mean, and if that fails too the prior state and its
        timestamp are kept.  A failed correction keeps the prediction
        and clears that sensor's NIS.

        Parameters
        ----------
        measurement : Measurement
            The next reading; timestamps must not decrease.

        Returns
        -------
        UnscentedKalmanFilter
            *self*, for method chaining.

        Raises
        ------
        MeasurementOrderError
            If the measurement is older than the previous one.
        """
        if not self._is_initialized:
            self._initialize(measurement)
            return self

        dt = measurement.elapsed_since(self._previous_timestamp)
        if dt < 0.0:
            raise MeasurementOrderError(
                f"measurement at {measurement.timestamp} is older than "
                f"previous at {self._previous_timestamp}"
            )

        sensor = measurement.sensor_type
        if not self._sensor_enabled(sensor):
            logger.debug("ignoring %s measurement at %d", sensor.value, measurement.timestamp)
            return self

        try:
            self.predict(dt)
        except NumericalInstabilityError as exc:
            if self._config.raise_on_instability:
                logger.warning("prediction over dt=%.6f s failed: %s", dt, exc)
                raise
            logger.warning(
                "prediction over dt=%.6f s failed, resetting covariance: %s", dt, exc
            )
            self._P = self._config.initial_P()
            self._Xsig_pred = None
            try:
                self.predict(dt)
            except NumericalInstabilityError as retry_exc:
                logger.warning(
                    "prediction over dt=%.6f s failed again, holding prior state: %s",
                    dt,
                    retry_exc,
                )
                return self

        try:
            if sensor is SensorType.RADAR:
                self.update_radar(measurement.raw_measurements)
            else:
                self.update_lidar(measurement.raw_measurements)
        except NumericalInstabilityError as exc:
            logger.warning(
                "%s update at %d skipped, keeping prediction: %s",
                sensor.value,
                measurement.timestamp,
                exc,
            )
            if sensor is SensorType.RADAR:
                self.nis_radar = None
            else:
                self.nis_lidar = None
            if self._config.raise_on_instability:
                self._previous_timestamp = measurement.timestamp
                raise

        self._previous_timestamp = measurement.timestamp
        return self

    def predict(self, dt: float) -> "UnscentedKalmanFilter":
        """Propagate the belief *dt* seconds through the CTRV model.

        Parameters
        ----------
        dt : float
            Elapsed time in seconds.

        Returns
        -------
        UnscentedKalmanFilter
            *self*, for method chaining.

        Raises
        ------
        NumericalInstabilityError
            If the augmented covariance has no Cholesky factor or the
            prediction is not finite.  The belief is left unchanged.

        Notes
        -----
        The centre weight is negative, so the recombined covariance can
        come out indefinite; its eigenvalues are then clipped to a small
        positive floor before it is stored.
        """
        Xsig_aug = generate_sigma_points(self._x, self._P, self._noise_var, LAMBDA)
        Xsig_pred = predict_sigma_points(Xsig_aug, dt, self._config.epsilon)
        x_pred, P_pred = predict_mean_and_covariance(Xsig_pred, self._weights, YAW_INDEX)
        if not (np.all(np.isfinite(x_pred)) and np.all(np.isfinite(P_pred))):
            raise NumericalInstabilityError(f"prediction over dt={dt} is not finite")

        logger.debug("predicted over dt=%.6f s, trace(P)=%.4g", dt, np.trace(P_pred))
        self._Xsig_pred = Xsig_pred
        self._x = x_pred
        self._P = self._condition(P_pred, "prediction")
        return self

    def update_lidar(self, z: np.ndarray) -> "UnscentedKalmanFilter":
        """Correct the belief with a lidar position ``(px, py)``.

        Lidar is linear in the state, so this is a standard Kalman
        update with ``H`` selecting the position components.

        Returns
        -------
        UnscentedKalmanFilter
            *self*, for method chaining.

        Raises
        ------
        NumericalInstabilityError
            If the innovation covariance is singular.
        """
        z = validate_vector(z, 2, "lidar measurement")
        H = LIDAR_H

        y = z - H @ self._x
        PHt = self._P @ H.T
        S = H @ PHt + self._R_lidar
        Si = _inverse(S, "lidar update")
        K = PHt @ Si

        x_new = self._x + K @ y
        x_new[YAW_INDEX] = normalize_angle(x_new[YAW_INDEX])
        P_new = (np.eye(N_X) - K @ H) @ self._P

        self.nis_lidar = float(y @ Si @ y)
        logger.debug("lidar update, NIS=%.3f", self.nis_lidar)
        self._commit(x_new, P_new, "lidar")
        return self

    def update_radar(self, z: np.ndarray) -> "UnscentedKalmanFilter":
        """Correct the belief with a radar reading ``(rho, phi, rho_dot)``.

        The predicted sigma points are mapped into radar space and
        recombined (unscented transform); bearing and heading residuals
        are wrapped before every outer product.  If no predicted set is
        available, one is drawn from the current belief.

        Returns
        -------
        UnscentedKalmanFilter
            *self*, for method chaining.

        Raises
        ------
        NumericalInstabilityError
            If a sigma point lies on top of the sensor or the innovation
            covariance is singular.
        """
        z = validate_vector(z, 3, "radar measurement")
        Xsig = self._current_sigma_points()
        w = self._weights

        Zsig = radar_measurement(Xsig, self._config.epsilon)
        z_pred, S = predict_mean_and_covariance(Zsig, w, BEARING_INDEX)
        S = S + self._R_radar

        x_diff = residuals(Xsig, self._x, YAW_INDEX)
        z_diff = residuals(Zsig, z_pred, BEARING_INDEX)
        Tc = (w * x_diff) @ z_diff.T

        Si = _inverse(S, "radar update")
        K = Tc @ Si

        y = z - z_pred
        y[BEARING_INDEX] = normalize_angle(y[BEARING_INDEX])

        x_new = self._x + K @ y
        x_new[YAW_INDEX] = normalize_angle(x_new[YAW_INDEX])
        P_new = self._P - K @ S @ K.T

        self.nis_radar = float(y @ Si @ y)
        logger.debug("radar update, NIS=%.3f", self.nis_radar)
        self._commit(x_new, P_new, "radar")
        return self

    # -- Internals ----------------------------------------------------------

    def _initialize(self, measurement: Measurement) -> None:
        raw = measurement.raw_measurements
        if measurement.sensor_type is SensorType.RADAR:
            px, py = radar_to_cartesian(raw[0], raw[1])
        else:
            px, py = float(raw[0]), float(raw[1])

        self._x = np.array([px, py, 0.0, 0.0, 0.0])
        self._P = self._config.initial_P()
        self._Xsig_pred = None
        self._previous_timestamp = measurement.timestamp
        self._is_initialized = True
        logger.debug(
            "initialized from %s at (%.3f, %.3f), t=%d",
            measurement.sensor_type.value,
            px,
            py,
            measurement.timestamp,
        )

    def _commit(self, x_new: np.ndarray, P_new: np.ndarray, sensor: str) -> None:
        self._x = x_new
        self._P = self._condition(P_new, f"{sensor} update")
        self._Xsig_pred = None

    def _condition(self, P: np.ndarray, context: str) -> np.ndarray:
        """Return *P* symmetrised, repaired if it is no longer positive definite."""
        P = symmetrize(P)
        if not np.all(np.isfinite(P)):
            logger.warning("covariance not finite after %s, resetting", context)
            return self._config.initial_P()
        if is_positive_definite(P):
            return P
        logger.warning("covariance lost positive definiteness after %s, repairing", context)
        return nearest_positive_definite(P)

    def _sensor_enabled(self, sensor: SensorType) -> bool:
        if sensor is SensorType.RADAR:
            return self.use_radar
        return self.use_lidar

    def _current_sigma_points(self) -> np.ndarray:
        if self._Xsig_pred is not None:
            return self._Xsig_pred
        Xsig_aug = generate_sigma_points(self._x, self._P, self._noise_var, LAMBDA)
        return Xsig_aug[:N_X]

    # -- Representation -----------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"UnscentedKalmanFilter(state_dim={N_X}, "
            f"initialized={self._is_initialized}, "
            f"use_lidar={self.use_lidar}, use_radar={self.use_radar})"
        )
