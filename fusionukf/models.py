"""Process and measurement models of the tracker.

The process model is constant turn rate and velocity (CTRV) over the
state ``[px, py, v, yaw, yawd]``, driven by two noise terms: longitudinal
acceleration ``nu_a`` and yaw acceleration ``nu_yawdd``.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .exceptions import NumericalInstabilityError

#: Default threshold for "zero" yaw rate and radar range.
EPSILON = 1e-3

#: Lidar observes position only.
LIDAR_H = np.array(
    [
        [1.0, 0.0, 0.0, 0.0, 0.0],
        [0.0, 1.0, 0.0, 0.0, 0.0],
    ]
)

#: Row of the bearing angle in a radar measurement.
BEARING_INDEX = 1


def predict_sigma_points(
    Xsig_aug: np.ndarray, dt: float, epsilon: float = EPSILON
) -> np.ndarray:
    """Propagate augmented sigma points through the CTRV model.

    Parameters
    ----------
    Xsig_aug : numpy.ndarray
        ``(7, k)`` augmented sigma points.
    dt : float
        Elapsed time in seconds.
    epsilon : float
        Yaw rates with magnitude at or below this use straight-line
        motion.

    Returns
    -------
    numpy.ndarray
        ``(5, k)`` predicted sigma points; the noise rows are consumed.
    """
    p_x, p_y, v, yaw, yawd, nu_a, nu_yawdd = Xsig_aug

    turning = np.abs(yawd) > epsilon
    # placeholder divisor on the straight branch, never selected
    safe_yawd = np.where(turning, yawd, 1.0)
    yaw_end = yaw + yawd * dt

    px_p = np.where(
        turning,
        p_x + v / safe_yawd * (np.sin(yaw_end) - np.sin(yaw)),
        p_x + v * dt * np.cos(yaw),
    )
    py_p = np.where(
        turning,
        p_y + v / safe_yawd * (np.cos(yaw) - np.cos(yaw_end)),
        p_y + v * dt * np.sin(yaw),
    )

    half_dt2 = 0.5 * dt * dt
    Xsig_pred = np.empty((5, Xsig_aug.shape[1]))
    Xsig_pred[0] = px_p + half_dt2 * nu_a * np.cos(yaw)
    Xsig_pred[1] = py_p + half_dt2 * nu_a * np.sin(yaw)
    Xsig_pred[2] = v + nu_a * dt
    Xsig_pred[3] = yaw_end + half_dt2 * nu_yawdd
    Xsig_pred[4] = yawd + nu_yawdd * dt
    return Xsig_pred


def radar_measurement(Xsig: np.ndarray, epsilon: float = EPSILON) -> np.ndarray:
    """Map state sigma points into radar space ``(rho, phi, rho_dot)``.

    Raises
    ------
    NumericalInstabilityError
        If any point lies within *epsilon* of the sensor, where bearing
        and range rate are undefined.
    """
    p_x, p_y, v, yaw = Xsig[0], Xsig[1], Xsig[2], Xsig[3]

    rho = np.hypot(p_x, p_y)
    if np.any(rho < epsilon):
        raise NumericalInstabilityError(
            f"radar range {rho.min():.3g} below {epsilon:g}"
        )

    Zsig = np.empty((3, Xsig.shape[1]))
    Zsig[0] = rho
    Zsig[1] = np.arctan2(p_y, p_x)
    Zsig[2] = (p_x * np.cos(yaw) * v + p_y * np.sin(yaw) * v) / rho
    return Zsig


def radar_to_cartesian(rho: float, phi: float) -> Tuple[float, float]:
    """Convert a radar range and bearing to ``(px, py)``."""
    return float(rho * np.cos(phi)), float(rho * np.sin(phi))
