"""Tunable parameters for the fusion UKF.

All noise levels are standard deviations; the filter squares them when
it builds covariance matrices.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .exceptions import FilterParameterError


@dataclass(frozen=True)
class FilterConfig:
    """Holds the noise model and behaviour switches of one filter.

    Parameters
    ----------
    std_a : float
        Process noise, longitudinal acceleration (m/s^2).
    std_yawdd : float
        Process noise, yaw acceleration (rad/s^2).
    std_laspx, std_laspy : float
        Lidar position noise (m).
    std_radr : float
        Radar range noise (m).
    std_radphi : float
        Radar bearing noise (rad).
    std_radrd : float
        Radar range-rate noise (m/s).
    use_lidar, use_radar : bool
        When False, measurements of that kind are ignored after the
        first (initialising) measurement.
    initial_covariance : tuple of float
        Diagonal of ``P`` after initialisation.
    epsilon : float
        Threshold below which the yaw rate is treated as zero and a radar
        range as degenerate.
    raise_on_instability : bool
        Re-raise :class:`NumericalInstabilityError` from
        ``process_measurement`` instead of logging and holding state.
    """

    std_a: float = 3.80
    std_yawdd: float = 0.3

    std_laspx: float = 0.15
    std_laspy: float = 0.15

    std_radr: float = 0.3
    std_radphi: float = 0.03
    std_radrd: float = 0.3

    use_lidar: bool = True
    use_radar: bool = True

    initial_covariance: Tuple[float, ...] = field(
        default=(1.0, 1.0, 1.0, 1.0, 1.0)
    )
    epsilon: float = 1e-3
    raise_on_instability: bool = False

    def __post_init__(self) -> None:
        for name in (
            "std_a",
            "std_yawdd",
            "std_laspx",
            "std_laspy",
            "std_radr",
            "std_radphi",
            "std_radrd",
            "epsilon",
        ):
            value = getattr(self, name)
            if not value > 0.0:
                raise FilterParameterError(f"{name} must be positive, got {value!r}")

        diag = tuple(float(v) for v in self.initial_covariance)
        if len(diag) != 5:
            raise FilterParameterError(
                f"initial_covariance must have 5 elements, got {len(diag)}"
            )
        if any(v <= 0.0 for v in diag):
            raise FilterParameterError(
                f"initial_covariance must be positive, got {diag}"
            )
        # frozen dataclass: bypass __setattr__ to store the normalised tuple
        object.__setattr__(self, "initial_covariance", diag)

    # -- Derived matrices ---------------------------------------------------

    def lidar_noise_cov(self) -> np.ndarray:
        """Lidar measurement covariance ``R`` (2 x 2)."""
        return np.diag([self.std_laspx ** 2, self.std_laspy ** 2])

    def radar_noise_cov(self) -> np.ndarray:
        """Radar measurement covariance ``R`` (3 x 3)."""
        return np.diag([self.std_radr ** 2, self.std_radphi ** 2, self.std_radrd ** 2])

    def process_noise_var(self) -> np.ndarray:
        """Variances of the two augmented noise terms ``(nu_a, nu_yawdd)``."""
        return np.array([self.std_a ** 2, self.std_yawdd ** 2])

    def initial_P(self) -> np.ndarray:
        return np.diag(self.initial_covariance)

    def replace(self, **changes) -> "FilterConfig":
        """Return a copy with *changes* applied (validated again)."""
        return dataclasses.replace(self, **changes)
