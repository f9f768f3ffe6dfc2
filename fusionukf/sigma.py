"""Unscented transform building blocks.

Sigma points are stored column-wise: a ``(n, 2 * n_aug + 1)`` matrix
holds one sample per column, so weighted sums reduce to a matrix-vector
product with the weight vector.

Example
-------
>>> import numpy as np
>>> from fusionukf.sigma import generate_sigma_points, sigma_weights
>>> Xsig = generate_sigma_points(np.zeros(5), np.eye(5), np.array([1.0, 1.0]))
>>> Xsig.shape
(7, 15)
>>> sigma_weights(7)[0]
-1.3333333333333333
"""

from __future__ import annotations

from typing import Optional, Tuple, Union

import numpy as np

from .exceptions import NumericalInstabilityError

#: State dimension: px, py, v, yaw, yawd.
N_X = 5

#: Augmented dimension: state plus nu_a and nu_yawdd.
N_AUG = 7

#: Spreading parameter for the augmented state.
LAMBDA = 3 - N_AUG

#: Row of the heading angle in the state vector.
YAW_INDEX = 3

_TWO_PI = 2.0 * np.pi


def normalize_angle(theta: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Wrap *theta* into ``(-pi, pi]``.

    Values already inside the interval are returned unchanged, which
    makes the operation exactly idempotent.

    Parameters
    ----------
    theta : float or array_like
        Angle(s) in radians.

    Returns
    -------
    float or numpy.ndarray
        Equivalent angle(s); a float for scalar input.

    Examples
    --------
    >>> normalize_angle(3 * np.pi / 2)
    -1.5707963267948966
    >>> normalize_angle(-np.pi)
    3.141592653589793
    """
    theta = np.asarray(theta, dtype=np.float64)
    inside = (theta > -np.pi) & (theta <= np.pi)
    wrapped = np.where(inside, theta, np.pi - np.mod(np.pi - theta, _TWO_PI))
    # np.mod may round up to exactly 2*pi for tiny negative arguments
    wrapped = np.where(wrapped <= -np.pi, wrapped + _TWO_PI, wrapped)
    if wrapped.ndim == 0:
        return float(wrapped)
    return wrapped


def sigma_weights(n_aug: int = N_AUG, lam: Optional[float] = None) -> np.ndarray:
    """Return the ``2 * n_aug + 1`` sigma-point weights.

    ``w[0] = lam / (lam + n_aug)`` and ``w[i] = 1 / (2 (lam + n_aug))``.
    *lam* defaults to ``3 - n_aug``.
    """
    if lam is None:
        lam = 3 - n_aug
    denom = lam + n_aug
    if denom <= 0:
        raise ValueError(f"lam + n_aug must be positive, got {denom}")
    weights = np.full(2 * n_aug + 1, 0.5 / denom)
    weights[0] = lam / denom
    return weights


def generate_sigma_points(
    x: np.ndarray,
    P: np.ndarray,
    noise_var: np.ndarray,
    lam: Optional[float] = None,
) -> np.ndarray:
    """Generate augmented sigma points for state *x* with covariance *P*.

    The state is augmented with one zero-mean entry per element of
    *noise_var*, whose variances fill the lower-right diagonal block of
    the augmented covariance.

    Parameters
    ----------
    x : numpy.ndarray
        State mean, length *n*.
    P : numpy.ndarray
        State covariance (*n* x *n*).
    noise_var : numpy.ndarray
        Variances of the process noise terms.
    lam : float, optional
        Spreading parameter, default ``3 - n_aug``.

    Returns
    -------
    numpy.ndarray
        ``(n_aug, 2 * n_aug + 1)`` sigma point matrix.

    Raises
    ------
    NumericalInstabilityError
        If the augmented covariance is not positive definite.
    """
    n_x = x.shape[0]
    n_aug = n_x + noise_var.shape[0]
    if lam is None:
        lam = 3 - n_aug

    x_aug = np.zeros(n_aug)
    x_aug[:n_x] = x

    P_aug = np.zeros((n_aug, n_aug))
    P_aug[:n_x, :n_x] = P
    P_aug[n_x:, n_x:] = np.diag(noise_var)

    try:
        L = np.linalg.cholesky(P_aug)
    except np.linalg.LinAlgError as exc:
        raise NumericalInstabilityError(
            "augmented covariance is not positive definite"
        ) from exc
    if not np.all(np.isfinite(L)):
        raise NumericalInstabilityError("augmented covariance is not finite")

    spread = np.sqrt(lam + n_aug) * L

    Xsig_aug = np.empty((n_aug, 2 * n_aug + 1))
    Xsig_aug[:, 0] = x_aug
    Xsig_aug[:, 1:n_aug + 1] = x_aug[:, None] + spread
    Xsig_aug[:, n_aug + 1:] = x_aug[:, None] - spread
    return Xsig_aug


def predict_mean_and_covariance(
    Xsig: np.ndarray,
    weights: np.ndarray,
    angle_index: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Recombine sigma points into a mean and covariance.

    Parameters
    ----------
    Xsig : numpy.ndarray
        ``(n, 2 * n_aug + 1)`` sigma points.
    weights : numpy.ndarray
        One weight per column.
    angle_index : int, optional
        Row holding an angle; its residuals are wrapped into
        ``(-pi, pi]`` before the outer products.

    Returns
    -------
    mean : numpy.ndarray
    cov : numpy.ndarray

    Notes
    -----
    With *angle_index* set, the mean is accumulated as offsets from the
    first (central) sigma point, each offset wrapped.  Since the weights
    sum to one this is the plain weighted mean whenever no point sits on
    the far side of the ``+-pi`` cut, and stays correct when some do.
    """
    if angle_index is None:
        mean = Xsig @ weights
    else:
        center = Xsig[:, 0]
        mean = center + residuals(Xsig, center, angle_index) @ weights
        mean[angle_index] = normalize_angle(mean[angle_index])
    diff = residuals(Xsig, mean, angle_index)
    cov = (weights * diff) @ diff.T
    return mean, cov


def residuals(
    Xsig: np.ndarray,
    mean: np.ndarray,
    angle_index: Optional[int] = None,
) -> np.ndarray:
    """Column-wise ``Xsig - mean`` with the angle row normalised."""
    diff = Xsig - mean[:, None]
    if angle_index is not None:
        diff[angle_index] = normalize_angle(diff[angle_index])
    return diff
