"""Array validation and covariance helpers for the fusion UKF.

The filter only ever handles small dense float64 arrays, so these
helpers normalise caller input into that form and check the properties
the unscented transform relies on.
"""

from __future__ import annotations

import numpy as np

# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def validate_square(arr: np.ndarray, name: str = "matrix") -> np.ndarray:
    """Ensure *arr* is a square 2-D float64 array.

    Parameters
    ----------
    arr : array_like
        Input to validate.
    name : str
        Human-readable name for error messages.

    Returns
    -------
    numpy.ndarray
        Validated array (may be a new object if dtype conversion occurred).

    Raises
    ------
    ValueError
        If the array is not 2-D or not square.
    """
    arr = np.asarray(arr, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise ValueError(
            f"{name} must be a square 2-D array, got shape {arr.shape}"
        )
    return arr


def validate_vector(arr: np.ndarray, length: int, name: str = "vector") -> np.ndarray:
    """Ensure *arr* is a 1-D float64 array of the given length.

    Parameters
    ----------
    arr : array_like
        Input to validate.
    length : int
        Expected number of elements.
    name : str
        Human-readable name for error messages.

    Returns
    -------
    numpy.ndarray
        Validated 1-D array (always a copy, so callers may mutate it).

    Raises
    ------
    ValueError
        If shape does not match.
    """
    arr = np.array(arr, dtype=np.float64).ravel()
    if arr.shape[0] != length:
        raise ValueError(
            f"{name} must have {length} elements, got {arr.shape[0]}"
        )
    return arr


# ---------------------------------------------------------------------------
# Covariance helpers
# ---------------------------------------------------------------------------


def symmetrize(mat: np.ndarray) -> np.ndarray:
    """Return ``(mat + mat.T) / 2``.

    Round-off in ``P - K S K^T`` leaves the covariance very slightly
    asymmetric; averaging with the transpose removes that drift without
    changing a symmetric input.
    """
    return 0.5 * (mat + mat.T)


def is_positive_definite(mat: np.ndarray) -> bool:
    """Return True if *mat* admits a Cholesky factorisation.

    Examples
    --------
    >>> is_positive_definite(np.eye(3))
    True
    >>> is_positive_definite(np.zeros((2, 2)))
    False
    """
    try:
        np.linalg.cholesky(mat)
    except np.linalg.LinAlgError:
        return False
    return True


def nearest_positive_definite(mat: np.ndarray, floor: float = 1e-9) -> np.ndarray:
    """Clip the eigenvalues of ``symmetrize(mat)`` to a positive floor.

    The floor is relative to the largest eigenvalue magnitude, so the
    repaired matrix keeps a condition number the Cholesky step accepts.

    Examples
    --------
    >>> P = nearest_positive_definite(np.array([[1.0, 2.0], [2.0, 1.0]]))
    >>> is_positive_definite(P)
    True
    """
    eigvals, eigvecs = np.linalg.eigh(symmetrize(mat))
    limit = floor * max(1.0, float(np.max(np.abs(eigvals))))
    eigvals = np.maximum(eigvals, limit)
    return symmetrize((eigvecs * eigvals) @ eigvecs.T)
