"""Shared types definitions for the plant dispatch risk package."""

import numpy as np
import numpy.typing as npt

# Type aliases for cleaner signatures
ArrayLike = npt.ArrayLike
FloatArray = npt.NDArray[np.float64]
IntArray = npt.NDArray[np.int64]

HOURS_PER_DAY = 24


def as_1d(x: ArrayLike) -> FloatArray:
    """Convert scalar or array-like to 1D float array.

    Scalars become arrays of shape (1,).
    """
    a = np.asarray(x, dtype=np.float64)
    return a if a.ndim > 0 else a[None]


def as_columns(x: ArrayLike) -> FloatArray:
    """Convert a path or a matrix of paths to an (n_hours, n_trials) float array.

    A 1D path becomes a single column.
    """
    a = np.asarray(x, dtype=np.float64)
    return a[:, None] if a.ndim == 1 else a
