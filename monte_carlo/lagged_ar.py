import warnings
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from custom_types.errors import DimensionMismatch, InvalidModelParameters
from custom_types.types import ArrayLike, FloatArray, as_1d
from monte_carlo.distributions import SampleableDistribution
from monte_carlo.rng import draw_columns


@dataclass(frozen=True, eq=False)
class LaggedARSpec:
    """
    Linear recursion over a sparse set of lags:

        s_t = sum_l coefficients[l] * s_{t - lags[l]} + e_t

    with e_t drawn i.i.d. from ``distribution``. ``presample`` holds the last
    observed values, oldest first; only its trailing max(lags) values are used.
    """
    lags: Sequence[int]
    coefficients: ArrayLike
    distribution: SampleableDistribution
    presample: ArrayLike

    def __post_init__(self):
        lags = np.asarray(self.lags)
        if lags.ndim != 1 or len(lags) == 0:
            raise InvalidModelParameters("Lag set must be a non-empty 1D sequence")
        if not np.all(np.equal(np.mod(lags, 1), 0)) or np.any(lags < 1):
            raise InvalidModelParameters(f"Lags must be positive integers, got {list(lags)}")
        lags = lags.astype(np.int64)
        if np.any(np.diff(lags) <= 0):
            raise InvalidModelParameters(f"Lags must be strictly increasing, got {list(lags)}")

        beta = as_1d(self.coefficients)
        if len(beta) != len(lags):
            raise InvalidModelParameters(
                f"{len(beta)} coefficients for {len(lags)} lags; they must align one-to-one"
            )
        if not np.all(np.isfinite(beta)):
            raise InvalidModelParameters("AR coefficients must be finite")

        presample = as_1d(self.presample)
        if len(presample) < lags[-1]:
            raise InvalidModelParameters(
                f"Presample has {len(presample)} values but the largest lag is {lags[-1]}"
            )
        if not np.all(np.isfinite(presample[-lags[-1]:])):
            raise InvalidModelParameters("Presample values must be finite")

        if np.sum(np.abs(beta)) >= 1.0:
            warnings.warn(
                f"Sum of |AR coefficients| is {np.sum(np.abs(beta)):.4f} >= 1. "
                f"The recursion may not be stationary.",
                UserWarning,
                stacklevel=2
            )

        object.__setattr__(self, 'lags', tuple(int(l) for l in lags))
        object.__setattr__(self, 'coefficients', beta)
        object.__setattr__(self, 'presample', presample)

    @property
    def max_lag(self) -> int:
        return self.lags[-1]


def run_lagged_ar(
        lags: Sequence[int],
        coefficients: FloatArray,
        presample: FloatArray,
        innovations: FloatArray
) -> FloatArray:
    """
    Run the recursion for every column of innovations.

    Args:
        lags: Strictly increasing positive lag offsets (hours)
        coefficients: One coefficient per lag
        presample: Seed history, oldest first, length >= max(lags)
        innovations: Shocks, shape (n_steps, n_trials)

    Returns:
        Stochastic series, shape (n_steps, n_trials)
    """
    innovations = np.asarray(innovations, dtype=np.float64)
    if innovations.ndim != 2:
        raise DimensionMismatch(f"Innovations must be (n_steps, n_trials), got shape {innovations.shape}")

    lag_idx = np.asarray(lags, dtype=np.int64)
    offset = int(lag_idx[-1])
    n_steps, n_trials = innovations.shape

    # history and simulated values share one buffer so lags can reach back into the presample
    buf = np.empty((offset + n_steps, n_trials), dtype=np.float64)
    buf[:offset] = np.asarray(presample, dtype=np.float64)[-offset:, None]

    # lags are summed one at a time in a fixed order so each column's result
    # does not depend on how many other trials share the batch
    for t in range(offset, offset + n_steps):
        acc = innovations[t - offset].copy()
        for b, lag in zip(coefficients, lag_idx):
            acc += b * buf[t - lag]
        buf[t] = acc

    return buf[offset:]


def simulate_lagged_ar(
        spec: LaggedARSpec,
        n_steps: int,
        rngs: Sequence[np.random.Generator]
) -> Tuple[FloatArray, FloatArray]:
    """
    Draw innovations trial by trial and run the recursion.

    Returns:
        Tuple of (stochastic, innovations), both shape (n_steps, n_trials)
    """
    innovations = draw_columns(spec.distribution.sample, n_steps, rngs)
    stochastic = run_lagged_ar(spec.lags, spec.coefficients, spec.presample, innovations)
    return stochastic, innovations
