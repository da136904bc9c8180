from dataclasses import dataclass
from typing import Optional, Protocol, Tuple, Union

import numpy as np
from scipy.stats import genpareto, t as student_t

from custom_types.errors import InvalidModelParameters
from custom_types.types import ArrayLike, FloatArray, as_1d

Size = Union[int, Tuple[int, ...]]


class SampleableDistribution(Protocol):
    def sample(self, size: Size, rng: np.random.Generator) -> FloatArray:
        ...


def _require_positive(name: str, value: float) -> None:
    if not np.isfinite(value) or value <= 0.0:
        raise InvalidModelParameters(f"{name} must be finite and > 0, got {value}")


def _require_finite(name: str, value: float) -> None:
    if not np.isfinite(value):
        raise InvalidModelParameters(f"{name} must be finite, got {value}")


@dataclass(frozen=True)
class NormalDistribution:
    mu: float = 0.0
    sigma: float = 1.0

    def __post_init__(self):
        _require_finite('mu', self.mu)
        _require_positive('sigma', self.sigma)

    def sample(self, size: Size, rng: np.random.Generator) -> FloatArray:
        return rng.normal(self.mu, self.sigma, size=size)


@dataclass(frozen=True)
class StudentTLikeDistribution:
    """t location-scale distribution: mu + sigma * T(nu)."""
    mu: float
    sigma: float
    nu: float

    def __post_init__(self):
        _require_finite('mu', self.mu)
        _require_positive('sigma', self.sigma)
        _require_positive('nu', self.nu)

    def sample(self, size: Size, rng: np.random.Generator) -> FloatArray:
        return student_t.rvs(self.nu, loc=self.mu, scale=self.sigma, size=size, random_state=rng)


@dataclass(frozen=True, eq=False)
class ParetoTailDistribution:
    """
    Piecewise distribution with generalized Pareto tails.

    Below lower_prob and above upper_prob the exceedances over the thresholds
    follow generalized Pareto laws; in between, the inverse CDF interpolates
    linearly through interior_quantiles, which are taken at equally spaced
    probabilities from lower_prob to upper_prob.

    Sampling is by inversion of a single uniform draw per value.
    """
    lower_threshold: float
    upper_threshold: float
    lower_shape: float
    lower_scale: float
    upper_shape: float
    upper_scale: float
    lower_prob: float = 0.05
    upper_prob: float = 0.95
    interior_quantiles: Optional[ArrayLike] = None

    def __post_init__(self):
        for name in ('lower_threshold', 'upper_threshold', 'lower_shape', 'upper_shape'):
            _require_finite(name, getattr(self, name))
        _require_positive('lower_scale', self.lower_scale)
        _require_positive('upper_scale', self.upper_scale)

        if not 0.0 < self.lower_prob < self.upper_prob < 1.0:
            raise InvalidModelParameters(
                f"Tail probabilities must satisfy 0 < lower_prob < upper_prob < 1, "
                f"got {self.lower_prob}, {self.upper_prob}"
            )
        if self.lower_threshold >= self.upper_threshold:
            raise InvalidModelParameters(
                f"lower_threshold {self.lower_threshold} must be below upper_threshold {self.upper_threshold}"
            )

        if self.interior_quantiles is None:
            q = np.array([self.lower_threshold, self.upper_threshold], dtype=np.float64)
        else:
            q = as_1d(self.interior_quantiles)
            if len(q) < 2 or np.any(np.diff(q) < 0.0) or not np.all(np.isfinite(q)):
                raise InvalidModelParameters("interior_quantiles must be finite, non-decreasing, length >= 2")
            if not (np.isclose(q[0], self.lower_threshold) and np.isclose(q[-1], self.upper_threshold)):
                raise InvalidModelParameters(
                    "interior_quantiles must start at lower_threshold and end at upper_threshold"
                )
        object.__setattr__(self, 'interior_quantiles', q)

    def ppf(self, u: ArrayLike) -> FloatArray:
        """Inverse CDF evaluated at probabilities u in (0, 1); scalars in, scalar out."""
        shape = np.shape(u)
        u = np.atleast_1d(np.asarray(u, dtype=np.float64))
        q = self.interior_quantiles
        probs = np.linspace(self.lower_prob, self.upper_prob, len(q))
        x = np.interp(u, probs, q)

        lower = u < self.lower_prob
        if np.any(lower):
            excess = genpareto.ppf(1.0 - u[lower] / self.lower_prob, self.lower_shape, scale=self.lower_scale)
            x[lower] = self.lower_threshold - excess

        upper = u > self.upper_prob
        if np.any(upper):
            frac = (u[upper] - self.upper_prob) / (1.0 - self.upper_prob)
            excess = genpareto.ppf(frac, self.upper_shape, scale=self.upper_scale)
            x[upper] = self.upper_threshold + excess

        return x.reshape(shape)

    def sample(self, size: Size, rng: np.random.Generator) -> FloatArray:
        return self.ppf(rng.random(size))
