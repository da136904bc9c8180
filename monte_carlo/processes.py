from dataclasses import dataclass

import numpy as np

from custom_types.errors import InvalidModelParameters
from custom_types.types import FloatArray


@dataclass(frozen=True)
class OUParams:
    alpha: float             # mean reversion rate (per year)
    mu: float                # long-run mean of log price
    sigma: float             # volatility of log price (annualised)
    start_log_state: float   # log price at t = 0

    def __post_init__(self):
        if not np.isfinite(self.alpha) or self.alpha <= 0.0:
            raise InvalidModelParameters(f"Mean reversion rate must be > 0, got {self.alpha}")
        if not np.isfinite(self.sigma) or self.sigma <= 0.0:
            raise InvalidModelParameters(f"Volatility must be > 0, got {self.sigma}")
        if not np.isfinite(self.mu) or not np.isfinite(self.start_log_state):
            raise InvalidModelParameters("Mean level and start state must be finite")


class OrnsteinUhlenbeckProcess:
    """
    Mean-reverting log price dynamics: dX = alpha * (mu - X) dt + sigma dW
    """

    def __init__(self, params: OUParams):
        self.p = params

    def step(self, X: FloatArray, Z: FloatArray, dt: float) -> FloatArray:
        """
        Euler-Maruyama step.

        Args:
            X: Current log prices, shape (n_trials,)
            Z: Standard normal draws, same shape as X
            dt: Time step size (years)

        Returns:
            Next log prices with same shape as X
        """
        drift = self.p.alpha * (self.p.mu - X) * dt
        diffusion = self.p.sigma * np.sqrt(dt) * Z

        return X + drift + diffusion
