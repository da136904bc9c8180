from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from custom_types.types import FloatArray
from inputs.calendar import day_number
from inputs.models import CalibratedTemperatureModel
from monte_carlo.lagged_ar import simulate_lagged_ar
from monte_carlo.rng import resolve_streams


@dataclass(frozen=True, eq=False)
class TemperaturePaths:
    """All arrays have shape (n_hours, n_trials)."""
    total: FloatArray
    stochastic: FloatArray        # deviation from the seasonal norm
    innovations: FloatArray


class TemperatureSimulator:
    """
    Hourly temperature = seasonal curve + lagged-AR deviation.

    The deviation series is returned alongside the total because the
    electricity model uses it as a predictor.
    """

    def __init__(self, model: CalibratedTemperatureModel):
        self.model = model

    def seasonal(self, dates: pd.DatetimeIndex) -> FloatArray:
        """Expected temperature for each timestamp, shape (n_hours,)"""
        t = day_number(dates, self.model.origin)
        return np.asarray(self.model.seasonal.evaluate(t[:, None]), dtype=np.float64)

    def simulate(
            self,
            dates: pd.DatetimeIndex,
            n_trials: int,
            rngs: Optional[Sequence[np.random.Generator]] = None,
            seed: Optional[int] = None
    ) -> TemperaturePaths:
        """
        Simulate n_trials temperature paths over the hourly dates.

        Args:
            dates: Hourly timestamps
            n_trials: Number of paths
            rngs: One generator per trial (spawned from seed if omitted)
            seed: Root seed used only when rngs is None

        Returns:
            TemperaturePaths with total, stochastic and innovation matrices
        """
        rngs = resolve_streams(n_trials, rngs, seed)

        stochastic, innovations = simulate_lagged_ar(self.model.ar, len(dates), rngs)
        total = stochastic + self.seasonal(dates)[:, None]

        return TemperaturePaths(total=total, stochastic=stochastic, innovations=innovations)
