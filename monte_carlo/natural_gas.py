from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from custom_types.types import FloatArray, HOURS_PER_DAY
from inputs.calendar import check_whole_days
from inputs.models import CalibratedNaturalGasModel
from monte_carlo.processes import OrnsteinUhlenbeckProcess
from monte_carlo.rng import draw_columns, resolve_streams


@dataclass(frozen=True, eq=False)
class GasPaths:
    hourly: FloatArray            # (n_days * 24, n_trials), constant within each day
    daily: FloatArray             # (n_days, n_trials)


def _standard_normal(n: int, rng: np.random.Generator) -> FloatArray:
    return rng.standard_normal(n)


class NaturalGasSimulator:
    """
    Daily log gas price follows a mean-reverting OU process; intraday the
    price is held constant.
    """

    def __init__(self, model: CalibratedNaturalGasModel):
        self.model = model

    def simulate(
            self,
            n_hours: int,
            n_trials: int,
            rngs: Optional[Sequence[np.random.Generator]] = None,
            seed: Optional[int] = None,
            start_price: Optional[float] = None
    ) -> GasPaths:
        """
        Simulate gas price paths on the hourly grid.

        Args:
            n_hours: Length of the hourly grid (multiple of 24)
            n_trials: Number of paths
            rngs: One generator per trial (spawned from seed if omitted)
            seed: Root seed used only when rngs is None
            start_price: Replaces the calibrated start state; dynamics unchanged

        Returns:
            GasPaths with hourly and daily price matrices
        """
        n_days = check_whole_days(n_hours, "gas price grid")
        rngs = resolve_streams(n_trials, rngs, seed)

        model = self.model if start_price is None else self.model.with_start_price(start_price)
        proc = OrnsteinUhlenbeckProcess(model.ou)

        Z = draw_columns(_standard_normal, n_days, rngs)

        # the start state itself is not part of the path; day 1 is the first step
        X = np.full(n_trials, model.ou.start_log_state, dtype=np.float64)
        log_daily = np.empty((n_days, n_trials), dtype=np.float64)
        for d in range(n_days):
            X = proc.step(X, Z[d], model.dt)
            log_daily[d] = X

        daily = np.exp(log_daily)
        hourly = np.repeat(daily, HOURS_PER_DAY, axis=0)

        return GasPaths(hourly=hourly, daily=daily)
