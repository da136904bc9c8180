from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from custom_types.errors import DimensionMismatch
from custom_types.types import ArrayLike, FloatArray, HOURS_PER_DAY, as_columns
from inputs.calendar import HolidayCalendar, day_of_week, hour_of_day
from inputs.models import CalibratedElectricityModel, ELEC_FEATURES
from monte_carlo.lagged_ar import simulate_lagged_ar
from monte_carlo.rng import resolve_streams

HOURS_PER_WEEK = 7 * HOURS_PER_DAY

# column positions in the predictor matrix
_TEMP, _TEMP_DEV, _HOUR, _WEEKDAY, _WORKING, _GAS, _GAS_DAY, _GAS_WEEK = range(len(ELEC_FEATURES))


@dataclass(frozen=True, eq=False)
class ElectricityPaths:
    """All arrays have shape (n_hours, n_trials)."""
    price: FloatArray
    deterministic: FloatArray     # log price from the predictor
    stochastic: FloatArray        # log price residual from the AR recursion
    innovations: FloatArray


def lagged(series: ArrayLike, lag: int) -> FloatArray:
    """
    Shift a series (or columns of a matrix) down by lag rows.

    The first lag rows are filled with the first observation.
    """
    x = np.asarray(series, dtype=np.float64)
    out = np.empty_like(x)
    k = min(lag, len(x))
    out[:k] = x[:1]
    out[k:] = x[:len(x) - k]
    return out


def calendar_predictors(dates: pd.DatetimeIndex, holidays: HolidayCalendar) -> FloatArray:
    """Predictor matrix with only the trial-invariant columns filled; the rest are zero."""
    X = np.zeros((len(dates), len(ELEC_FEATURES)), dtype=np.float64)
    X[:, _HOUR] = hour_of_day(dates)
    X[:, _WEEKDAY] = day_of_week(dates)
    X[:, _WORKING] = holidays.working_day_mask(dates)
    return X


def fill_path_predictors(
        X: FloatArray,
        temperature: FloatArray,
        temperature_deviation: FloatArray,
        gas: FloatArray
) -> FloatArray:
    """Write one path's temperature and gas columns into X in place."""
    X[:, _TEMP] = temperature
    X[:, _TEMP_DEV] = temperature_deviation
    X[:, _GAS] = gas
    X[:, _GAS_DAY] = lagged(gas, HOURS_PER_DAY)
    X[:, _GAS_WEEK] = lagged(gas, HOURS_PER_WEEK)
    return X


def build_predictors(
        dates: pd.DatetimeIndex,
        holidays: HolidayCalendar,
        gas: ArrayLike,
        temperature: ArrayLike,
        temperature_deviation: ArrayLike
) -> Tuple[FloatArray, Tuple[str, ...]]:
    """
    Predictor matrix for a single path.

    Returns:
        Tuple of (X, labels) with X of shape (n_hours, 8)
    """
    X = calendar_predictors(dates, holidays)
    fill_path_predictors(
        X,
        np.asarray(temperature, dtype=np.float64),
        np.asarray(temperature_deviation, dtype=np.float64),
        np.asarray(gas, dtype=np.float64)
    )
    return X, ELEC_FEATURES


class ElectricityPriceSimulator:
    """
    Hybrid electricity model: log price = tree prediction from weather and
    fuel drivers + an independent lagged-AR residual.
    """

    def __init__(self, model: CalibratedElectricityModel, holidays: Optional[HolidayCalendar] = None):
        self.model = model
        self.holidays = holidays if holidays is not None else HolidayCalendar()

    def simulate(
            self,
            dates: pd.DatetimeIndex,
            temperature: ArrayLike,
            temperature_deviation: ArrayLike,
            gas: ArrayLike,
            rngs: Optional[Sequence[np.random.Generator]] = None,
            seed: Optional[int] = None
    ) -> ElectricityPaths:
        """
        Simulate electricity prices driven by simulated temperature and gas.

        Args:
            dates: Hourly timestamps
            temperature: Simulated temperatures, shape (n_hours, n_trials)
            temperature_deviation: Stochastic part of temperature, same shape
            gas: Hourly gas prices, same shape
            rngs: One generator per trial (spawned from seed if omitted)
            seed: Root seed used only when rngs is None

        Returns:
            ElectricityPaths with price and its components
        """
        temperature = as_columns(temperature)
        temperature_deviation = as_columns(temperature_deviation)
        gas = as_columns(gas)

        expected = (len(dates), temperature.shape[1])
        for name, arr in (('temperature_deviation', temperature_deviation), ('gas', gas)):
            if arr.shape != expected:
                raise DimensionMismatch(f"{name} has shape {arr.shape}; temperature has {expected}")
        if temperature.shape[0] != len(dates):
            raise DimensionMismatch(f"temperature has {temperature.shape[0]} hours for {len(dates)} dates")

        n_hours, n_trials = expected
        rngs = resolve_streams(n_trials, rngs, seed)

        stochastic, innovations = simulate_lagged_ar(self.model.ar, n_hours, rngs)

        X = calendar_predictors(dates, self.holidays)
        deterministic = np.empty((n_hours, n_trials), dtype=np.float64)
        for j in range(n_trials):
            fill_path_predictors(X, temperature[:, j], temperature_deviation[:, j], gas[:, j])
            deterministic[:, j] = self.model.predictor.evaluate(X)

        price = np.exp(deterministic + stochastic)

        return ElectricityPaths(
            price=price,
            deterministic=deterministic,
            stochastic=stochastic,
            innovations=innovations
        )
