from dataclasses import dataclass, field, replace

import numpy as np
import pandas as pd

from custom_types.errors import InvalidModelParameters
from monte_carlo.lagged_ar import LaggedARSpec
from monte_carlo.predictors import PricePredictor
from monte_carlo.processes import OUParams

# Electricity predictor columns, in the order the tree was trained on
ELEC_FEATURES = (
    'temperature',
    'temperature_deviation',
    'hour_of_day',
    'day_of_week',
    'is_working_day',
    'gas_price',
    'gas_price_prev_day',
    'gas_price_prev_week',
)

# Calibrated on business-day observations
TRADING_DAYS_PER_YEAR = 261


@dataclass(frozen=True)
class CalibratedTemperatureModel:
    seasonal: PricePredictor        # evaluated on days elapsed since origin
    ar: LaggedARSpec
    origin: pd.Timestamp = field(default_factory=lambda: pd.Timestamp("2000-01-01"))

    def __post_init__(self):
        if not hasattr(self.seasonal, 'evaluate'):
            raise InvalidModelParameters("Temperature seasonal component must provide evaluate()")
        object.__setattr__(self, 'origin', pd.Timestamp(self.origin))


@dataclass(frozen=True)
class CalibratedNaturalGasModel:
    ou: OUParams
    dt: float = 1.0 / TRADING_DAYS_PER_YEAR   # years per simulated day

    def __post_init__(self):
        if not np.isfinite(self.dt) or self.dt <= 0.0:
            raise InvalidModelParameters(f"Time step dt must be > 0, got {self.dt}")

    def with_start_price(self, start_price: float) -> "CalibratedNaturalGasModel":
        """Same dynamics, different starting gas price."""
        if not np.isfinite(start_price) or start_price <= 0.0:
            raise InvalidModelParameters(f"Start price must be > 0, got {start_price}")
        return replace(self, ou=replace(self.ou, start_log_state=float(np.log(start_price))))


@dataclass(frozen=True)
class CalibratedElectricityModel:
    predictor: PricePredictor       # log price from a row of ELEC_FEATURES
    ar: LaggedARSpec

    def __post_init__(self):
        if not hasattr(self.predictor, 'evaluate'):
            raise InvalidModelParameters("Electricity predictor must provide evaluate()")
