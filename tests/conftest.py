import numpy as np
import pytest

from inputs.assets import Asset
from inputs.calendar import HolidayCalendar
from inputs.models import (
    CalibratedElectricityModel,
    CalibratedNaturalGasModel,
    CalibratedTemperatureModel,
)
from monte_carlo.distributions import NormalDistribution, StudentTLikeDistribution
from monte_carlo.lagged_ar import LaggedARSpec
from monte_carlo.predictors import LinearSeasonalModel, RegressionTreePredictor
from monte_carlo.processes import OUParams
from portfolio.engine import PortfolioSimulationEngine, SimulationSettings


def make_temperature_model():
    seasonal = LinearSeasonalModel(
        mean=50.0,
        amplitudes=[20.0, 3.0],
        frequencies=[2 * np.pi / 365.25, 2 * np.pi],
        phases=[-1.8, 3.0]
    )
    ar = LaggedARSpec(
        lags=(1, 2, 24, 48),
        coefficients=[0.6, 0.1, 0.1, 0.05],
        distribution=StudentTLikeDistribution(mu=0.0, sigma=1.2, nu=6.0),
        presample=np.zeros(48)
    )
    return CalibratedTemperatureModel(seasonal=seasonal, ar=ar)


def make_gas_model():
    ou = OUParams(alpha=1.5, mu=np.log(4.0), sigma=0.45, start_log_state=np.log(4.0))
    return CalibratedNaturalGasModel(ou=ou)


def make_price_tree():
    """
    gas_price <= 4.0 ?
        hour_of_day <= 7 ? log(30) : log(45)
        temperature <= 80 ? log(55) : log(90)
    """
    return RegressionTreePredictor(
        feature=[5, 2, -2, -2, 0, -2, -2],
        threshold=[4.0, 7.0, -2.0, -2.0, 80.0, -2.0, -2.0],
        left=[1, 2, -1, -1, 5, -1, -1],
        right=[4, 3, -1, -1, 6, -1, -1],
        value=[0.0, 0.0, np.log(30.0), np.log(45.0), 0.0, np.log(55.0), np.log(90.0)]
    )


def make_elec_model(predictor=None):
    ar = LaggedARSpec(
        lags=(1, 2, 23, 24),
        coefficients=[0.5, 0.1, 0.05, 0.15],
        distribution=NormalDistribution(0.0, 0.12),
        presample=np.zeros(24)
    )
    return CalibratedElectricityModel(predictor=predictor or make_price_tree(), ar=ar)


@pytest.fixture
def temperature_model():
    return make_temperature_model()


@pytest.fixture
def gas_model():
    return make_gas_model()


@pytest.fixture
def elec_model():
    return make_elec_model()


@pytest.fixture
def holidays():
    return HolidayCalendar.from_dates(["2010-05-31", "2010-07-05"])


@pytest.fixture
def toy_assets():
    return [
        Asset(capacity=100.0, heat_rate=8500.0, vom=3.0, min_run_hours=12, name="CCGT_A"),
        Asset(capacity=50.0, heat_rate=10500.0, vom=4.0, min_run_hours=4, name="Peaker_B"),
    ]


@pytest.fixture
def make_engine(holidays):
    """Factory so tests can vary settings, callbacks and models"""
    def _make(settings=SimulationSettings(), elec_model=None, **kwargs):
        return PortfolioSimulationEngine(
            make_temperature_model(),
            make_gas_model(),
            elec_model or make_elec_model(),
            holidays=holidays,
            settings=settings,
            **kwargs
        )
    return _make


@pytest.fixture
def price_tree():
    return make_price_tree()


class FlakyPredictor:
    """Price tree that returns non-finite log prices on selected calls (1-based)"""

    def __init__(self, bad_calls):
        self.tree = make_price_tree()
        self.bad_calls = set(bad_calls)
        self.calls = 0

    def evaluate(self, X):
        self.calls += 1
        out = self.tree.evaluate(X)
        if self.calls in self.bad_calls:
            out = np.full_like(out, np.inf)
        return out


@pytest.fixture
def flaky_elec_model():
    def _make(bad_calls):
        return make_elec_model(FlakyPredictor(bad_calls))
    return _make
