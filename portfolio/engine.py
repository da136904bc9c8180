"""
Monte Carlo valuation of a gas-fired plant portfolio.

``PortfolioSimulationEngine`` runs the temperature, natural gas and
electricity simulators batch by batch, dispatches every asset on every
simulated path, and turns the per-trial profits into expected profit and
cash-flow-at-risk figures for each asset and for the portfolio.

Every trial draws from its own random stream spawned from the root seed,
so results do not depend on the batch size.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from custom_types.errors import InvalidModelParameters, NumericAnomaly, SimulationCancelled
from custom_types.types import FloatArray
from dispatch.optimizer import dispatch_paths
from inputs.assets import Asset, as_asset_table
from inputs.calendar import DateLike, HolidayCalendar, check_whole_days, hourly_grid
from inputs.models import CalibratedElectricityModel, CalibratedNaturalGasModel, CalibratedTemperatureModel
from monte_carlo.electricity import ElectricityPriceSimulator
from monte_carlo.natural_gas import NaturalGasSimulator
from monte_carlo.rng import batch_seeds, make_rng, trial_seeds
from monte_carlo.temperature import TemperatureSimulator
from portfolio.risk import (
    AssetRiskSummary,
    PortfolioRiskSummary,
    summarize_asset,
    summarize_portfolio,
)

logger = logging.getLogger(__name__)

ANOMALY_POLICIES = ('raise', 'exclude')

ProgressCallback = Callable[[str, float], None]


@dataclass(frozen=True)
class SimulationSettings:
    """Monte Carlo run parameters"""
    batch_size: int = 100                   # trials held in memory at once
    seed: int | None = 42
    anomaly_policy: str = 'exclude'         # 'raise' aborts the run, 'exclude' drops the trial
    gas_start_price: float | None = None    # overrides the calibrated gas start state

    def __post_init__(self):
        if int(self.batch_size) != self.batch_size or self.batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size}")
        if self.anomaly_policy not in ANOMALY_POLICIES:
            raise ValueError(
                f"Unknown anomaly_policy '{self.anomaly_policy}'. Choose from: {list(ANOMALY_POLICIES)}"
            )
        if self.gas_start_price is not None and not self.gas_start_price > 0.0:
            raise InvalidModelParameters(f"gas_start_price must be > 0, got {self.gas_start_price}")


@dataclass(frozen=True, eq=False)
class SimulatedScenario:
    """Jointly simulated market paths; matrices are (n_hours, n_trials) unless noted."""
    dates: pd.DatetimeIndex
    temperature: FloatArray
    temperature_stochastic: FloatArray
    gas: FloatArray
    gas_daily: FloatArray               # (n_days, n_trials)
    elec: FloatArray
    elec_stochastic: FloatArray

    @property
    def n_trials(self) -> int:
        return self.elec.shape[1]

    def finite_trials(self) -> np.ndarray:
        """True for trials whose every simulated value is finite."""
        ok = np.ones(self.n_trials, dtype=bool)
        for arr in (self.temperature, self.gas, self.elec):
            ok &= np.all(np.isfinite(arr), axis=0)
        return ok


@dataclass(frozen=True, eq=False)
class SimulationRun:
    """
    Full output of a portfolio simulation.

    Per-trial matrices have shape (n_assets, n_trials); columns of excluded
    trials hold NaN.
    """
    dates: pd.DatetimeIndex
    assets: Tuple[Asset, ...]
    earnings: FloatArray
    operating_days: FloatArray
    avg_hours: FloatArray
    pct_run: FloatArray
    included: np.ndarray                # (n_trials,) bool
    asset_summary: Tuple[AssetRiskSummary, ...]
    portfolio_summary: PortfolioRiskSummary

    @property
    def portfolio_earnings(self) -> FloatArray:
        """Summed profit of every included trial."""
        return self.earnings[:, self.included].sum(axis=0)

    @property
    def excluded_trials(self) -> np.ndarray:
        return np.flatnonzero(~self.included)


class TrialAccumulator:
    """Trial-indexed result matrices. Each trial is written exactly once."""

    def __init__(self, n_assets: int, n_trials: int):
        self.earnings = np.full((n_assets, n_trials), np.nan)
        self.operating_days = np.full((n_assets, n_trials), np.nan)
        self.avg_hours = np.full((n_assets, n_trials), np.nan)
        self.pct_run = np.full((n_assets, n_trials), np.nan)
        self.included = np.ones(n_trials, dtype=bool)

    def record(self, asset_idx: int, trials: np.ndarray, result) -> None:
        self.earnings[asset_idx, trials] = result.profit
        self.operating_days[asset_idx, trials] = result.operating_days
        self.avg_hours[asset_idx, trials] = result.avg_hours
        self.pct_run[asset_idx, trials] = result.pct_run

    def exclude(self, trials: np.ndarray) -> None:
        self.included[trials] = False

    @property
    def n_excluded(self) -> int:
        return int(np.sum(~self.included))


def batch_bounds(n_trials: int, batch_size: int) -> Iterator[Tuple[int, int]]:
    """Consecutive [start, stop) trial ranges covering 0..n_trials-1 once."""
    for start in range(0, n_trials, batch_size):
        yield start, min(start + batch_size, n_trials)


class PortfolioSimulationEngine:
    """
    Joint price simulation + optimal dispatch + risk aggregation.

    Progress is reported through an optional ``progress(step, fraction)``
    callback; ``should_cancel()`` is polled between batches.
    """

    def __init__(
            self,
            temperature_model: CalibratedTemperatureModel,
            gas_model: CalibratedNaturalGasModel,
            elec_model: CalibratedElectricityModel,
            holidays: Optional[HolidayCalendar] = None,
            settings: SimulationSettings = SimulationSettings(),
            progress: Optional[ProgressCallback] = None,
            should_cancel: Optional[Callable[[], bool]] = None
    ):
        self.temperature = TemperatureSimulator(temperature_model)
        self.gas = NaturalGasSimulator(gas_model)
        self.elec = ElectricityPriceSimulator(elec_model, holidays)
        self.s = settings
        self._progress = progress
        self._should_cancel = should_cancel

    # ------------------------------------------------------------------
    # Progress reporting
    # ------------------------------------------------------------------

    def _report(self, step: str, fraction: float) -> None:
        """Fire the progress callback if one was provided."""
        if self._progress is not None:
            try:
                self._progress(step, fraction)
            except Exception:
                logger.warning("Progress callback failed at step '%s'", step, exc_info=True)
        logger.debug("Simulation step: %s (%.0f %%)", step, fraction * 100)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def simulate_paths(
            self,
            dates: pd.DatetimeIndex,
            rngs: Sequence[np.random.Generator]
    ) -> SimulatedScenario:
        """Simulate temperature, gas and electricity for one batch of trials."""
        n_trials = len(rngs)

        temp = self.temperature.simulate(dates, n_trials, rngs=rngs)
        gas = self.gas.simulate(len(dates), n_trials, rngs=rngs, start_price=self.s.gas_start_price)
        elec = self.elec.simulate(dates, temp.total, temp.stochastic, gas.hourly, rngs=rngs)

        return SimulatedScenario(
            dates=dates,
            temperature=temp.total,
            temperature_stochastic=temp.stochastic,
            gas=gas.hourly,
            gas_daily=gas.daily,
            elec=elec.price,
            elec_stochastic=elec.stochastic
        )

    def simulate_scenario(
            self,
            start_date: DateLike,
            end_date: DateLike,
            n_trials: int
    ) -> SimulatedScenario:
        """Market paths only (no dispatch), e.g. for inspecting individual paths."""
        dates = hourly_grid(start_date, end_date)
        rngs = [make_rng(s) for s in trial_seeds(self.s.seed, n_trials)]
        return self.simulate_paths(dates, rngs)

    def run(
            self,
            assets: Iterable,
            start_date: DateLike,
            end_date: DateLike,
            n_trials: int
    ) -> SimulationRun:
        """
        Simulate n_trials market scenarios and dispatch every asset on each.

        Args:
            assets: Asset table (Asset records, dicts, or 4-column rows)
            start_date: First simulated day
            end_date: Last simulated day (inclusive)
            n_trials: Number of Monte Carlo trials

        Returns:
            SimulationRun with per-trial results and risk summaries
        """
        # validate everything before any simulation work
        table = as_asset_table(assets)
        dates = hourly_grid(start_date, end_date)
        n_days = check_whole_days(len(dates), "simulation horizon")
        if int(n_trials) != n_trials or n_trials < 1:
            raise ValueError(f"n_trials must be a positive integer, got {n_trials}")
        n_trials = int(n_trials)

        logger.info(
            "Simulating %d trials over %d days for %d assets (batch size %d)",
            n_trials, n_days, len(table), self.s.batch_size
        )

        acc = TrialAccumulator(len(table), n_trials)
        root = np.random.SeedSequence(self.s.seed)

        for start, stop in batch_bounds(n_trials, self.s.batch_size):
            if self._should_cancel is not None and self._should_cancel():
                logger.info("Cancellation requested at trial %d/%d", start, n_trials)
                raise SimulationCancelled(f"Cancelled after {start} of {n_trials} trials")

            self._report("Running simulation & dispatch", 0.05 + 0.85 * start / n_trials)
            self._run_batch(table, dates, root, start, stop, acc)

        if acc.n_excluded == n_trials:
            raise NumericAnomaly("Every trial produced non-finite values", trials=range(n_trials))

        self._report("Aggregating results", 0.95)
        run = self._aggregate(table, dates, acc)

        logger.info(
            "Portfolio expected profit %.2f, CFaR90 %.2f, CFaR95 %.2f (%d trials excluded)",
            run.portfolio_summary.expected_profit,
            run.portfolio_summary.cfar_90,
            run.portfolio_summary.cfar_95,
            acc.n_excluded
        )
        self._report("Done", 1.0)
        return run

    def simulate_portfolio(
            self,
            assets: Iterable,
            start_date: DateLike,
            end_date: DateLike,
            n_trials: int
    ) -> Tuple[Tuple[AssetRiskSummary, ...], PortfolioRiskSummary]:
        """Per-asset and portfolio risk summaries of a Monte Carlo run."""
        run = self.run(assets, start_date, end_date, n_trials)
        return run.asset_summary, run.portfolio_summary

    def _run_batch(
            self,
            assets: Sequence[Asset],
            dates: pd.DatetimeIndex,
            root: np.random.SeedSequence,
            start: int,
            stop: int,
            acc: TrialAccumulator
    ) -> None:
        rngs = [make_rng(s) for s in batch_seeds(root, start, stop)]
        scenario = self.simulate_paths(dates, rngs)

        trial_ids = np.arange(start, stop)
        ok = scenario.finite_trials()

        if not np.all(ok):
            bad = trial_ids[~ok]
            if self.s.anomaly_policy == 'raise':
                raise NumericAnomaly(f"Non-finite simulated prices in trials {bad.tolist()}", trials=bad)
            logger.warning("Excluding %d trial(s) with non-finite simulated prices: %s", len(bad), bad.tolist())
            acc.exclude(bad)

        if not np.any(ok):
            return

        elec = scenario.elec[:, ok]
        gas = scenario.gas[:, ok]
        for i, asset in enumerate(assets):
            acc.record(i, trial_ids[ok], dispatch_paths(asset, elec, gas))

    def _aggregate(
            self,
            assets: Sequence[Asset],
            dates: pd.DatetimeIndex,
            acc: TrialAccumulator
    ) -> SimulationRun:
        keep = acc.included
        n_excluded = acc.n_excluded

        asset_summary = tuple(
            summarize_asset(
                asset,
                acc.earnings[i, keep],
                acc.operating_days[i, keep],
                acc.pct_run[i, keep],
                acc.avg_hours[i, keep],
                n_excluded=n_excluded
            )
            for i, asset in enumerate(assets)
        )
        portfolio_summary = summarize_portfolio(acc.earnings[:, keep], n_excluded=n_excluded)

        return SimulationRun(
            dates=dates,
            assets=tuple(assets),
            earnings=acc.earnings,
            operating_days=acc.operating_days,
            avg_hours=acc.avg_hours,
            pct_run=acc.pct_run,
            included=keep,
            asset_summary=asset_summary,
            portfolio_summary=portfolio_summary
        )
