from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from custom_types.errors import DimensionMismatch, InvalidAssetSpec, NumericAnomaly
from custom_types.types import ArrayLike, FloatArray, IntArray, HOURS_PER_DAY, as_columns
from inputs.assets import Asset
from inputs.calendar import check_whole_days


def spark_spread(
        elec: FloatArray,
        gas: FloatArray,
        heat_rate: float,
        vom: float
) -> FloatArray:
    """
    Hourly margin per MW of running the plant.

    spread = P - (heat_rate / 1000) * G - VOM

    heat_rate is in Btu/kWh, so heat_rate / 1000 is MMBtu/MWh and the gas
    price is per MMBtu.
    """
    return elec - heat_rate / 1000.0 * gas - vom


@lru_cache(maxsize=HOURS_PER_DAY)
def _candidate_layout(min_run: int) -> Tuple[IntArray, IntArray]:
    """Length and 1-based start hour of every candidate block, in scan order."""
    P = HOURS_PER_DAY + 1 - min_run
    lengths = np.concatenate([np.full(P - j, min_run + j) for j in range(P)])
    starts = np.concatenate([np.arange(1, P - j + 1) for j in range(P)])
    lengths.flags.writeable = False
    starts.flags.writeable = False
    return lengths, starts


@dataclass(frozen=True, eq=False)
class BestBlocks:
    """Optimal block per day, shape (n_days,) each."""
    earnings: FloatArray      # sum of margins over the block ($/MW)
    hours: IntArray           # block length
    start_hour: IntArray      # 1-based hour the block starts


class DispatchOptimizer:
    """
    Best contiguous run block per day under a minimum run length.

    Candidate blocks are scanned by length (shortest first) and then by start
    hour (earliest first). Among blocks with equal earnings the first one in
    this order wins, i.e. the shortest and then earliest block.
    """

    def __init__(self, min_run_hours: int):
        if int(min_run_hours) != min_run_hours or not 1 <= min_run_hours <= HOURS_PER_DAY:
            raise InvalidAssetSpec(f"min_run_hours must be an integer in [1, {HOURS_PER_DAY}], got {min_run_hours}")
        self.min_run = int(min_run_hours)
        self.lengths, self.starts = _candidate_layout(self.min_run)

    @property
    def n_candidates(self) -> int:
        return len(self.lengths)

    def block_earnings(self, spark_mat: ArrayLike) -> FloatArray:
        """
        Earnings of every candidate block for every day.

        Args:
            spark_mat: Hourly margins, shape (24, n_days)

        Returns:
            Matrix of shape (n_candidates, n_days), rows in scan order
        """
        S = np.asarray(spark_mat, dtype=np.float64)
        if S.ndim == 1:
            S = S[:, None]
        if S.shape[0] != HOURS_PER_DAY:
            raise DimensionMismatch(f"Margin matrix must have {HOURS_PER_DAY} rows, got {S.shape[0]}")

        m = self.min_run
        P = HOURS_PER_DAY + 1 - m

        # shortest blocks: moving-window sums of length m, one per start hour,
        # added hour by hour so a day's sums do not depend on the other columns
        windows = sliding_window_view(S, m, axis=0)
        prev = windows[..., 0].copy()
        for k in range(1, m):
            prev += windows[..., k]
        blocks = [prev]

        # each longer block extends the block one hour shorter at the same start
        for j in range(1, P):
            prev = prev[:P - j] + S[m + j - 1:HOURS_PER_DAY]
            blocks.append(prev)

        return np.concatenate(blocks, axis=0)

    def optimize(self, spark_mat: ArrayLike) -> BestBlocks:
        """Pick the highest-earning block per day (ties: first in scan order)."""
        Y = self.block_earnings(spark_mat)
        best = np.argmax(Y, axis=0)

        return BestBlocks(
            earnings=Y[best, np.arange(Y.shape[1])],
            hours=self.lengths[best],
            start_hour=self.starts[best]
        )


def compute_optimal_dispatch(spark_mat: ArrayLike, min_run_hours: int) -> BestBlocks:
    return DispatchOptimizer(min_run_hours).optimize(spark_mat)


@dataclass(frozen=True, eq=False)
class PathDispatch:
    """
    Dispatch outcome for one asset over several price paths.

    Per-trial vectors have shape (n_trials,); per-day matrices (n_days, n_trials).
    """
    profit: FloatArray
    operating_days: IntArray
    avg_hours: FloatArray           # NaN for trials with no operating day
    pct_run: FloatArray             # fraction of all hours in the horizon
    daily_cashflows: FloatArray     # $/MW, zero on days the plant stays off
    hours_run: IntArray             # optimal block length, zero on days off
    start_hour: IntArray            # optimal block start, zero on days off

    def trial(self, j: int) -> "DispatchResult":
        return DispatchResult(
            profit=float(self.profit[j]),
            operating_days=int(self.operating_days[j]),
            avg_hours=float(self.avg_hours[j]),
            pct_run=float(self.pct_run[j]),
            daily_cashflows=self.daily_cashflows[:, j],
            hours_run=self.hours_run[:, j],
            start_hour=self.start_hour[:, j]
        )


@dataclass(frozen=True, eq=False)
class DispatchResult:
    profit: float
    operating_days: int
    avg_hours: float
    pct_run: float
    daily_cashflows: FloatArray
    hours_run: IntArray
    start_hour: IntArray

    def __iter__(self):
        """Unpacks as (profit, operating_days, avg_hours, pct_run, daily_cashflows)."""
        return iter((self.profit, self.operating_days, self.avg_hours, self.pct_run, self.daily_cashflows))


def dispatch_paths(asset: Asset, elec: ArrayLike, gas: ArrayLike) -> PathDispatch:
    """
    Optimal daily dispatch of one asset on every (elec, gas) path pair.

    Args:
        asset: Plant parameters
        elec: Hourly electricity prices, shape (n_hours,) or (n_hours, n_trials)
        gas: Hourly gas prices, same shape as elec

    Returns:
        PathDispatch with per-trial statistics and per-day detail
    """
    elec = as_columns(elec)
    gas = as_columns(gas)
    if elec.shape != gas.shape:
        raise DimensionMismatch(f"Electricity paths {elec.shape} and gas paths {gas.shape} differ in shape")

    n_hours, n_trials = elec.shape
    n_days = check_whole_days(n_hours)

    spark = spark_spread(elec, gas, asset.heat_rate, asset.vom)
    bad = ~np.all(np.isfinite(spark), axis=0)
    if np.any(bad):
        trials = np.flatnonzero(bad)
        raise NumericAnomaly(f"Non-finite margins in trials {trials.tolist()}", trials=trials)

    # day d of trial j becomes column j * n_days + d
    spark_mat = spark.T.reshape(n_trials * n_days, HOURS_PER_DAY).T
    best = DispatchOptimizer(asset.min_run_hours).optimize(spark_mat)

    earnings = best.earnings.reshape(n_trials, n_days).T
    profitable = earnings > 0.0

    daily_cashflows = np.where(profitable, earnings, 0.0)
    hours_run = np.where(profitable, best.hours.reshape(n_trials, n_days).T, 0)
    start_hour = np.where(profitable, best.start_hour.reshape(n_trials, n_days).T, 0)

    operating_days = profitable.sum(axis=0)
    total_hours = hours_run.sum(axis=0)
    avg_hours = np.full(n_trials, np.nan)
    np.divide(total_hours, operating_days, out=avg_hours, where=operating_days > 0)

    # summed along contiguous per-trial rows so the result is the same in any batch
    profit = np.ascontiguousarray(daily_cashflows.T).sum(axis=1) * asset.capacity

    return PathDispatch(
        profit=profit,
        operating_days=operating_days,
        avg_hours=avg_hours,
        pct_run=total_hours / n_hours,
        daily_cashflows=daily_cashflows,
        hours_run=hours_run,
        start_hour=start_hour
    )


def dispatch(
        capacity: float,
        heat_rate: float,
        vom: float,
        min_run_hours: int,
        elec: ArrayLike,
        gas: ArrayLike
) -> DispatchResult:
    """
    Optimal dispatch of a single plant along a single hourly price path.

    Unpacks as (profit, operating_days, avg_hours, pct_run, daily_cashflows).
    """
    elec = np.asarray(elec, dtype=np.float64)
    gas = np.asarray(gas, dtype=np.float64)
    if elec.ndim != 1 or gas.ndim != 1:
        raise DimensionMismatch("dispatch() takes one path; use dispatch_paths() for several")

    asset = Asset(capacity, heat_rate, vom, min_run_hours)
    return dispatch_paths(asset, elec, gas).trial(0)
