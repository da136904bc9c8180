"""Dispatch a plant portfolio against historical prices instead of simulated ones."""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np
import pandas as pd

from custom_types.errors import DataFetchFailure, DimensionMismatch
from custom_types.types import HOURS_PER_DAY
from database.loader import stored_price_fetcher
from dispatch.optimizer import dispatch
from inputs.assets import as_asset_table
from inputs.calendar import DateLike, check_whole_days, to_timestamp

logger = logging.getLogger(__name__)

# (start, end) -> hourly DataFrame with 'elec_price' and 'gas_price' columns
PriceFetcher = Callable[[pd.Timestamp, pd.Timestamp], pd.DataFrame]


@dataclass(frozen=True, eq=False)
class BacktestResult:
    results: pd.DataFrame           # one row per asset
    daily_cashflows: pd.DataFrame   # days x assets, in $

    @property
    def portfolio_cashflows(self) -> pd.Series:
        return self.daily_cashflows.sum(axis=1)


def _fetch(fetch: PriceFetcher, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    try:
        data = fetch(start, end)
    except DataFetchFailure:
        logger.error("Error fetching prices for %s to %s", start.date(), end.date())
        raise
    except Exception as exc:
        logger.error("Error fetching prices for %s to %s: %s", start.date(), end.date(), exc)
        raise DataFetchFailure(f"Error fetching data. Check date ranges: {exc}") from exc

    missing = {'elec_price', 'gas_price'} - set(data.columns)
    if missing:
        raise DataFetchFailure(f"Historical data is missing columns {sorted(missing)}")
    if data.empty:
        raise DataFetchFailure(f"No historical prices between {start.date()} and {end.date()}")
    return data


def backtest_portfolio(
        assets: Iterable,
        start_date: DateLike,
        end_date: DateLike,
        fetch: Optional[PriceFetcher] = None,
        db_path: str = "plant_risk.db"
) -> BacktestResult:
    """
    Run the optimal dispatch for every asset on observed hourly prices.

    Args:
        assets: Asset table
        start_date: First day (inclusive)
        end_date: Last day (inclusive)
        fetch: Source of historical hourly prices; defaults to the
            historical_prices table of the database at db_path
        db_path: Database file read when no fetcher is given

    Returns:
        BacktestResult with per-asset statistics and daily cash-flows
    """
    table = as_asset_table(assets)
    start = to_timestamp(start_date)
    end = to_timestamp(end_date)

    if fetch is None:
        fetch = stored_price_fetcher(db_path)
    data = _fetch(fetch, start, end)
    elec = data['elec_price'].to_numpy(dtype=np.float64)
    gas = data['gas_price'].to_numpy(dtype=np.float64)

    n_days = check_whole_days(len(elec), "historical price series")
    expected_days = (end - start).days + 1
    if n_days != expected_days:
        raise DimensionMismatch(
            f"Historical data covers {n_days} days but {expected_days} were requested"
        )

    rows = []
    cashflows = {}
    for i, asset in enumerate(table):
        key = asset.label if asset.label not in cashflows else f"{asset.label}_{i}"
        res = dispatch(asset.capacity, asset.heat_rate, asset.vom, asset.min_run_hours, elec, gas)
        rows.append({
            'asset': key,
            'profit': res.profit,
            'operating_days': res.operating_days,
            'pct_run': res.pct_run,
            'avg_hours': res.avg_hours,
        })
        cashflows[key] = res.daily_cashflows * asset.capacity

    days = pd.date_range(start, periods=len(elec) // HOURS_PER_DAY, freq='D')
    logger.info("Backtested %d assets over %d days", len(table), n_days)

    return BacktestResult(
        results=pd.DataFrame(rows),
        daily_cashflows=pd.DataFrame(cashflows, index=days)
    )
