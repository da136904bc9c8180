"""Batch runner that connects the database to the portfolio engine."""

import sqlite3
from typing import List, Optional, Protocol, Tuple

import numpy as np
import pandas as pd

from database.loader import DataQuery
from inputs.calendar import to_timestamp
from portfolio.backtest import BacktestResult, backtest_portfolio
from portfolio.engine import SimulationRun, SimulationSettings


class Engine(Protocol):
    """Protocol for anything that can run a portfolio simulation"""

    s: SimulationSettings

    def run(self, assets, start_date, end_date, n_trials: int) -> SimulationRun:
        ...


class BatchRunner:
    """Run simulations and backtests on the stored asset table and record the results"""

    def __init__(self, conn: sqlite3.Connection, engine: Engine):
        self.conn = conn
        self.engine = engine
        self.query = DataQuery(conn)

    # ========== Public Methods ==========

    def run_stored_portfolio(
            self,
            start_date,
            end_date,
            n_trials: int,
            asset_names: Optional[List[str]] = None,
            max_heat_rate: Optional[float] = None
    ) -> Tuple[int, pd.DataFrame]:
        """
        Simulate the stored assets matching the filters and store the run.
        Returns (run_id, per-asset results DataFrame).
        """
        pairs = self.query.get_asset_table(asset_names=asset_names, max_heat_rate=max_heat_rate)

        if not pairs:
            print("No assets match the filters")
            return -1, pd.DataFrame()

        asset_ids = [asset_id for asset_id, _ in pairs]
        assets = [asset for _, asset in pairs]

        print(f"Simulating {len(assets)} assets, {n_trials} trials")
        run = self.engine.run(assets, start_date, end_date, n_trials)

        run_id = self.store_run(run, start_date, end_date, n_trials, asset_ids)

        results_df = self.query.get_run_results(run_ids=[run_id])
        return run_id, results_df

    def backtest_stored_portfolio(
            self,
            start_date,
            end_date,
            asset_names: Optional[List[str]] = None
    ) -> BacktestResult:
        """Dispatch the stored assets against stored historical prices"""
        assets = [asset for _, asset in self.query.get_asset_table(asset_names=asset_names)]
        return backtest_portfolio(assets, start_date, end_date, self.query.fetch_historical_prices)

    def store_run(
            self,
            run: SimulationRun,
            start_date,
            end_date,
            n_trials: int,
            asset_ids: Optional[List[Optional[int]]] = None
    ) -> int:
        """Store a simulation run and its summaries, return run_id"""
        if asset_ids is None:
            asset_ids = [None] * len(run.asset_summary)

        settings = self.engine.s
        cursor = self.conn.cursor()

        cursor.execute("""
            INSERT INTO simulation_runs (
                start_date, end_date, n_trials, batch_size, seed,
                anomaly_policy, n_excluded
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            to_timestamp(start_date).strftime('%Y-%m-%d'),
            to_timestamp(end_date).strftime('%Y-%m-%d'),
            int(n_trials),
            int(settings.batch_size),
            settings.seed,
            settings.anomaly_policy,
            int(run.excluded_trials.size)
        ))
        run_id = cursor.lastrowid

        for asset_id, summary in zip(asset_ids, run.asset_summary):
            cursor.execute("""
                INSERT INTO asset_results (
                    run_id, asset_id, asset_name, expected_profit,
                    cfar_90, cfar_95, operating_days, pct_run, avg_hours
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                run_id,
                asset_id,
                summary.asset.label,
                summary.expected_profit,
                summary.cfar_90,
                summary.cfar_95,
                summary.operating_days,
                summary.pct_run,
                None if np.isnan(summary.avg_hours) else summary.avg_hours
            ))

        p = run.portfolio_summary
        cursor.execute("""
            INSERT INTO portfolio_results (run_id, expected_profit, cfar_90, cfar_95, n_trials)
            VALUES (?, ?, ?, ?, ?)
        """, (run_id, p.expected_profit, p.cfar_90, p.cfar_95, p.n_trials))

        self.conn.commit()
        print(f"✓ Stored run {run_id}: expected profit ${p.expected_profit:,.2f}")
        return run_id
