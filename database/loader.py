"""Data loading utilities for populating the plant risk database."""

import sqlite3
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
import pandas as pd

from custom_types.errors import DataFetchFailure
from database.schema import PlantRiskDatabase
from inputs.assets import Asset

_TS_FORMAT = '%Y-%m-%d %H:%M:%S'


class DataLoader:
    """Load assets and historical prices into database"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def load_asset(
            self,
            capacity: float,
            heat_rate: float,
            vom: float,
            min_run_hours: int,
            asset_name: Optional[str] = None
    ) -> int:
        """Insert a single asset, return asset_id"""
        # raises InvalidAssetSpec before anything is written
        asset = Asset(capacity, heat_rate, vom, min_run_hours, name=asset_name)

        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO assets (asset_name, capacity, heat_rate, vom, min_run_hours)
            VALUES (?, ?, ?, ?, ?)
        """, (asset.name, asset.capacity, asset.heat_rate, asset.vom, asset.min_run_hours))

        self.conn.commit()
        return cursor.lastrowid

    def load_assets_batch(self, assets: List[Dict[str, Any]]) -> List[int]:
        """Insert multiple assets, return list of asset_ids"""
        ids = []
        for asset in assets:
            asset_id = self.load_asset(**asset)
            ids.append(asset_id)
        return ids

    def load_historical_prices(self, prices: pd.DataFrame) -> int:
        """
        Insert hourly prices, replacing any existing row for the same hour.

        Expects columns 'ts', 'elec_price', 'gas_price' and optionally
        'temperature'. Returns the number of rows written.
        """
        missing = {'ts', 'elec_price', 'gas_price'} - set(prices.columns)
        if missing:
            raise ValueError(f"Price data is missing columns {sorted(missing)}")

        ts = pd.to_datetime(prices['ts']).dt.strftime(_TS_FORMAT)
        temperature = prices['temperature'] if 'temperature' in prices.columns else [None] * len(prices)

        rows = [
            (t, float(e), float(g), None if pd.isna(tmp) else float(tmp))
            for t, e, g, tmp in zip(ts, prices['elec_price'], prices['gas_price'], temperature)
        ]

        cursor = self.conn.cursor()
        cursor.executemany("""
            INSERT OR REPLACE INTO historical_prices (ts, elec_price, gas_price, temperature)
            VALUES (?, ?, ?, ?)
        """, rows)

        self.conn.commit()
        return len(rows)

    def load_assets_from_csv(self, csv_path: str) -> List[int]:
        """Load assets from CSV file"""
        df = pd.read_csv(csv_path)
        assets = df.to_dict('records')
        return self.load_assets_batch(assets)

    def load_prices_from_csv(self, csv_path: str) -> int:
        """Load hourly price history from CSV file"""
        df = pd.read_csv(csv_path)
        return self.load_historical_prices(df)


class DataQuery:
    """Query utilities for retrieving data from database"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_assets(
            self,
            asset_names: Optional[List[str]] = None,
            max_heat_rate: Optional[float] = None
    ) -> pd.DataFrame:
        """Query assets with filters"""
        query = "SELECT * FROM assets WHERE 1=1"
        params = []

        if asset_names:
            placeholders = ','.join('?' * len(asset_names))
            query += f" AND asset_name IN ({placeholders})"
            params.extend(asset_names)

        if max_heat_rate is not None:
            query += " AND heat_rate <= ?"
            params.append(max_heat_rate)

        query += " ORDER BY asset_id"

        return pd.read_sql_query(query, self.conn, params=params)

    def get_asset_table(self, **filters) -> List[Tuple[int, Asset]]:
        """Assets as (asset_id, Asset) pairs, in asset_id order"""
        df = self.get_assets(**filters)
        return [
            (int(row['asset_id']), Asset(
                capacity=float(row['capacity']),
                heat_rate=float(row['heat_rate']),
                vom=float(row['vom']),
                min_run_hours=int(row['min_run_hours']),
                name=row['asset_name']
            ))
            for _, row in df.iterrows()
        ]

    def fetch_historical_prices(self, start_date, end_date) -> pd.DataFrame:
        """
        Hourly prices from start_date 00:00 through end_date 23:00.

        Any database error surfaces as DataFetchFailure.
        """
        start = pd.Timestamp(start_date).normalize()
        stop = pd.Timestamp(end_date).normalize() + pd.Timedelta(days=1)

        query = """
            SELECT ts, elec_price, gas_price, temperature
            FROM historical_prices
            WHERE ts >= ? AND ts < ?
            ORDER BY ts
        """
        try:
            df = pd.read_sql_query(
                query, self.conn,
                params=[start.strftime(_TS_FORMAT), stop.strftime(_TS_FORMAT)]
            )
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise DataFetchFailure(f"Could not read historical prices: {exc}") from exc

        df['ts'] = pd.to_datetime(df['ts'])
        return df

    def get_run_results(
            self,
            run_ids: Optional[List[int]] = None,
            min_timestamp: Optional[str] = None
    ) -> pd.DataFrame:
        """Query stored simulation results"""
        query = "SELECT * FROM run_summary WHERE 1=1"
        params = []

        if run_ids:
            placeholders = ','.join('?' * len(run_ids))
            query += f" AND run_id IN ({placeholders})"
            params.extend(run_ids)

        if min_timestamp:
            query += " AND run_timestamp >= ?"
            params.append(min_timestamp)

        query += " ORDER BY run_timestamp DESC, run_id DESC, asset_name"

        return pd.read_sql_query(query, self.conn, params=params)


def stored_price_fetcher(db_path: str = "plant_risk.db"):
    """
    Price fetcher reading the historical_prices table of a database file.

    Opens a fresh connection for every call so it can be handed to
    backtest_portfolio and used outside any open session.
    """
    def fetch(start_date, end_date) -> pd.DataFrame:
        if not Path(db_path).exists():
            raise DataFetchFailure(f"Price database not found: {db_path}")
        db = PlantRiskDatabase(db_path)
        try:
            return DataQuery(db.connect()).fetch_historical_prices(start_date, end_date)
        finally:
            db.close()

    return fetch
