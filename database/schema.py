"""Database schema for the plant dispatch risk system using SQLite."""

import sqlite3
from pathlib import Path
from typing import Optional
from contextlib import contextmanager


class PlantRiskDatabase:
    """Embedded SQLite database for assets, price history and simulation results"""

    def __init__(self, db_path: str = "plant_risk.db"):
        self.db_path = Path(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Establish database connection"""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row  # Access columns by name
        return self.conn

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            self.conn = None

    @contextmanager
    def transaction(self):
        """Context manager for transactions"""
        opened_here = self.conn is None
        conn = self.connect() if opened_here else self.conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if opened_here:
                self.close()

    def initialize_schema(self):
        """Create all tables if they don't exist"""
        with self.transaction() as conn:
            cursor = conn.cursor()

            # Asset table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS assets (
                    asset_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    asset_name TEXT,
                    capacity REAL NOT NULL,             -- MW
                    heat_rate REAL NOT NULL,            -- Btu/kWh
                    vom REAL NOT NULL DEFAULT 0.0,      -- $/MWh
                    min_run_hours INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT valid_capacity CHECK (capacity > 0),
                    CONSTRAINT valid_heat_rate CHECK (heat_rate > 0),
                    CONSTRAINT valid_min_run CHECK (min_run_hours BETWEEN 1 AND 24)
                )
            """)

            # Hourly historical prices for backtesting
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS historical_prices (
                    price_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TIMESTAMP NOT NULL,              -- start of the hour
                    elec_price REAL NOT NULL,           -- $/MWh
                    gas_price REAL NOT NULL,            -- $/MMBtu
                    temperature REAL,
                    UNIQUE(ts)
                )
            """)

            # One row per Monte Carlo run
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS simulation_runs (
                    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    start_date DATE NOT NULL,
                    end_date DATE NOT NULL,
                    n_trials INTEGER NOT NULL,
                    batch_size INTEGER NOT NULL,
                    seed INTEGER,
                    anomaly_policy TEXT NOT NULL,
                    n_excluded INTEGER DEFAULT 0,
                    run_timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT valid_trials CHECK (n_trials > 0)
                )
            """)

            # Per-asset risk results
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS asset_results (
                    result_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER NOT NULL,
                    asset_id INTEGER,                   -- NULL when the asset was not loaded from the db
                    asset_name TEXT NOT NULL,
                    expected_profit REAL NOT NULL,
                    cfar_90 REAL NOT NULL,
                    cfar_95 REAL NOT NULL,
                    operating_days REAL,
                    pct_run REAL,
                    avg_hours REAL,
                    FOREIGN KEY (run_id) REFERENCES simulation_runs(run_id),
                    FOREIGN KEY (asset_id) REFERENCES assets(asset_id)
                )
            """)

            # Portfolio-level risk results
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS portfolio_results (
                    run_id INTEGER PRIMARY KEY,
                    expected_profit REAL NOT NULL,
                    cfar_90 REAL NOT NULL,
                    cfar_95 REAL NOT NULL,
                    n_trials INTEGER NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES simulation_runs(run_id)
                )
            """)

            # Create indices for common queries
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_prices_ts
                ON historical_prices(ts)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_results_run
                ON asset_results(run_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_timestamp
                ON simulation_runs(run_timestamp)
            """)

            # View for joined run results
            cursor.execute("""
                CREATE VIEW IF NOT EXISTS run_summary AS
                SELECT
                    r.run_id,
                    r.run_timestamp,
                    r.start_date,
                    r.end_date,
                    r.n_trials,
                    r.n_excluded,
                    ar.asset_name,
                    ar.expected_profit,
                    ar.cfar_90,
                    ar.cfar_95,
                    ar.operating_days,
                    ar.pct_run,
                    ar.avg_hours,
                    p.expected_profit AS portfolio_expected_profit,
                    p.cfar_90 AS portfolio_cfar_90,
                    p.cfar_95 AS portfolio_cfar_95,
                    ar.asset_id,
                    ar.result_id
                FROM asset_results ar
                JOIN simulation_runs r ON ar.run_id = r.run_id
                JOIN portfolio_results p ON p.run_id = r.run_id
            """)

            print(f"✓ Database schema initialized at {self.db_path}")

    def drop_all_tables(self):
        """Drop all tables (use with caution!)"""
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute("DROP VIEW IF EXISTS run_summary")
            cursor.execute("DROP TABLE IF EXISTS portfolio_results")
            cursor.execute("DROP TABLE IF EXISTS asset_results")
            cursor.execute("DROP TABLE IF EXISTS simulation_runs")
            cursor.execute("DROP TABLE IF EXISTS historical_prices")
            cursor.execute("DROP TABLE IF EXISTS assets")
            print("✓ All tables dropped")
