"""Output utilities for exporting simulation results."""

import sqlite3
import pandas as pd
from pathlib import Path
from typing import Optional, List
from datetime import datetime


class ResultsExporter:
    """Export stored simulation results to various formats"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def to_csv(
            self,
            output_path: str,
            run_ids: Optional[List[int]] = None,
            min_timestamp: Optional[str] = None
    ):
        """Export asset results to CSV"""
        df = self._get_results(run_ids, min_timestamp)

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False)
        print(f"✓ Exported {len(df)} results to {output_path}")

    def to_excel(
            self,
            output_path: str,
            run_ids: Optional[List[int]] = None,
            min_timestamp: Optional[str] = None
    ):
        """Export results to Excel with an asset sheet and a portfolio sheet"""
        results_df = self._get_results(run_ids, min_timestamp)

        # One row per run
        summary_df = self.get_portfolio_summary(run_ids)

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            results_df.to_excel(writer, sheet_name='Asset Results', index=False)
            summary_df.to_excel(writer, sheet_name='Portfolio', index=False)

            self._format_excel_sheet(writer, 'Asset Results')
            self._format_excel_sheet(writer, 'Portfolio')

        print(f"✓ Exported {len(results_df)} results to {output_path}")

    def to_summary_report(
            self,
            output_path: str,
            run_ids: Optional[List[int]] = None
    ):
        """Generate a summary report text file"""
        results_df = self._get_results(run_ids)

        if results_df.empty:
            print("No results to export")
            return

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            f.write("=" * 70 + "\n")
            f.write("GAS-FIRED PLANT PORTFOLIO - CASH-FLOW-AT-RISK REPORT\n")
            f.write("=" * 70 + "\n")
            f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Runs reported: {results_df['run_id'].nunique()}\n")
            f.write("\n")

            for run_id, run_df in results_df.groupby('run_id', sort=False):
                first = run_df.iloc[0]

                f.write("-" * 70 + "\n")
                f.write(f"RUN {run_id}: {first['start_date']} to {first['end_date']}\n")
                f.write("-" * 70 + "\n")
                f.write(f"Trials: {first['n_trials']} ({first['n_excluded']} excluded)\n")
                f.write(f"Portfolio expected profit: ${first['portfolio_expected_profit']:,.2f}\n")
                f.write(f"Portfolio 90% CFaR: ${first['portfolio_cfar_90']:,.2f}\n")
                f.write(f"Portfolio 95% CFaR: ${first['portfolio_cfar_95']:,.2f}\n")
                f.write("\n")

                f.write("Assets:\n")
                for _, row in run_df.iterrows():
                    f.write(f"  {row['asset_name']}: "
                            f"E[profit]=${row['expected_profit']:,.2f}, "
                            f"CFaR90=${row['cfar_90']:,.2f}, "
                            f"CFaR95=${row['cfar_95']:,.2f}, "
                            f"run {row['pct_run'] * 100:.1f}% of hours\n")
                f.write("\n")

        print(f"✓ Summary report written to {output_path}")

    def get_portfolio_summary(
            self,
            run_ids: Optional[List[int]] = None
    ) -> pd.DataFrame:
        """Get portfolio-level results, one row per run"""
        query = """
            SELECT
                r.run_id,
                r.run_timestamp,
                r.start_date,
                r.end_date,
                r.n_trials,
                r.n_excluded,
                COUNT(ar.result_id) AS num_assets,
                p.expected_profit,
                p.cfar_90,
                p.cfar_95,
                SUM(ar.expected_profit) AS sum_asset_expected_profit,
                SUM(ar.cfar_95) AS sum_asset_cfar_95
            FROM simulation_runs r
            JOIN portfolio_results p ON p.run_id = r.run_id
            LEFT JOIN asset_results ar ON ar.run_id = r.run_id
        """
        params = []

        if run_ids:
            placeholders = ','.join('?' * len(run_ids))
            query += f" WHERE r.run_id IN ({placeholders})"
            params.extend(run_ids)

        query += " GROUP BY r.run_id ORDER BY r.run_id"

        return pd.read_sql_query(query, self.conn, params=params)

    def _get_results(
            self,
            run_ids: Optional[List[int]] = None,
            min_timestamp: Optional[str] = None
    ) -> pd.DataFrame:
        """Internal method to fetch results with filters"""
        query = "SELECT * FROM run_summary WHERE 1=1"
        params = []

        if run_ids:
            placeholders = ','.join('?' * len(run_ids))
            query += f" AND run_id IN ({placeholders})"
            params.extend(run_ids)

        if min_timestamp:
            query += " AND run_timestamp >= ?"
            params.append(min_timestamp)

        query += " ORDER BY run_id, asset_name"

        return pd.read_sql_query(query, self.conn, params=params)

    def _format_excel_sheet(self, writer, sheet_name: str):
        """Apply basic formatting to Excel worksheet"""
        worksheet = writer.sheets[sheet_name]

        # Auto-adjust column widths
        for column in worksheet.columns:
            column_letter = column[0].column_letter
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)

            adjusted_width = min(max_length + 2, 50)
            worksheet.column_dimensions[column_letter].width = adjusted_width
