from dataclasses import dataclass, asdict
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from custom_types.errors import DimensionMismatch
from custom_types.types import ArrayLike, FloatArray, as_1d
from inputs.assets import Asset

CFAR_LEVELS = (0.90, 0.95)


def cash_flow_at_risk(earnings: ArrayLike, confidence: float) -> float:
    """
    Expected profit minus the (1 - confidence) percentile of the profit distribution.

    Percentiles use midpoint (Hazen) interpolation between order statistics.
    """
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")

    x = as_1d(earnings)
    if len(x) == 0:
        raise DimensionMismatch("Cannot compute CFaR of an empty distribution")

    lower = np.percentile(x, (1.0 - confidence) * 100.0, method='hazen')
    return float(x.mean() - lower)


def risk_metrics(earnings: ArrayLike) -> Tuple[float, float, float]:
    """(expected profit, CFaR 90%, CFaR 95%) of a profit sample."""
    x = as_1d(earnings)
    return (
        float(x.mean()),
        cash_flow_at_risk(x, CFAR_LEVELS[0]),
        cash_flow_at_risk(x, CFAR_LEVELS[1]),
    )


@dataclass(frozen=True)
class AssetRiskSummary:
    asset: Asset
    expected_profit: float
    cfar_90: float
    cfar_95: float
    operating_days: float       # mean over trials
    pct_run: float              # mean fraction of hours run
    avg_hours: float            # mean hours per operating day (trials with none ignored)
    n_trials: int               # trials included in the statistics
    n_excluded: int = 0


@dataclass(frozen=True)
class PortfolioRiskSummary:
    expected_profit: float
    cfar_90: float
    cfar_95: float
    n_trials: int
    n_excluded: int = 0


def summarize_asset(
        asset: Asset,
        earnings: FloatArray,
        operating_days: FloatArray,
        pct_run: FloatArray,
        avg_hours: FloatArray,
        n_excluded: int = 0
) -> AssetRiskSummary:
    expected, cfar_90, cfar_95 = risk_metrics(earnings)

    # all-NaN only when no trial ever ran the plant
    avg = float(np.nanmean(avg_hours)) if np.any(np.isfinite(avg_hours)) else float('nan')

    return AssetRiskSummary(
        asset=asset,
        expected_profit=expected,
        cfar_90=cfar_90,
        cfar_95=cfar_95,
        operating_days=float(np.mean(operating_days)),
        pct_run=float(np.mean(pct_run)),
        avg_hours=avg,
        n_trials=len(earnings),
        n_excluded=n_excluded
    )


def summarize_portfolio(earnings: FloatArray, n_excluded: int = 0) -> PortfolioRiskSummary:
    """
    Risk of the whole portfolio.

    Args:
        earnings: Per-asset profits, shape (n_assets, n_trials). Assets are
            summed trial by trial before taking percentiles, so
            diversification between plants is kept.
    """
    earnings = np.atleast_2d(np.asarray(earnings, dtype=np.float64))
    total = earnings.sum(axis=0)
    expected, cfar_90, cfar_95 = risk_metrics(total)

    return PortfolioRiskSummary(
        expected_profit=expected,
        cfar_90=cfar_90,
        cfar_95=cfar_95,
        n_trials=len(total),
        n_excluded=n_excluded
    )


def summary_frame(asset_summary: Sequence[AssetRiskSummary]) -> pd.DataFrame:
    """One row per asset, asset fields flattened into columns."""
    rows = []
    for s in asset_summary:
        row = {'asset': s.asset.label, **asdict(s.asset)}
        row.update({k: v for k, v in asdict(s).items() if k != 'asset'})
        rows.append(row)
    return pd.DataFrame(rows)
