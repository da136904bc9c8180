import logging

import numpy as np
import pandas as pd
import pytest

from custom_types.errors import (
    DataFetchFailure,
    DimensionMismatch,
    InvalidAssetSpec,
    InvalidModelParameters,
    NumericAnomaly,
    SimulationCancelled,
)
from inputs.assets import Asset
from portfolio.backtest import backtest_portfolio
from portfolio.engine import SimulationSettings, batch_bounds
from portfolio.risk import cash_flow_at_risk, risk_metrics, summarize_portfolio, summary_frame

START, END = "2010-06-01", "2010-06-14"


class TestRiskMetrics:

    def test_hazen_percentiles(self):
        earnings = np.arange(1.0, 11.0)
        expected, cfar_90, cfar_95 = risk_metrics(earnings)

        assert expected == pytest.approx(5.5)
        assert cfar_90 == pytest.approx(5.5 - 1.5)
        assert cfar_95 == pytest.approx(5.5 - 1.0)

    def test_degenerate_distribution(self):
        assert cash_flow_at_risk(np.full(50, 7.0), 0.95) == pytest.approx(0.0)

    def test_empty_and_bad_confidence(self):
        with pytest.raises(DimensionMismatch):
            cash_flow_at_risk(np.array([]), 0.95)
        with pytest.raises(ValueError):
            cash_flow_at_risk(np.arange(5.0), 1.5)

    def test_portfolio_diversification(self):
        """Offsetting assets have zero combined risk even though each is risky"""
        a = np.random.default_rng(0).normal(100.0, 30.0, 1000)
        b = 200.0 - a
        portfolio = summarize_portfolio(np.vstack([a, b]))

        assert portfolio.expected_profit == pytest.approx(200.0)
        assert portfolio.cfar_95 == pytest.approx(0.0, abs=1e-9)
        assert cash_flow_at_risk(a, 0.95) + cash_flow_at_risk(b, 0.95) > 50.0

    def test_independent_assets_diversify(self):
        """Independent earnings: portfolio CFaR below the sum, expected profit additive"""
        rng = np.random.default_rng(7)
        a = rng.normal(100.0, 30.0, 5000)
        b = rng.normal(50.0, 20.0, 5000)
        portfolio = summarize_portfolio(np.vstack([a, b]))

        summed = cash_flow_at_risk(a, 0.95) + cash_flow_at_risk(b, 0.95)
        print(f"Portfolio CFaR95: {portfolio.cfar_95:.2f}, sum of assets: {summed:.2f}")

        assert portfolio.expected_profit == pytest.approx(a.mean() + b.mean())
        assert 0.0 < portfolio.cfar_95 < summed
        # independent normals: sqrt(30^2 + 20^2) against 30 + 20
        assert portfolio.cfar_95 / summed == pytest.approx(np.sqrt(1300.0) / 50.0, rel=0.1)


class TestPortfolioSimulationEngine:
    """Joint simulation, dispatch and aggregation on toy models"""

    def test_basic_run(self, make_engine, toy_assets):
        engine = make_engine(SimulationSettings(batch_size=8, seed=42))
        run = engine.run(toy_assets, START, END, n_trials=20)

        p = run.portfolio_summary
        print(f"Portfolio E[profit]: {p.expected_profit:,.2f}, "
              f"CFaR90: {p.cfar_90:,.2f}, CFaR95: {p.cfar_95:,.2f}")

        assert run.earnings.shape == (2, 20)
        assert np.all(np.isfinite(run.earnings))
        assert np.all(run.earnings >= 0.0)
        assert p.n_trials == 20 and p.n_excluded == 0
        assert len(run.dates) == 14 * 24

        for s in run.asset_summary:
            assert s.cfar_95 >= s.cfar_90 >= 0.0
            assert 0.0 <= s.pct_run <= 1.0
            assert 0.0 <= s.operating_days <= 14

    def test_portfolio_aggregates_per_trial(self, make_engine, toy_assets):
        run = make_engine(SimulationSettings(batch_size=10, seed=1)).run(toy_assets, START, END, 15)

        total = run.earnings.sum(axis=0)
        np.testing.assert_allclose(run.portfolio_earnings, total)
        assert run.portfolio_summary.expected_profit == pytest.approx(
            sum(s.expected_profit for s in run.asset_summary)
        )
        assert run.portfolio_summary.cfar_95 == pytest.approx(cash_flow_at_risk(total, 0.95))

    def test_batch_size_invariance(self, make_engine, toy_assets):
        small = make_engine(SimulationSettings(batch_size=3, seed=7)).run(toy_assets, START, END, 10)
        large = make_engine(SimulationSettings(batch_size=100, seed=7)).run(toy_assets, START, END, 10)

        np.testing.assert_array_equal(small.earnings, large.earnings)
        np.testing.assert_array_equal(small.pct_run, large.pct_run)
        assert small.portfolio_summary == large.portfolio_summary

    def test_seed_changes_results(self, make_engine, toy_assets):
        a = make_engine(SimulationSettings(seed=1)).run(toy_assets, START, END, 8)
        b = make_engine(SimulationSettings(seed=2)).run(toy_assets, START, END, 8)
        assert not np.array_equal(a.earnings, b.earnings)

    def test_simulate_portfolio_returns_summaries(self, make_engine, toy_assets):
        asset_summary, portfolio_summary = make_engine().simulate_portfolio(toy_assets, START, END, 6)

        assert [s.asset.label for s in asset_summary] == ["CCGT_A", "Peaker_B"]
        assert portfolio_summary.n_trials == 6

        df = summary_frame(asset_summary)
        assert list(df['asset']) == ["CCGT_A", "Peaker_B"]
        assert {'capacity', 'expected_profit', 'cfar_95', 'avg_hours'} <= set(df.columns)

    def test_asset_rows_accepted(self, make_engine):
        asset_summary, _ = make_engine().simulate_portfolio([(100.0, 8500.0, 3.0, 12)], START, START, 4)
        assert asset_summary[0].asset.label == "Plant_100MW_HR8500"

    def test_simulate_scenario(self, make_engine):
        scenario = make_engine().simulate_scenario(START, "2010-06-03", 5)

        assert scenario.n_trials == 5
        assert scenario.elec.shape == (72, 5)
        assert scenario.gas_daily.shape == (3, 5)
        assert np.all(scenario.finite_trials())
        assert np.all(scenario.elec > 0.0)

    def test_gas_start_price(self, make_engine, toy_assets):
        cheap = make_engine(SimulationSettings(gas_start_price=2.0)).simulate_scenario(START, END, 4)
        dear = make_engine(SimulationSettings(gas_start_price=9.0)).simulate_scenario(START, END, 4)
        assert np.all(cheap.gas_daily[0] < dear.gas_daily[0])

    def test_anomalous_trials_excluded(self, make_engine, flaky_elec_model, toy_assets, caplog):
        engine = make_engine(elec_model=flaky_elec_model(bad_calls=(3,)))

        with caplog.at_level(logging.WARNING, logger="portfolio.engine"):
            run = engine.run(toy_assets, START, END, 10)

        assert run.excluded_trials.tolist() == [2]
        assert np.all(np.isnan(run.earnings[:, 2]))
        assert run.portfolio_summary.n_trials == 9
        assert run.portfolio_summary.n_excluded == 1
        assert run.asset_summary[0].n_excluded == 1
        assert "Excluding 1 trial" in caplog.text

    def test_anomaly_raise_policy(self, make_engine, flaky_elec_model, toy_assets):
        engine = make_engine(
            SimulationSettings(anomaly_policy='raise'),
            elec_model=flaky_elec_model(bad_calls=(3,))
        )
        with pytest.raises(NumericAnomaly) as info:
            engine.run(toy_assets, START, END, 10)
        assert info.value.trials == [2]

    def test_every_trial_anomalous(self, make_engine, flaky_elec_model, toy_assets):
        engine = make_engine(elec_model=flaky_elec_model(bad_calls=range(1, 100)))
        with pytest.raises(NumericAnomaly):
            engine.run(toy_assets, START, END, 4)

    def test_cancellation_between_batches(self, make_engine, toy_assets):
        polls = []

        def should_cancel():
            polls.append(1)
            return len(polls) > 1

        engine = make_engine(SimulationSettings(batch_size=2), should_cancel=should_cancel)
        with pytest.raises(SimulationCancelled):
            engine.run(toy_assets, START, END, 6)
        assert len(polls) == 2

    def test_progress_callback(self, make_engine, toy_assets):
        calls = []
        engine = make_engine(SimulationSettings(batch_size=5), progress=lambda step, f: calls.append((step, f)))
        engine.run(toy_assets, START, END, 10)

        fractions = [f for _, f in calls]
        print(f"Progress: {fractions}")
        assert fractions == pytest.approx([0.05, 0.05 + 0.85 * 0.5, 0.95, 1.0])
        assert calls[-1][0] == "Done"

    def test_failing_progress_callback_does_not_stop_run(self, make_engine, toy_assets, caplog):
        def progress(step, fraction):
            raise RuntimeError("display closed")

        with caplog.at_level(logging.WARNING, logger="portfolio.engine"):
            run = make_engine(progress=progress).run(toy_assets, START, END, 4)

        assert run.portfolio_summary.n_trials == 4
        assert "Progress callback failed" in caplog.text

    def test_validation_before_simulation(self, make_engine, toy_assets):
        calls = []
        engine = make_engine(progress=lambda step, f: calls.append(step))

        with pytest.raises(InvalidAssetSpec):
            engine.run([Asset(10.0, 8000.0, 1.0, 4), (10.0, -1.0, 1.0, 4)], START, END, 5)
        with pytest.raises(InvalidAssetSpec):
            engine.run([], START, END, 5)
        with pytest.raises(ValueError):
            engine.run(toy_assets, END, START, 5)
        with pytest.raises(ValueError):
            engine.run(toy_assets, START, END, 0)
        assert calls == []

    @pytest.mark.parametrize("kwargs, error", [
        (dict(batch_size=0), ValueError),
        (dict(anomaly_policy='ignore'), ValueError),
        (dict(gas_start_price=-3.0), InvalidModelParameters),
    ])
    def test_invalid_settings(self, kwargs, error):
        with pytest.raises(error):
            SimulationSettings(**kwargs)

    def test_batch_bounds(self):
        assert list(batch_bounds(7, 3)) == [(0, 3), (3, 6), (6, 7)]
        assert list(batch_bounds(2, 10)) == [(0, 2)]

    @pytest.mark.slow
    def test_larger_run_statistics(self, make_engine):
        """A more efficient plant with the same run constraint never earns less on any path"""
        assets = [
            Asset(100.0, 8500.0, 3.0, 6, name="Efficient"),
            Asset(100.0, 10500.0, 4.0, 6, name="Inefficient"),
        ]
        run = make_engine(SimulationSettings(batch_size=50, seed=3)).run(assets, "2010-07-01", "2010-07-31", 200)

        efficient, inefficient = run.asset_summary
        print(f"Efficient: {efficient.expected_profit:,.2f}, Inefficient: {inefficient.expected_profit:,.2f}")
        assert np.all(run.earnings[0] >= run.earnings[1])
        assert efficient.expected_profit > inefficient.expected_profit
        assert run.portfolio_summary.cfar_95 >= run.portfolio_summary.cfar_90 > 0.0


class TestBacktest:

    @staticmethod
    def flat_prices(start, end, elec=40.0, gas=3.0):
        ts = pd.date_range(start, end + pd.Timedelta(hours=23), freq="h")
        return pd.DataFrame({'ts': ts, 'elec_price': elec, 'gas_price': gas})

    def test_flat_prices(self, toy_assets):
        result = backtest_portfolio(toy_assets, "2010-01-01", "2010-01-03", self.flat_prices)

        # CCGT margin 40 - 8.5 * 3 - 3 = 11.5 every hour, peaker 40 - 31.5 - 4 = 4.5
        ccgt, peaker = result.results.to_dict('records')
        assert ccgt['profit'] == pytest.approx(11.5 * 24 * 3 * 100.0)
        assert peaker['profit'] == pytest.approx(4.5 * 24 * 3 * 50.0)
        assert ccgt['pct_run'] == pytest.approx(1.0)

        assert list(result.daily_cashflows.index) == list(pd.date_range("2010-01-01", periods=3, freq="D"))
        np.testing.assert_allclose(result.portfolio_cashflows, 11.5 * 24 * 100.0 + 4.5 * 24 * 50.0)

    def test_duplicate_labels_kept_apart(self):
        assets = [Asset(10.0, 8000.0, 1.0, 4), Asset(10.0, 8000.0, 1.0, 4)]
        result = backtest_portfolio(assets, "2010-01-01", "2010-01-01", self.flat_prices)
        assert result.daily_cashflows.shape == (1, 2)

    def test_fetch_errors_become_data_fetch_failure(self, toy_assets):
        def broken(start, end):
            raise ConnectionError("price server unavailable")

        with pytest.raises(DataFetchFailure) as info:
            backtest_portfolio(toy_assets, "2010-01-01", "2010-01-02", broken)
        assert isinstance(info.value.__cause__, ConnectionError)

    def test_missing_or_short_data(self, toy_assets):
        with pytest.raises(DataFetchFailure):
            backtest_portfolio(toy_assets, "2010-01-01", "2010-01-02",
                               lambda s, e: pd.DataFrame({'elec_price': [], 'gas_price': []}))
        with pytest.raises(DataFetchFailure):
            backtest_portfolio(toy_assets, "2010-01-01", "2010-01-02",
                               lambda s, e: self.flat_prices(s, e).drop(columns='gas_price'))
        with pytest.raises(DimensionMismatch):
            backtest_portfolio(toy_assets, "2010-01-01", "2010-01-03",
                               lambda s, e: self.flat_prices(s, s))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
