"""
Result aggregator: reduces a trial population to SimulationSummary.

Everything here is commutative over trials (sorts, sums, counts), so the
order in which trials finished does not matter. Percentiles are exact
nearest-rank values over a full sort of terminal equity in cents.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import pandas as pd

from risk_lab.core.contracts import SimulationConfig, SimulationSummary
from risk_lab.core.exceptions import SimulationInvariantError
from risk_lab.engine._cents import percent_of
from risk_lab.engine.stats import distribution, nearest_rank, sharpe, sortino
from risk_lab.engine.trial import TrialResult

logger = logging.getLogger(__name__)

EQUITY_PERCENTILES = (5, 25, 50, 75, 95)


class ResultAggregator:
    """Stateless reducer over ``TrialResult`` collections."""

    def aggregate(
        self,
        results: Sequence[TrialResult],
        config: SimulationConfig | None = None,
        ruin_threshold_percent: float = 50.0,
    ) -> SimulationSummary:
        """
        Args:
            results: Trials of one run, in any order
            config: When given, implied expectancy is derived from it
            ruin_threshold_percent: Drawdown from the starting balance that
                counts as threshold ruin

        Returns:
            SimulationSummary, or ``SimulationSummary.no_data()`` when empty
        """
        if not results:
            return SimulationSummary.no_data()

        starts = {r.starting_balance_cents for r in results}
        if len(starts) != 1:
            raise SimulationInvariantError(
                f"Trials disagree on starting balance: {sorted(starts)}"
            )
        start = starts.pop()
        n = len(results)

        terminal = np.sort(np.array([r.terminal_equity_cents for r in results], dtype=np.int64))
        pnl = terminal - start
        min_equity = np.array([r.min_equity_cents for r in results], dtype=np.int64)
        dd_cents = np.array([r.max_drawdown_cents for r in results], dtype=np.int64)
        dd_pct = np.sort(np.array([r.max_drawdown_pct for r in results], dtype=np.float64))
        returns = pnl / start * 100

        ruin_floor = start - percent_of(start, ruin_threshold_percent)
        total_days = sum(r.trading_day_count for r in results)
        total_trades = sum(r.trade_count for r in results)
        total_pnl = int(pnl.sum())

        implied_r = implied_cents = None
        if config is not None:
            implied_r, implied_cents = implied_expectancy(config)

        summary = SimulationSummary(
            has_data=True,
            trial_count=n,
            starting_balance_cents=start,
            equity_percentiles={
                p: int(nearest_rank(terminal, p)) for p in EQUITY_PERCENTILES
            },
            mean_terminal_equity_cents=float(terminal.mean()),
            median_terminal_pnl_cents=float(np.median(pnl)),
            mean_terminal_pnl_cents=float(pnl.mean()),
            ruin_probability=int(np.count_nonzero(terminal < start)) / n,
            ruin_threshold_percent=ruin_threshold_percent,
            threshold_ruin_probability=int(np.count_nonzero(min_equity <= ruin_floor)) / n,
            mean_max_drawdown_cents=float(dd_cents.mean()),
            median_max_drawdown_cents=float(np.median(dd_cents)),
            mean_max_drawdown_pct=float(dd_pct.mean()),
            median_max_drawdown_pct=float(np.median(dd_pct)),
            worst_max_drawdown_pct=float(nearest_rank(dd_pct, 95)),
            profitable_pct=int(np.count_nonzero(pnl > 0)) / n * 100,
            monthly_limit_hit_pct=sum(1 for r in results if r.monthly_limit_hits) / n * 100,
            avg_trading_days=total_days / n,
            avg_trades=total_trades / n,
            avg_days_in_loss_recovery=_mean(results, "days_in_loss_recovery"),
            avg_days_in_gain_compounding=_mean(results, "days_in_gain_compounding"),
            avg_days_target_hit=_mean(results, "days_target_hit"),
            avg_days_skipped_weekly_limit=_mean(results, "days_skipped_weekly_limit"),
            avg_days_skipped_monthly_limit=_mean(results, "days_skipped_monthly_limit"),
            avg_days_skipped_depleted=_mean(results, "days_skipped_depleted"),
            sharpe_ratio=sharpe(returns),
            sortino_ratio=sortino(returns),
            expected_daily_pnl_cents=total_pnl / total_days if total_days else 0.0,
            realized_expectancy_cents=total_pnl / total_trades if total_trades else 0.0,
            implied_expectancy_r=implied_r,
            implied_expectancy_cents=implied_cents,
            distribution=distribution(pnl),
        )

        logger.info(
            "Aggregated %d trials: P50=%d ruin=%.2f%% profitable=%.1f%% median DD=%.1f%%",
            n,
            summary.equity_percentiles[50],
            summary.ruin_probability * 100,
            summary.profitable_pct,
            summary.median_max_drawdown_pct,
        )
        return summary

    @staticmethod
    def to_frame(results: Sequence[TrialResult]) -> pd.DataFrame:
        """One row per trial with every scalar field, sorted by trial index."""
        rows = []
        for r in results:
            rows.append(
                {
                    "trial_index": r.trial_index,
                    "starting_balance_cents": r.starting_balance_cents,
                    "terminal_equity_cents": r.terminal_equity_cents,
                    "total_pnl_cents": r.total_pnl_cents,
                    "total_return_pct": r.total_return_pct,
                    "peak_equity_cents": r.peak_equity_cents,
                    "min_equity_cents": r.min_equity_cents,
                    "max_drawdown_cents": r.max_drawdown_cents,
                    "max_drawdown_pct": r.max_drawdown_pct,
                    "trade_count": r.trade_count,
                    "win_count": r.win_count,
                    "loss_count": r.loss_count,
                    "breakeven_count": r.breakeven_count,
                    "max_losing_streak": r.max_losing_streak,
                    "trading_day_count": r.trading_day_count,
                    "days_in_loss_recovery": r.days_in_loss_recovery,
                    "days_in_gain_compounding": r.days_in_gain_compounding,
                    "days_target_hit": r.days_target_hit,
                    "days_skipped_weekly_limit": r.days_skipped_weekly_limit,
                    "days_skipped_monthly_limit": r.days_skipped_monthly_limit,
                    "days_skipped_depleted": r.days_skipped_depleted,
                    "weekly_limit_hits": r.weekly_limit_hits,
                    "monthly_limit_hits": r.monthly_limit_hits,
                }
            )
        df = pd.DataFrame(rows)
        if df.empty:
            return df
        return df.sort_values("trial_index").reset_index(drop=True)

    @staticmethod
    def equity_curves(results: Sequence[TrialResult], limit: int) -> list[list[int]]:
        """End-of-day equity curves of the first ``limit`` trials by index."""
        ordered = sorted(results, key=lambda r: r.trial_index)
        return [r.equity_curve() for r in ordered[: max(limit, 0)]]

    @staticmethod
    def median_trial(results: Sequence[TrialResult]) -> TrialResult | None:
        """Trial at the middle rank of total PnL (upper middle for even counts)."""
        if not results:
            return None
        ranked = sorted(results, key=lambda r: (r.total_pnl_cents, r.trial_index))
        return ranked[len(ranked) // 2]


def implied_expectancy(config: SimulationConfig) -> tuple[float, float]:
    """Per-trade expectancy at base risk, in R and in cents.

    R:     win% * rr - loss%
    cents: win% * (rr * base - c) - loss% * (base + c) - be% * c
    """
    w = config.win_rate / 100
    b = config.breakeven_rate / 100
    lo = config.loss_rate / 100
    base = config.base_risk_cents
    c = config.commission_per_trade_cents
    rr = config.reward_risk_ratio
    r_expectancy = w * rr - lo
    cents_expectancy = w * (rr * base - c) - lo * (base + c) - b * c
    return r_expectancy, cents_expectancy


def _mean(results: Sequence[TrialResult], attr: str) -> float:
    return sum(getattr(r, attr) for r in results) / len(results)
