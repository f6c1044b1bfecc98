"""
Edge expectancy: the "simple" simulation mode.

Ignores the risk-management profile entirely: every trade risks 1R, wins
pay the reward:risk ratio and losses cost 1R, both net of commission. The
point is to show whether the raw edge survives variance before any
recovery or compounding rules are layered on top.

Implements:
- Vectorized R-multiple Monte Carlo (one row per run, one column per trade)
- Kelly criterion: f* = W - (1 - W) / R, with half and quarter sizing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from risk_lab.core.contracts import EdgeSummary
from risk_lab.core.enums import KellyLevel
from risk_lab.engine.stats import (
    distribution,
    nearest_rank,
    sharpe,
    sortino,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KellySizing:
    full: float
    half: float
    quarter: float
    level: KellyLevel
    recommendation: str


def kelly_criterion(win_rate: float, reward_risk_ratio: float) -> KellySizing:
    """Compute Kelly sizing as a percentage of capital.

    Kelly formula: f* = W - (1 - W) / R
    where W = win rate (0 to 1), R = reward:risk ratio

    Args:
        win_rate: Win rate in percent (0 to 100)
        reward_risk_ratio: Average win / average loss

    Returns:
        KellySizing. Negative edges are floored at 0%.
    """
    w = win_rate / 100
    if reward_risk_ratio <= 0:
        raw = 0.0
    else:
        raw = w - (1 - w) / reward_risk_ratio
    full = max(0.0, raw) * 100

    if full <= 0:
        level = KellyLevel.CONSERVATIVE
        recommendation = "Negative edge - do not trade this strategy"
    elif full > 25:
        level = KellyLevel.AGGRESSIVE
        recommendation = "High potential but risky - use Quarter Kelly"
    elif full > 15:
        level = KellyLevel.BALANCED
        recommendation = "Reasonable Kelly - consider Half Kelly for growth"
    else:
        level = KellyLevel.CONSERVATIVE
        recommendation = "Conservative Kelly - Quarter Kelly recommended for stability"

    return KellySizing(
        full=full,
        half=full / 2,
        quarter=full / 4,
        level=level,
        recommendation=recommendation,
    )


def _max_streaks(wins: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Longest win and loss run per row of a boolean (runs x trades) matrix."""
    n_runs = wins.shape[0]
    win_run = np.zeros(n_runs, dtype=np.int64)
    loss_run = np.zeros(n_runs, dtype=np.int64)
    max_win = np.zeros(n_runs, dtype=np.int64)
    max_loss = np.zeros(n_runs, dtype=np.int64)
    for col in wins.T:
        win_run = np.where(col, win_run + 1, 0)
        loss_run = np.where(col, 0, loss_run + 1)
        np.maximum(max_win, win_run, out=max_win)
        np.maximum(max_loss, loss_run, out=max_loss)
    return max_win, max_loss


def simulate_edge_expectancy(
    win_rate: float,
    reward_risk_ratio: float,
    number_of_trades: int,
    commission_impact_r: float = 0.0,
    simulation_count: int = 1000,
    rng_seed: int | np.random.SeedSequence | None = None,
) -> EdgeSummary:
    """
    Run an R-multiple Monte Carlo of independent trades.

    Args:
        win_rate: % of trades that win (0 to 100)
        reward_risk_ratio: R earned by a win
        number_of_trades: Trades per run
        commission_impact_r: Commission per trade as % of 1R
        simulation_count: Number of runs
        rng_seed: Optional seed for reproducibility

    Returns:
        EdgeSummary in R-multiples
    """
    if number_of_trades <= 0 or simulation_count <= 0:
        raise ValueError("number_of_trades and simulation_count must be positive")

    rng = np.random.default_rng(rng_seed)
    c = commission_impact_r / 100

    # Each row is a run, each column is a trade
    wins = rng.random((simulation_count, number_of_trades)) * 100 < win_rate
    r_matrix = np.where(wins, reward_risk_ratio - c, -1.0 - c)

    cum_r = np.cumsum(r_matrix, axis=1)
    # Peak starts at 0R, before the first trade
    running_peak = np.maximum.accumulate(np.maximum(cum_r, 0.0), axis=1)
    max_dd = np.sort(np.max(running_peak - cum_r, axis=1))
    final_r = np.sort(cum_r[:, -1])

    flat = r_matrix.ravel()
    gross_win = float(flat[flat > 0].sum())
    gross_loss = float(-flat[flat < 0].sum())
    if gross_loss > 0:
        profit_factor = gross_win / gross_loss
    else:
        profit_factor = float("inf") if gross_win > 0 else 0.0

    max_win_streak, max_loss_streak = _max_streaks(wins)
    kelly = kelly_criterion(win_rate, reward_risk_ratio)

    summary = EdgeSummary(
        simulation_count=simulation_count,
        number_of_trades=number_of_trades,
        median_final_r=float(np.median(final_r)),
        mean_final_r=float(final_r.mean()),
        best_case_final_r=float(nearest_rank(final_r, 95)),
        worst_case_final_r=float(nearest_rank(final_r, 5)),
        median_max_r_drawdown=float(np.median(max_dd)),
        mean_max_r_drawdown=float(max_dd.mean()),
        worst_max_r_drawdown=float(nearest_rank(max_dd, 95)),
        profitable_pct=int(np.count_nonzero(final_r > 0)) / simulation_count * 100,
        sharpe_ratio=sharpe(flat),
        sortino_ratio=sortino(flat),
        expected_r_per_trade=float(flat.mean()),
        expected_max_win_streak=float(max_win_streak.mean()),
        expected_max_loss_streak=float(max_loss_streak.mean()),
        profit_factor=profit_factor,
        kelly_full=kelly.full,
        kelly_half=kelly.half,
        kelly_quarter=kelly.quarter,
        kelly_level=kelly.level,
        kelly_recommendation=kelly.recommendation,
        distribution=distribution(final_r),
    )
    logger.info(
        "Edge simulation: %d runs x %d trades, median %.2fR, E[R]=%.3f, Kelly %.1f%%",
        simulation_count,
        number_of_trades,
        summary.median_final_r,
        summary.expected_r_per_trade,
        kelly.full,
    )
    return summary
