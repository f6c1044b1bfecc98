#!/usr/bin/env python3
"""
Run a Monte Carlo risk simulation for one of the profile templates.

Loads config/settings.yaml and config/risk_profiles.yaml, runs the request
and prints the headline statistics.

Usage:
    python scripts/run_simulation.py --template r_multiples --win-rate 55 --rr 1.5
    python scripts/run_simulation.py --template fixed_ratio --mode simple --trades 200
    python scripts/run_simulation.py --template institutional --seed 42 --csv trials.csv
"""

from __future__ import annotations

import argparse
import sys

from risk_lab.core.config import load_settings
from risk_lab.core.contracts import SimulationOverrides, SimulationRequest
from risk_lab.core.enums import SimulationMode
from risk_lab.core.exceptions import RiskLabError
from risk_lab.core.logging import setup_logging
from risk_lab.engine.aggregator import ResultAggregator
from risk_lab.engine.compiler import ProfileCompiler
from risk_lab.engine.runner import SeedPolicy, SimulationRunner
from risk_lab.engine.service import run_simulation


def _money(cents: float | None) -> str:
    if cents is None:
        return "-"
    return f"{cents / 100:,.2f}"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--template", default="r_multiples", help="Profile template id")
    parser.add_argument("--win-rate", type=float, default=50.0, help="Win rate %%")
    parser.add_argument("--rr", type=float, default=2.0, help="Reward:risk ratio")
    parser.add_argument("--breakeven", type=float, default=0.0, help="Breakeven rate %%")
    parser.add_argument("--commission", type=int, default=0, help="Commission per trade, cents")
    parser.add_argument("--simulations", type=int, default=1000)
    parser.add_argument("--months", type=int, default=1)
    parser.add_argument("--trades", type=int, default=100, help="Trades per run (simple mode)")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--mode",
        choices=[m.value for m in SimulationMode],
        default=SimulationMode.ADVANCED.value,
    )
    parser.add_argument("--workers", type=int, default=None, help="Worker processes")
    parser.add_argument("--csv", default=None, help="Write the per-trial table here")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    setup_logging(args.log_level or settings.log_level, settings.component_log_levels)

    if args.template not in settings.profiles:
        print(f"Unknown template {args.template!r}. Available: {sorted(settings.profiles)}")
        return 2
    if args.workers:
        settings = settings.model_copy(
            update={
                "simulation": settings.simulation.model_copy(
                    update={"max_workers": args.workers}
                )
            }
        )

    profile = settings.profiles[args.template]
    overrides = SimulationOverrides(
        win_rate=args.win_rate,
        reward_risk_ratio=args.rr,
        breakeven_rate=args.breakeven,
        commission_per_trade_cents=args.commission,
    )
    request = SimulationRequest(
        simulation_count=args.simulations,
        months_to_trade=args.months,
        mode=SimulationMode(args.mode),
        seed=args.seed,
        number_of_trades=args.trades,
    )

    try:
        report = run_simulation(profile, overrides, request, settings=settings)
    except RiskLabError as exc:
        print(f"Simulation rejected: {exc}")
        return 1

    print("=" * 70)
    print(f"  {profile.name} ({report.mode.value} mode)")
    print("=" * 70)
    print(f"  Status: {report.status.value} ({report.completed_count}/{report.requested_count})")
    print(f"  Seed entropy: {report.master_entropy}")
    print()

    if report.edge is not None:
        edge = report.edge
        print(f"  Median final R:     {edge.median_final_r:+.2f}")
        print(f"  5th / 95th pct R:   {edge.worst_case_final_r:+.2f} / {edge.best_case_final_r:+.2f}")
        print(f"  Median max DD (R):  {edge.median_max_r_drawdown:.2f}")
        print(f"  Profitable runs:    {edge.profitable_pct:.1f}%")
        print(f"  E[R] per trade:     {edge.expected_r_per_trade:+.3f}")
        print(f"  Profit factor:      {edge.profit_factor:.2f}")
        print(f"  Kelly full/half/q:  {edge.kelly_full:.1f}% / {edge.kelly_half:.1f}% / {edge.kelly_quarter:.1f}%")
        print(f"  {edge.kelly_recommendation}")
    elif report.summary is not None and report.summary.has_data:
        s = report.summary
        for p, cents in s.equity_percentiles.items():
            print(f"  P{p:<2} terminal equity: {_money(cents):>16}")
        print(f"  Ruin probability:      {s.ruin_probability:.2%}")
        print(
            f"  P(DD >= {s.ruin_threshold_percent:.0f}% of start): "
            f"{s.threshold_ruin_probability:.2%}"
        )
        print(f"  Median max drawdown:   {s.median_max_drawdown_pct:.1f}%")
        print(f"  Profitable trials:     {s.profitable_pct:.1f}%")
        print(f"  Monthly limit hit:     {s.monthly_limit_hit_pct:.1f}%")
        print(f"  Avg trades / days:     {s.avg_trades:.1f} / {s.avg_trading_days:.1f}")
        print(f"  Expected daily PnL:    {_money(s.expected_daily_pnl_cents)}")
        print(f"  Implied expectancy:    {s.implied_expectancy_r:+.3f}R")
        print(f"  Sharpe / Sortino:      {s.sharpe_ratio:.2f} / {s.sortino_ratio:.2f}")
    else:
        print("  No trials completed.")

    if args.csv and report.mode == SimulationMode.ADVANCED:
        # The report carries aggregates only; rerun the same seed for the table.
        config = ProfileCompiler(settings.simulation).compile(profile, overrides)
        runner = SimulationRunner(
            batch_size=settings.simulation.batch_size,
            max_workers=settings.simulation.max_workers,
            block_size=settings.simulation.uniform_block_size,
        )
        run = runner.run(
            config,
            args.simulations,
            args.months,
            seed_policy=SeedPolicy(report.master_entropy),
        )
        ResultAggregator.to_frame(run.results).to_csv(args.csv, index=False)
        print()
        print(f"  Per-trial table written to {args.csv}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
