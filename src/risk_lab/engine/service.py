"""
Simulation service: the one in-process entry point.

    report = run_simulation(profile, overrides, SimulationRequest(simulation_count=10_000))

Validates the request against the configured budget, then dispatches:

- simple:   R-multiple edge simulation, profile rules ignored
- advanced: compile -> run trials -> aggregate, plus a bounded sample of
            equity curves and the median trial's daily PnL
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from risk_lab.core.config import Settings, load_settings
from risk_lab.core.contracts import (
    RiskManagementProfile,
    SimulationConfig,
    SimulationOverrides,
    SimulationReport,
    SimulationRequest,
)
from risk_lab.core.enums import RunStatus, SimulationMode
from risk_lab.core.exceptions import ConfigurationError, SimulationBudgetError
from risk_lab.core.logging import get_engine_logger
from risk_lab.engine.aggregator import ResultAggregator
from risk_lab.engine.compiler import ProfileCompiler
from risk_lab.engine.edge import simulate_edge_expectancy
from risk_lab.engine.runner import (
    CancellationToken,
    ProgressCallback,
    SeedPolicy,
    SimulationRunner,
)

logger = get_engine_logger("service")


def check_budget(request: SimulationRequest, settings: Settings) -> None:
    """Raise SimulationBudgetError when the request exceeds configured limits."""
    limits = settings.limits
    if request.simulation_count > limits.max_simulation_count:
        raise SimulationBudgetError(
            "simulation_count", request.simulation_count, limits.max_simulation_count
        )
    if request.mode == SimulationMode.SIMPLE:
        iterations = request.simulation_count * request.number_of_trades
        if iterations > limits.simple_iteration_cap:
            raise SimulationBudgetError(
                "iterations",
                iterations,
                limits.simple_iteration_cap,
                f"simple mode: {request.simulation_count} runs x "
                f"{request.number_of_trades} trades",
            )
    elif request.months_to_trade > limits.max_months_to_trade:
        raise SimulationBudgetError(
            "months_to_trade", request.months_to_trade, limits.max_months_to_trade
        )


def run_simulation(
    profile: RiskManagementProfile | Mapping[str, Any],
    overrides: SimulationOverrides | Mapping[str, Any],
    request: SimulationRequest | Mapping[str, Any],
    settings: Settings | None = None,
    cancel_token: CancellationToken | None = None,
    progress_callback: ProgressCallback | None = None,
) -> SimulationReport:
    """
    Run one simulation request end to end.

    Raises:
        ConfigurationError: invalid profile, overrides or request
        SimulationBudgetError: request exceeds settings.limits
    """
    if settings is None:
        settings = load_settings()
    if not isinstance(request, SimulationRequest):
        try:
            request = SimulationRequest.model_validate(request)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid simulation request: {exc}") from exc

    check_budget(request, settings)
    compiler = ProfileCompiler(settings.simulation)
    config = compiler.compile(profile, overrides)

    if request.mode == SimulationMode.SIMPLE:
        return _run_simple(config, request)
    return _run_advanced(config, request, settings, cancel_token, progress_callback)


def _run_simple(config: SimulationConfig, request: SimulationRequest) -> SimulationReport:
    seed = SeedPolicy(request.seed).resolve()
    commission_impact_r = config.commission_per_trade_cents / config.base_risk_cents * 100
    logger.info(
        "Simple mode for %r: %d runs x %d trades (commission %.2f%% of 1R)",
        config.name,
        request.simulation_count,
        request.number_of_trades,
        commission_impact_r,
    )
    edge = simulate_edge_expectancy(
        win_rate=config.win_rate,
        reward_risk_ratio=config.reward_risk_ratio,
        number_of_trades=request.number_of_trades,
        commission_impact_r=commission_impact_r,
        simulation_count=request.simulation_count,
        rng_seed=seed,
    )
    return SimulationReport(
        status=RunStatus.COMPLETED,
        mode=SimulationMode.SIMPLE,
        master_entropy=seed,
        requested_count=request.simulation_count,
        completed_count=request.simulation_count,
        edge=edge,
    )


def _run_advanced(
    config: SimulationConfig,
    request: SimulationRequest,
    settings: Settings,
    cancel_token: CancellationToken | None,
    progress_callback: ProgressCallback | None,
) -> SimulationReport:
    defaults = settings.simulation
    runner = SimulationRunner(
        batch_size=defaults.batch_size,
        max_workers=defaults.max_workers,
        block_size=defaults.uniform_block_size,
    )
    run = runner.run(
        config,
        simulation_count=request.simulation_count,
        months_to_trade=request.months_to_trade,
        seed_policy=SeedPolicy(request.seed),
        cancel_token=cancel_token,
        progress_callback=progress_callback,
    )

    aggregator = ResultAggregator()
    summary = aggregator.aggregate(
        run.results,
        config=config,
        ruin_threshold_percent=defaults.ruin_threshold_percent,
    )

    curves: list[list[int]] = []
    if request.include_equity_curves:
        limit = request.sample_curve_limit
        if limit is None:
            limit = defaults.sample_curve_limit
        curves = aggregator.equity_curves(run.results, limit)

    median = aggregator.median_trial(run.results)
    return SimulationReport(
        status=run.status,
        mode=SimulationMode.ADVANCED,
        master_entropy=run.master_entropy,
        requested_count=run.requested_count,
        completed_count=run.completed_count,
        summary=summary,
        equity_curves=curves,
        median_trial_daily_pnl=list(median.daily_pnl_cents) if median else [],
    )
