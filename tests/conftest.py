"""Shared test fixtures for the Risk Lab simulation engine."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from risk_lab.core.config import Settings, SimulationDefaults, SimulationLimits
from risk_lab.core.contracts import (
    RiskManagementProfile,
    SimulationConfig,
    SimulationOverrides,
)


class ScriptedStream:
    """Uniform source that replays a fixed list of draws."""

    def __init__(self, draws: list[float]) -> None:
        self._draws = list(draws)
        self.consumed = 0

    def random(self) -> float:
        if self.consumed >= len(self._draws):
            raise IndexError(f"Scripted stream exhausted after {self.consumed} draws")
        value = self._draws[self.consumed]
        self.consumed += 1
        return value


def scripted(config: SimulationConfig, outcomes: str) -> ScriptedStream:
    """Stream producing the given outcomes ("W", "L", "B") under ``config``'s rates.

    Each draw sits in the middle of its band, so the mapping does not depend
    on boundary handling.
    """
    be = config.breakeven_rate
    win = config.win_rate
    centers = {
        "B": be / 2,
        "W": be + win / 2,
        "L": be + win + config.loss_rate / 2,
    }
    widths = {"B": be, "W": win, "L": config.loss_rate}
    draws = []
    for code in outcomes:
        if widths[code] <= 0:
            raise ValueError(f"Outcome {code!r} has an empty band under this config")
        draws.append(centers[code] / 100)
    return ScriptedStream(draws)


# ─── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def make_config() -> Callable[..., SimulationConfig]:
    """Factory for a small flat config: base 1000c, 2R, 50% win, no ladder."""

    def _make(**overrides) -> SimulationConfig:
        fields = {
            "name": "test",
            "base_risk_cents": 1000,
            "reward_risk_ratio": 2.0,
            "win_rate": 50.0,
            "breakeven_rate": 0.0,
            "daily_loss_limit_cents": 100_000,
            "monthly_loss_limit_cents": 10_000_000,
            "starting_balance_cents": 100_000,
        }
        fields.update(overrides)
        return SimulationConfig(**fields)

    return _make


@pytest.fixture
def script() -> Callable[[SimulationConfig, str], ScriptedStream]:
    """``script(config, "WLLB")`` -> stream replaying those outcomes."""
    return scripted


@pytest.fixture
def journal_profile() -> dict:
    """A profile exactly as the journal stores it (camelCase JSON)."""
    return {
        "name": "Journal R-Multiples",
        "baseTrade": {"riskCents": 50000, "maxContracts": 2},
        "lossRecovery": {
            "sequence": [
                {"riskCalculation": {"type": "percentOfBase", "percent": 100}},
                {"riskCalculation": {"type": "sameAsPrevious"}},
                {"riskCalculation": {"type": "percentOfBase", "percent": 75}},
            ],
            "executeAllRegardless": False,
            "stopAfterSequence": False,
        },
        "gainMode": {"type": "singleTarget", "dailyTargetCents": 200000},
        "dailyLossCents": 150000,
        "weeklyLossCents": 250000,
        "monthlyLossCents": 500000,
    }


@pytest.fixture
def simple_profile() -> RiskManagementProfile:
    """Base 1000c, one half-size recovery step, generous limits."""
    return RiskManagementProfile.model_validate(
        {
            "name": "Simple",
            "base_trade": {"risk_cents": 1000},
            "loss_recovery": {
                "sequence": [
                    {"risk_calculation": {"type": "percentOfBase", "percent": 50}}
                ],
            },
            "daily_loss_cents": 3000,
            "daily_profit_target_cents": 4000,
            "monthly_loss_cents": 50000,
        }
    )


@pytest.fixture
def sample_overrides() -> SimulationOverrides:
    return SimulationOverrides(win_rate=50, reward_risk_ratio=2.0)


@pytest.fixture
def test_settings() -> Settings:
    """Settings without touching the config directory; small batches, serial."""
    return Settings(
        simulation=SimulationDefaults(
            starting_balance_cents=100_000,
            batch_size=50,
            max_workers=1,
            sample_curve_limit=5,
        ),
        limits=SimulationLimits(
            max_simulation_count=10_000,
            max_months_to_trade=12,
            simple_iteration_cap=200_000,
        ),
    )
