"""
Profile compiler: nested risk-management profile to flat SimulationConfig.

The journal lets traders edit a rule tree (base trade, loss-recovery
ladder, gain mode, cascading limits). The trial loop should never walk
that tree, so it is resolved once here:

- each recovery step's risk becomes absolute cents
- the gain mode collapses to (compounding percent, stop-on-first-loss)
- the daily target is taken from the gain mode, else from the profile
- overrides and settings fill in statistics and calendar
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from risk_lab.core.config import SimulationDefaults
from risk_lab.core.contracts import (
    RecoveryStep,
    RiskManagementProfile,
    SimulationConfig,
    SimulationOverrides,
)
from risk_lab.core.enums import GainModeType, RiskCalculationType
from risk_lab.core.exceptions import ConfigurationError
from risk_lab.engine._cents import percent_of

logger = logging.getLogger(__name__)


class ProfileCompiler:
    """Resolves profiles against overrides and engine defaults."""

    def __init__(self, defaults: SimulationDefaults | None = None) -> None:
        self._defaults = defaults or SimulationDefaults()

    def compile(
        self,
        profile: RiskManagementProfile | Mapping[str, Any],
        overrides: SimulationOverrides | Mapping[str, Any],
    ) -> SimulationConfig:
        """Build the immutable SimulationConfig for one simulation request.

        Args:
            profile: Validated profile, or its raw (camelCase or snake_case) mapping
            overrides: Win rate, reward:risk, breakeven rate, commission, calendar

        Raises:
            ConfigurationError: unknown risk variant, non-positive resolved risk,
                win rate + breakeven rate above 100, or a malformed mapping
        """
        profile = _coerce(RiskManagementProfile, profile, "risk profile")
        overrides = _coerce(SimulationOverrides, overrides, "simulation overrides")

        if overrides.win_rate + overrides.breakeven_rate > 100:
            raise ConfigurationError(
                f"win_rate ({overrides.win_rate}) + breakeven_rate "
                f"({overrides.breakeven_rate}) exceeds 100"
            )

        base_risk = profile.base_trade.risk_cents
        steps = resolve_recovery_steps(profile)

        gain = profile.gain_mode
        if gain.type == GainModeType.COMPOUNDING:
            gain_mode = GainModeType.COMPOUNDING
            compounding_pct = gain.reinvestment_percent
            stop_on_first_loss = gain.stop_on_first_loss
        else:
            gain_mode = GainModeType.FIXED
            compounding_pct = 0.0
            stop_on_first_loss = True

        daily_target = gain.daily_target_cents
        if daily_target is None:
            daily_target = profile.daily_profit_target_cents

        d = self._defaults
        config = SimulationConfig(
            name=profile.name,
            base_risk_cents=base_risk,
            reward_risk_ratio=overrides.reward_risk_ratio,
            win_rate=overrides.win_rate,
            breakeven_rate=overrides.breakeven_rate,
            loss_recovery_steps=steps,
            execute_all_regardless=profile.loss_recovery.execute_all_regardless,
            stop_after_sequence=profile.loss_recovery.stop_after_sequence,
            gain_mode=gain_mode,
            compounding_risk_percent=compounding_pct,
            stop_on_first_loss=stop_on_first_loss,
            daily_target_cents=daily_target,
            daily_loss_limit_cents=profile.daily_loss_cents,
            weekly_loss_limit_cents=profile.weekly_loss_cents,
            monthly_loss_limit_cents=profile.monthly_loss_cents,
            trading_days_per_month=(
                overrides.trading_days_per_month or d.trading_days_per_month
            ),
            trading_days_per_week=(
                overrides.trading_days_per_week or d.trading_days_per_week
            ),
            commission_per_trade_cents=overrides.commission_per_trade_cents,
            starting_balance_cents=(
                overrides.starting_balance_cents or d.starting_balance_cents
            ),
            max_trades_per_day=overrides.max_trades_per_day or d.max_trades_per_day,
            max_consecutive_losses=overrides.max_consecutive_losses,
        )
        logger.debug(
            "Compiled %r: base=%d ladder=%s gain=%s(%.1f%%, stop_on_first_loss=%s) "
            "target=%s daily=%d weekly=%s monthly=%d",
            config.name,
            config.base_risk_cents,
            [s.risk_cents for s in config.loss_recovery_steps],
            config.gain_mode.value,
            config.compounding_risk_percent,
            config.stop_on_first_loss,
            config.daily_target_cents,
            config.daily_loss_limit_cents,
            config.weekly_loss_limit_cents,
            config.monthly_loss_limit_cents,
        )
        return config


def resolve_recovery_steps(profile: RiskManagementProfile) -> tuple[RecoveryStep, ...]:
    """Left-to-right fold of the ladder into absolute cents.

    ``sameAsPrevious`` refers to the immediately preceding *resolved* step
    (base risk for the first step); ``percentOfBase`` is always relative to
    the base trade.
    """
    base_risk = profile.base_trade.risk_cents
    previous_risk = base_risk
    resolved: list[RecoveryStep] = []

    for position, step in enumerate(profile.loss_recovery.sequence, start=1):
        calc = step.risk_calculation
        if calc.type == RiskCalculationType.PERCENT_OF_BASE:
            risk = percent_of(base_risk, calc.percent)
        elif calc.type == RiskCalculationType.SAME_AS_PREVIOUS:
            risk = previous_risk
        elif calc.type == RiskCalculationType.FIXED_CENTS:
            risk = calc.amount_cents
        else:
            raise ConfigurationError(
                f"Recovery step {position}: unrecognized risk calculation {calc.type!r}"
            )

        if risk <= 0:
            raise ConfigurationError(
                f"Recovery step {position} resolves to non-positive risk ({risk} cents)"
            )

        resolved.append(
            RecoveryStep(risk_cents=risk, risk_multiplier=risk / base_risk)
        )
        previous_risk = risk

    return tuple(resolved)


def compile_profile(
    profile: RiskManagementProfile | Mapping[str, Any],
    overrides: SimulationOverrides | Mapping[str, Any],
    defaults: SimulationDefaults | None = None,
) -> SimulationConfig:
    """Functional shorthand for ``ProfileCompiler(defaults).compile(...)``."""
    return ProfileCompiler(defaults).compile(profile, overrides)


def _coerce(model: type, value: Any, label: str) -> Any:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {label}: {exc}") from exc
