"""Enumerations shared across the simulation engine."""

from __future__ import annotations

from enum import StrEnum


class Outcome(StrEnum):
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class RiskCalculationType(StrEnum):
    PERCENT_OF_BASE = "percentOfBase"
    SAME_AS_PREVIOUS = "sameAsPrevious"
    FIXED_CENTS = "fixedCents"


class GainModeType(StrEnum):
    COMPOUNDING = "compounding"
    FIXED = "fixed"


class TradeMode(StrEnum):
    """Which rule sized a given trade."""

    BASE = "base"
    LOSS_RECOVERY = "lossRecovery"
    GAIN_COMPOUNDING = "gainCompounding"


class DayMode(StrEnum):
    """Classification of a traded day by the outcome of its first trade."""

    LOSS_RECOVERY = "lossRecovery"
    GAIN_COMPOUNDING = "gainCompounding"
    BREAKEVEN = "breakeven"


class DayPhase(StrEnum):
    ACTIVE_TRADING = "activeTrading"
    DAILY_TARGET_HIT = "dailyTargetHit"
    DAILY_LOSS_LIMIT_HIT = "dailyLossLimitHit"
    CONSECUTIVE_LOSS_LIMIT_HIT = "consecutiveLossLimitHit"
    EXHAUSTED = "exhausted"
    SESSION_COMPLETE = "sessionComplete"


class CompoundingState(StrEnum):
    """Intraday compounding switch. DISABLED_FOR_DAY is absorbing until the next day."""

    INACTIVE = "inactive"
    ARMED = "armed"
    DISABLED_FOR_DAY = "disabledForDay"


class TerminationReason(StrEnum):
    TARGET_HIT = "targetHit"
    LOSS_LIMIT_HIT = "lossLimitHit"
    CONSECUTIVE_LOSS_LIMIT_HIT = "consecutiveLossLimitHit"
    EXHAUSTED = "exhausted"


class PeriodHalt(StrEnum):
    """Why a whole day was skipped without trading."""

    WEEKLY_LIMIT = "weeklyLimit"
    MONTHLY_LIMIT = "monthlyLimit"
    ACCOUNT_DEPLETED = "accountDepleted"


class RunStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SimulationMode(StrEnum):
    SIMPLE = "simple"
    ADVANCED = "advanced"


class KellyLevel(StrEnum):
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"
