"""
Canonical interface contracts for the Risk Lab simulation engine.

All boundary data structures are defined here as Pydantic v2 BaseModels:
the risk-management profile handed over by the journal, the scalar
overrides, the flat compiled SimulationConfig, and the summaries returned
to the presentation layer.

Profile models use snake_case attributes and accept the camelCase keys the
journal stores its decision tree with (``riskCents``, ``lossRecovery``...).
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
)
from pydantic.alias_generators import to_camel

from risk_lab.core.enums import (
    GainModeType,
    KellyLevel,
    RunStatus,
    SimulationMode,
)


class _CamelModel(BaseModel):
    """Frozen model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ─── Risk Management Profile (journal input) ───────────────────


class PercentOfBase(_CamelModel):
    """Risk a percentage of the base trade's risk."""

    type: Literal["percentOfBase"] = "percentOfBase"
    percent: float = Field(ge=0)


class SameAsPrevious(_CamelModel):
    """Repeat the previous resolved step's risk (base risk for the first step)."""

    type: Literal["sameAsPrevious"] = "sameAsPrevious"


class FixedCents(_CamelModel):
    """Risk an absolute amount."""

    type: Literal["fixedCents"] = "fixedCents"
    amount_cents: int


RiskCalculation = Annotated[
    PercentOfBase | SameAsPrevious | FixedCents,
    Field(discriminator="type"),
]


class LossRecoveryStep(_CamelModel):
    risk_calculation: RiskCalculation
    max_contracts_override: PositiveInt | None = None


class LossRecovery(_CamelModel):
    sequence: list[LossRecoveryStep] = Field(default_factory=list, max_length=10)
    execute_all_regardless: bool = Field(
        default=False,
        description="Run every recovery trade even after an earlier one wins",
    )
    stop_after_sequence: bool = Field(
        default=False,
        description="Stop trading for the day once the recovery sequence completes",
    )


class CompoundingGain(_CamelModel):
    """Reinvest a share of intraday profit into the next trade's risk."""

    type: Literal["compounding"] = "compounding"
    reinvestment_percent: float = Field(ge=0, le=100)
    stop_on_first_loss: bool = True
    daily_target_cents: PositiveInt | None = None


class FixedGain(_CamelModel):
    """Keep base risk after wins. ``singleTarget`` is the journal's legacy tag."""

    type: Literal["fixed", "singleTarget"] = "fixed"
    daily_target_cents: PositiveInt | None = None


GainMode = Annotated[
    CompoundingGain | FixedGain,
    Field(discriminator="type"),
]


class BaseTrade(_CamelModel):
    risk_cents: PositiveInt
    max_contracts: PositiveInt | None = None
    min_stop_points: PositiveInt | None = None


class RiskManagementProfile(_CamelModel):
    """A trader's risk-management rule tree, already validated by the journal."""

    name: str = Field(default="Unnamed profile", min_length=1, max_length=100)
    description: str | None = None
    base_trade: BaseTrade
    loss_recovery: LossRecovery = Field(default_factory=LossRecovery)
    gain_mode: GainMode = Field(default_factory=FixedGain)
    daily_loss_cents: PositiveInt
    daily_profit_target_cents: PositiveInt | None = None
    weekly_loss_cents: PositiveInt | None = None
    monthly_loss_cents: PositiveInt


class SimulationOverrides(_CamelModel):
    """Scalar statistics and calendar overrides supplied alongside a profile."""

    win_rate: float = Field(ge=0, le=100, description="% of all trades that win")
    reward_risk_ratio: float = Field(ge=0)
    breakeven_rate: float = Field(default=0.0, ge=0, le=100)
    commission_per_trade_cents: NonNegativeInt = 0
    trading_days_per_month: PositiveInt | None = None
    trading_days_per_week: PositiveInt | None = None
    max_trades_per_day: PositiveInt | None = None
    max_consecutive_losses: PositiveInt | None = None
    starting_balance_cents: PositiveInt | None = None


# ─── Compiled Simulation Config ────────────────────────────────


class RecoveryStep(BaseModel):
    """A loss-recovery step with its risk resolved to absolute cents."""

    model_config = ConfigDict(frozen=True)

    risk_cents: PositiveInt
    risk_multiplier: float = Field(description="risk_cents / base_risk_cents")


class SimulationConfig(BaseModel):
    """
    Flat, immutable execution plan produced by the ProfileCompiler.

    Every monetary field is integer cents. Nothing in here refers back to
    the nested profile, so the trial loop never re-resolves a rule.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    base_risk_cents: PositiveInt
    reward_risk_ratio: float = Field(ge=0)
    win_rate: float = Field(ge=0, le=100)
    breakeven_rate: float = Field(ge=0, le=100)
    loss_recovery_steps: tuple[RecoveryStep, ...] = ()
    execute_all_regardless: bool = False
    stop_after_sequence: bool = False
    gain_mode: GainModeType = GainModeType.FIXED
    compounding_risk_percent: float = Field(default=0.0, ge=0, le=100)
    stop_on_first_loss: bool = True
    daily_target_cents: PositiveInt | None = None
    daily_loss_limit_cents: PositiveInt
    weekly_loss_limit_cents: PositiveInt | None = None
    monthly_loss_limit_cents: PositiveInt
    trading_days_per_month: PositiveInt = 22
    trading_days_per_week: PositiveInt = 5
    commission_per_trade_cents: NonNegativeInt = 0
    starting_balance_cents: PositiveInt
    max_trades_per_day: PositiveInt = 50
    max_consecutive_losses: PositiveInt | None = None

    @property
    def loss_rate(self) -> float:
        return 100.0 - self.win_rate - self.breakeven_rate


# ─── Requests & Results ────────────────────────────────────────


class SimulationRequest(BaseModel):
    """What the presentation layer asks for."""

    simulation_count: PositiveInt
    months_to_trade: PositiveInt = 1
    mode: SimulationMode = SimulationMode.ADVANCED
    seed: NonNegativeInt | None = Field(
        default=None,
        description="Master seed; omit for fresh entropy (reported back for reruns)",
    )
    number_of_trades: PositiveInt = Field(
        default=100, description="Trades per run in simple mode"
    )
    include_equity_curves: bool = True
    sample_curve_limit: NonNegativeInt | None = None


class DistributionBucket(BaseModel):
    range_start: float
    range_end: float
    count: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)


class SimulationSummary(BaseModel):
    """
    Aggregate statistics over all trials of an advanced-mode run.

    Monetary values are cents; averages over cents are floats. Every metric
    is None when ``has_data`` is False.
    """

    has_data: bool
    trial_count: int = Field(ge=0)
    starting_balance_cents: int | None = None
    equity_percentiles: dict[int, int] = Field(
        default_factory=dict,
        description="Percentile (5/25/50/75/95) -> terminal equity cents",
    )
    mean_terminal_equity_cents: float | None = None
    median_terminal_pnl_cents: float | None = None
    mean_terminal_pnl_cents: float | None = None
    ruin_probability: float | None = Field(
        default=None, ge=0.0, le=1.0, description="P(terminal equity < start)"
    )
    ruin_threshold_percent: float | None = None
    threshold_ruin_probability: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="P(min equity <= start * (1 - threshold/100))",
    )
    mean_max_drawdown_cents: float | None = None
    median_max_drawdown_cents: float | None = None
    mean_max_drawdown_pct: float | None = None
    median_max_drawdown_pct: float | None = None
    worst_max_drawdown_pct: float | None = Field(
        default=None, description="95th percentile of max drawdown %"
    )
    profitable_pct: float | None = None
    monthly_limit_hit_pct: float | None = None
    avg_trading_days: float | None = None
    avg_trades: float | None = None
    avg_days_in_loss_recovery: float | None = None
    avg_days_in_gain_compounding: float | None = None
    avg_days_target_hit: float | None = None
    avg_days_skipped_weekly_limit: float | None = None
    avg_days_skipped_monthly_limit: float | None = None
    avg_days_skipped_depleted: float | None = None
    sharpe_ratio: float | None = None
    sortino_ratio: float | None = None
    expected_daily_pnl_cents: float | None = None
    realized_expectancy_cents: float | None = Field(
        default=None, description="Mean PnL per executed trade"
    )
    implied_expectancy_r: float | None = None
    implied_expectancy_cents: float | None = None
    distribution: list[DistributionBucket] = Field(default_factory=list)

    @classmethod
    def no_data(cls) -> SimulationSummary:
        """Sentinel summary for an empty trial population."""
        return cls(has_data=False, trial_count=0)


class EdgeSummary(BaseModel):
    """Simple-mode statistics, expressed in R-multiples."""

    simulation_count: int = Field(ge=0)
    number_of_trades: int = Field(ge=0)
    median_final_r: float
    mean_final_r: float
    best_case_final_r: float
    worst_case_final_r: float
    median_max_r_drawdown: float
    mean_max_r_drawdown: float
    worst_max_r_drawdown: float
    profitable_pct: float = Field(ge=0.0, le=100.0)
    sharpe_ratio: float
    sortino_ratio: float
    expected_r_per_trade: float
    expected_max_win_streak: float
    expected_max_loss_streak: float
    profit_factor: float
    kelly_full: float
    kelly_half: float
    kelly_quarter: float
    kelly_level: KellyLevel
    kelly_recommendation: str
    distribution: list[DistributionBucket] = Field(default_factory=list)


class SimulationReport(BaseModel):
    """Everything the presentation layer needs to render a run."""

    status: RunStatus
    mode: SimulationMode
    master_entropy: int | None = None
    requested_count: int = Field(ge=0)
    completed_count: int = Field(ge=0)
    summary: SimulationSummary | None = None
    edge: EdgeSummary | None = None
    equity_curves: list[list[int]] = Field(
        default_factory=list,
        description="Bounded sample of per-day equity curves (cents)",
    )
    median_trial_daily_pnl: list[int] = Field(default_factory=list)
