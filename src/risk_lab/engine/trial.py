"""
Trial engine: one simulated trading period under a SimulationConfig.

Day state machine
-----------------
Every day opens in ACTIVE_TRADING with a base-risk trade and closes through
exactly one terminal phase before SESSION_COMPLETE:

    ACTIVE_TRADING -> DAILY_TARGET_HIT | DAILY_LOSS_LIMIT_HIT
                    | CONSECUTIVE_LOSS_LIMIT_HIT | EXHAUSTED -> SESSION_COMPLETE

The outcome of the first trade fixes the day's mode. Each later outcome is a
transition to either the next trade's risk or the close of the day's plan:

    mode        | outcome      | condition                     | next
    ------------+--------------+-------------------------------+------------------------
    base        | BREAKEVEN    |                               | close
    base        | LOSS         | ladder empty, stop_after      | close
    base        | LOSS         | otherwise                     | recovery step 1
    base        | WIN          | fixed gain or 0% reinvest     | close
    base        | WIN          | compounding                   | compound
    recovery    | WIN          | execute_all, steps left       | next step
    recovery    | WIN          | otherwise                     | close
    recovery    | LOSS, BE     | steps left                    | next step
    recovery    | LOSS, BE     | sequence done, stop_after     | close
    recovery    | LOSS, BE     | sequence done                 | repeat last step
    compounding | WIN          |                               | compound
    compounding | BREAKEVEN    |                               | same risk
    compounding | LOSS         | stop_on_first_loss            | close (DISABLED_FOR_DAY)
    compounding | LOSS         | day PnL <= 0                  | close
    compounding | LOSS         | otherwise                     | compound

An empty ladder repeats base risk. Compounding risk is base + reinvest% *
max(day PnL, 0). Recovery risk is capped at the daily loss budget left
(daily limit + day PnL); a budget of zero closes the day as
DAILY_LOSS_LIMIT_HIT. A compounding trade that could take day PnL past the
daily loss limit is not placed and the day closes.

After every trade the stop conditions are evaluated in fixed precedence:
consecutive-loss limit, daily loss limit, daily profit target. The first
breach ends the day, unless the next trade is still a scheduled ladder trade
under execute_all_regardless: the breach is then recorded on the DayResult
and trading continues. A closed plan ends the day as EXHAUSTED, and so does
max_trades_per_day, which is a safety cap only.

Across days equity carries forward; weekly and monthly PnL are tracked and a
breached period skips its remaining days. A depleted account skips the rest
of the trial.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal

from risk_lab.core.contracts import SimulationConfig
from risk_lab.core.enums import (
    CompoundingState,
    DayMode,
    DayPhase,
    GainModeType,
    Outcome,
    PeriodHalt,
    TerminationReason,
    TradeMode,
)
from risk_lab.core.exceptions import SimulationInvariantError
from risk_lab.core.logging import get_engine_logger
from risk_lab.engine._cents import round_half_up, to_decimal
from risk_lab.engine.outcomes import OutcomeGenerator, UniformSource

logger = get_engine_logger("trial")

_PHASE_REASON: dict[DayPhase, TerminationReason] = {
    DayPhase.DAILY_TARGET_HIT: TerminationReason.TARGET_HIT,
    DayPhase.DAILY_LOSS_LIMIT_HIT: TerminationReason.LOSS_LIMIT_HIT,
    DayPhase.CONSECUTIVE_LOSS_LIMIT_HIT: TerminationReason.CONSECUTIVE_LOSS_LIMIT_HIT,
    DayPhase.EXHAUSTED: TerminationReason.EXHAUSTED,
}

_FIRST_OUTCOME_MODE: dict[Outcome, DayMode] = {
    Outcome.WIN: DayMode.GAIN_COMPOUNDING,
    Outcome.LOSS: DayMode.LOSS_RECOVERY,
    Outcome.BREAKEVEN: DayMode.BREAKEVEN,
}


# ─── Records ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DayResult:
    """One simulated day, traded or skipped."""

    day_number: int
    week_number: int
    month_number: int
    pnl_cents: int = 0
    trade_count: int = 0
    mode: DayMode | None = None
    termination: TerminationReason | None = None
    halt: PeriodHalt | None = None
    limit_breaches: tuple[TerminationReason, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.halt is not None

    @property
    def outcome(self) -> TerminationReason | PeriodHalt:
        if self.halt is not None:
            return self.halt
        if self.termination is None:
            raise SimulationInvariantError(f"Day {self.day_number} has no outcome")
        return self.termination


@dataclass(frozen=True, slots=True)
class TrialResult:
    """Outcome of one independent trial. All money in integer cents."""

    trial_index: int
    seed_entropy: int | None
    starting_balance_cents: int
    terminal_equity_cents: int
    peak_equity_cents: int
    min_equity_cents: int
    max_drawdown_cents: int
    max_drawdown_pct: float
    trade_count: int
    win_count: int
    loss_count: int
    breakeven_count: int
    max_losing_streak: int
    trading_day_count: int
    daily_pnl_cents: tuple[int, ...]
    day_outcomes: tuple[TerminationReason | PeriodHalt, ...]
    days_in_loss_recovery: int = 0
    days_in_gain_compounding: int = 0
    days_target_hit: int = 0
    days_skipped_weekly_limit: int = 0
    days_skipped_monthly_limit: int = 0
    days_skipped_depleted: int = 0
    weekly_limit_hits: int = 0
    monthly_limit_hits: int = 0
    days_with_suppressed_breaches: int = 0

    @property
    def total_pnl_cents(self) -> int:
        return self.terminal_equity_cents - self.starting_balance_cents

    @property
    def total_return_pct(self) -> float:
        return self.total_pnl_cents / self.starting_balance_cents * 100

    @property
    def ruined(self) -> bool:
        return self.terminal_equity_cents < self.starting_balance_cents

    def equity_curve(self) -> list[int]:
        """End-of-day equity, starting balance first."""
        curve = [self.starting_balance_cents]
        for pnl in self.daily_pnl_cents:
            curve.append(curve[-1] + pnl)
        return curve


# ─── Mutable trial state ───────────────────────────────────────


@dataclass
class TrialLedger:
    """Running equity, drawdown and trade tallies for one trial."""

    starting_balance_cents: int
    equity_cents: int = 0
    peak_cents: int = 0
    min_cents: int = 0
    max_drawdown_cents: int = 0
    max_drawdown_pct: float = 0.0
    trades: int = 0
    wins: int = 0
    losses: int = 0
    breakevens: int = 0
    losing_streak: int = 0
    max_losing_streak: int = 0

    def __post_init__(self) -> None:
        self.equity_cents = self.starting_balance_cents
        self.peak_cents = self.starting_balance_cents
        self.min_cents = self.starting_balance_cents

    def record(self, outcome: Outcome, pnl_cents: int) -> None:
        self.trades += 1
        if outcome is Outcome.WIN:
            self.wins += 1
            self.losing_streak = 0
        elif outcome is Outcome.LOSS:
            self.losses += 1
            self.losing_streak += 1
            self.max_losing_streak = max(self.max_losing_streak, self.losing_streak)
        else:
            self.breakevens += 1

        self.equity_cents += pnl_cents
        if self.equity_cents > self.peak_cents:
            self.peak_cents = self.equity_cents
        if self.equity_cents < self.min_cents:
            self.min_cents = self.equity_cents
        drawdown = self.peak_cents - self.equity_cents
        if drawdown > self.max_drawdown_cents:
            self.max_drawdown_cents = drawdown
            self.max_drawdown_pct = (
                drawdown / self.peak_cents * 100 if self.peak_cents > 0 else 100.0
            )

    @property
    def depleted(self) -> bool:
        return self.equity_cents <= 0


@dataclass
class _DayState:
    risk_cents: int
    compounding: CompoundingState
    mode: TradeMode = TradeMode.BASE
    phase: DayPhase = DayPhase.ACTIVE_TRADING
    ladder_index: int = -1
    sequence_complete: bool = False
    closing: DayPhase | None = None
    pnl_cents: int = 0
    consecutive_losses: int = 0
    trades: int = 0
    first_outcome: Outcome | None = None
    breaches: list[TerminationReason] = field(default_factory=list)


# ─── Engine ────────────────────────────────────────────────────


class TrialEngine:
    """Runs trials of ``trading_days`` days against one immutable config."""

    def __init__(
        self,
        config: SimulationConfig,
        trading_days: int | None = None,
        trading_days_per_month: int | None = None,
        trace: bool = False,
    ) -> None:
        self._config = config
        self._days_per_month = trading_days_per_month or config.trading_days_per_month
        self._trading_days = (
            trading_days if trading_days is not None else self._days_per_month
        )
        if self._trading_days < 0:
            raise ValueError("trading_days must be >= 0")
        self._trace = trace
        self._ladder = tuple(step.risk_cents for step in config.loss_recovery_steps)
        self._rr = to_decimal(config.reward_risk_ratio)
        self._reinvest = to_decimal(config.compounding_risk_percent)
        self._compounds = (
            config.gain_mode == GainModeType.COMPOUNDING
            and config.compounding_risk_percent > 0
        )

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def trading_days(self) -> int:
        return self._trading_days

    # ─── Trial ─────────────────────────────────────────────────

    def run_trial(
        self,
        stream: UniformSource,
        trial_index: int = 0,
        seed_entropy: int | None = None,
    ) -> TrialResult:
        """Simulate every day of the trial with one outcome stream.

        ``seed_entropy`` is only recorded on the result so a single trial can
        be replayed; the stream itself is what drives the outcomes.
        """
        cfg = self._config
        ledger = TrialLedger(cfg.starting_balance_cents)
        per_month = self._days_per_month
        per_week = cfg.trading_days_per_week

        daily_pnl: list[int] = []
        outcomes: list[TerminationReason | PeriodHalt] = []
        skipped: Counter[PeriodHalt] = Counter()
        days: Counter[str] = Counter()
        trading_days = 0
        weekly_pnl = monthly_pnl = 0
        week_breached = month_breached = False

        for day_index in range(self._trading_days):
            day_in_month = day_index % per_month
            if day_in_month == 0:
                monthly_pnl = 0
                month_breached = False
            if day_in_month % per_week == 0:
                weekly_pnl = 0
                week_breached = False

            halt: PeriodHalt | None = None
            if ledger.depleted:
                halt = PeriodHalt.ACCOUNT_DEPLETED
            elif month_breached:
                halt = PeriodHalt.MONTHLY_LIMIT
            elif week_breached:
                halt = PeriodHalt.WEEKLY_LIMIT

            if halt is not None:
                skipped[halt] += 1
                daily_pnl.append(0)
                outcomes.append(halt)
                if self._trace:
                    logger.debug("Day %d: SKIPPED (%s)", day_index + 1, halt.value)
                continue

            day = self.simulate_day(stream, day_index + 1, ledger)
            trading_days += 1
            daily_pnl.append(day.pnl_cents)
            outcomes.append(day.outcome)
            if day.mode is DayMode.LOSS_RECOVERY:
                days["recovery"] += 1
            elif day.mode is DayMode.GAIN_COMPOUNDING:
                days["compounding"] += 1
            if day.termination is TerminationReason.TARGET_HIT:
                days["target"] += 1
            if day.limit_breaches:
                days["suppressed"] += 1

            weekly_pnl += day.pnl_cents
            monthly_pnl += day.pnl_cents
            if (
                cfg.weekly_loss_limit_cents is not None
                and not week_breached
                and weekly_pnl <= -cfg.weekly_loss_limit_cents
            ):
                week_breached = True
                days["weekly_hits"] += 1
            if not month_breached and monthly_pnl <= -cfg.monthly_loss_limit_cents:
                month_breached = True
                days["monthly_hits"] += 1

        if ledger.equity_cents - cfg.starting_balance_cents != sum(daily_pnl):
            raise SimulationInvariantError(
                "equity does not reconcile with daily PnL", trial_index=trial_index
            )

        return TrialResult(
            trial_index=trial_index,
            seed_entropy=seed_entropy,
            starting_balance_cents=cfg.starting_balance_cents,
            terminal_equity_cents=ledger.equity_cents,
            peak_equity_cents=ledger.peak_cents,
            min_equity_cents=ledger.min_cents,
            max_drawdown_cents=ledger.max_drawdown_cents,
            max_drawdown_pct=ledger.max_drawdown_pct,
            trade_count=ledger.trades,
            win_count=ledger.wins,
            loss_count=ledger.losses,
            breakeven_count=ledger.breakevens,
            max_losing_streak=ledger.max_losing_streak,
            trading_day_count=trading_days,
            daily_pnl_cents=tuple(daily_pnl),
            day_outcomes=tuple(outcomes),
            days_in_loss_recovery=days["recovery"],
            days_in_gain_compounding=days["compounding"],
            days_target_hit=days["target"],
            days_skipped_weekly_limit=skipped[PeriodHalt.WEEKLY_LIMIT],
            days_skipped_monthly_limit=skipped[PeriodHalt.MONTHLY_LIMIT],
            days_skipped_depleted=skipped[PeriodHalt.ACCOUNT_DEPLETED],
            weekly_limit_hits=days["weekly_hits"],
            monthly_limit_hits=days["monthly_hits"],
            days_with_suppressed_breaches=days["suppressed"],
        )

    # ─── Day ───────────────────────────────────────────────────

    def simulate_day(
        self,
        stream: UniformSource,
        day_number: int = 1,
        ledger: TrialLedger | None = None,
    ) -> DayResult:
        """Run the day state machine until a terminal phase is reached."""
        cfg = self._config
        if ledger is None:
            ledger = TrialLedger(cfg.starting_balance_cents)

        state = _DayState(
            risk_cents=cfg.base_risk_cents,
            compounding=(
                CompoundingState.ARMED if self._compounds else CompoundingState.INACTIVE
            ),
        )

        while state.phase is DayPhase.ACTIVE_TRADING:
            self._execute_trade(state, stream, ledger, day_number)

            breach = self._breached_stop(state)
            if breach is not None:
                if self._halts_suppressed(state):
                    reason = _PHASE_REASON[breach]
                    if reason not in state.breaches:
                        state.breaches.append(reason)
                else:
                    state.phase = breach
                    break

            if state.closing is not None:
                state.phase = state.closing
            elif state.trades >= cfg.max_trades_per_day or ledger.depleted:
                state.phase = DayPhase.EXHAUSTED

        if state.first_outcome is None:
            raise SimulationInvariantError(f"Day {day_number} closed without a trade")

        termination = _PHASE_REASON[state.phase]
        if self._trace:
            logger.debug(
                "Day %d end: %s | %d trades | day_pnl=%d | equity=%d%s",
                day_number,
                termination.value,
                state.trades,
                state.pnl_cents,
                ledger.equity_cents,
                f" | breaches={[b.value for b in state.breaches]}"
                if state.breaches
                else "",
            )
        state.phase = DayPhase.SESSION_COMPLETE

        per_month = self._days_per_month
        day_in_month = (day_number - 1) % per_month
        return DayResult(
            day_number=day_number,
            week_number=day_in_month // cfg.trading_days_per_week + 1,
            month_number=(day_number - 1) // per_month + 1,
            pnl_cents=state.pnl_cents,
            trade_count=state.trades,
            mode=_FIRST_OUTCOME_MODE[state.first_outcome],
            termination=termination,
            limit_breaches=tuple(state.breaches),
        )

    def _execute_trade(
        self,
        state: _DayState,
        stream: UniformSource,
        ledger: TrialLedger,
        day_number: int,
    ) -> None:
        cfg = self._config
        risk = state.risk_cents
        if risk <= 0:
            raise SimulationInvariantError(
                f"Day {day_number} trade {state.trades + 1}: non-positive risk {risk}"
            )

        outcome = OutcomeGenerator.next(cfg.win_rate, cfg.breakeven_rate, stream)
        commission = cfg.commission_per_trade_cents
        if outcome is Outcome.WIN:
            pnl = round_half_up(Decimal(risk) * self._rr) - commission
        elif outcome is Outcome.LOSS:
            pnl = -risk - commission
        else:
            pnl = -commission

        mode = state.mode
        state.trades += 1
        state.pnl_cents += pnl
        if state.first_outcome is None:
            state.first_outcome = outcome
        ledger.record(outcome, pnl)

        self._transition(state, outcome)

        if self._trace:
            logger.debug(
                "Day %d T%d [%s] %s | risk=%d | pnl=%d | day_pnl=%d | next=%s",
                day_number,
                state.trades,
                mode.value,
                outcome.value.upper(),
                risk,
                pnl,
                state.pnl_cents,
                state.closing.value if state.closing else state.risk_cents,
            )

    # ─── Transitions ───────────────────────────────────────────

    def _transition(self, state: _DayState, outcome: Outcome) -> None:
        if outcome is Outcome.LOSS:
            state.consecutive_losses += 1
            if (
                state.compounding is CompoundingState.ARMED
                and self._config.stop_on_first_loss
            ):
                state.compounding = CompoundingState.DISABLED_FOR_DAY
        elif outcome is Outcome.WIN:
            state.consecutive_losses = 0

        if state.mode is TradeMode.BASE:
            self._after_base(state, outcome)
        elif state.mode is TradeMode.LOSS_RECOVERY:
            self._after_recovery(state, outcome)
        else:
            self._after_compounding(state, outcome)

    def _after_base(self, state: _DayState, outcome: Outcome) -> None:
        if outcome is Outcome.BREAKEVEN:
            state.closing = DayPhase.EXHAUSTED
        elif outcome is Outcome.LOSS:
            state.mode = TradeMode.LOSS_RECOVERY
            if self._ladder:
                self._schedule_step(state, 0)
            else:
                self._complete_sequence(state)
        elif self._compounds:
            state.mode = TradeMode.GAIN_COMPOUNDING
            self._schedule_compounding(state)
        else:
            state.closing = DayPhase.EXHAUSTED

    def _after_recovery(self, state: _DayState, outcome: Outcome) -> None:
        steps_left = (
            not state.sequence_complete and state.ladder_index + 1 < len(self._ladder)
        )
        if outcome is Outcome.WIN:
            if self._config.execute_all_regardless and steps_left:
                self._schedule_step(state, state.ladder_index + 1)
            else:
                state.sequence_complete = True
                state.closing = DayPhase.EXHAUSTED
        elif steps_left:
            self._schedule_step(state, state.ladder_index + 1)
        else:
            self._complete_sequence(state)

    def _after_compounding(self, state: _DayState, outcome: Outcome) -> None:
        if outcome is Outcome.BREAKEVEN:
            self._guard_compounding(state)
        elif outcome is Outcome.WIN:
            self._schedule_compounding(state)
        elif state.compounding is CompoundingState.DISABLED_FOR_DAY:
            state.closing = DayPhase.EXHAUSTED
        elif state.pnl_cents <= 0:
            state.closing = DayPhase.EXHAUSTED
        else:
            self._schedule_compounding(state)

    def _schedule_step(self, state: _DayState, index: int) -> None:
        state.ladder_index = index
        self._set_recovery_risk(state, self._ladder[index])

    def _complete_sequence(self, state: _DayState) -> None:
        """Ladder used up: stop_after closes the day, otherwise repeat the last risk."""
        state.sequence_complete = True
        if self._config.stop_after_sequence:
            state.closing = DayPhase.EXHAUSTED
            return
        last = self._ladder[-1] if self._ladder else self._config.base_risk_cents
        self._set_recovery_risk(state, last)

    def _set_recovery_risk(self, state: _DayState, step_cents: int) -> None:
        budget = max(0, self._config.daily_loss_limit_cents + state.pnl_cents)
        if budget == 0:
            state.closing = DayPhase.DAILY_LOSS_LIMIT_HIT
            return
        state.risk_cents = min(step_cents, budget)

    def _schedule_compounding(self, state: _DayState) -> None:
        profit = max(state.pnl_cents, 0)
        state.risk_cents = self._config.base_risk_cents + round_half_up(
            Decimal(profit) * self._reinvest / 100
        )
        self._guard_compounding(state)

    def _guard_compounding(self, state: _DayState) -> None:
        if state.pnl_cents - state.risk_cents < -self._config.daily_loss_limit_cents:
            state.closing = DayPhase.EXHAUSTED

    # ─── Stop conditions ───────────────────────────────────────

    def _breached_stop(self, state: _DayState) -> DayPhase | None:
        """First breached stop condition, in fixed precedence order."""
        cfg = self._config
        if (
            cfg.max_consecutive_losses is not None
            and state.consecutive_losses >= cfg.max_consecutive_losses
        ):
            return DayPhase.CONSECUTIVE_LOSS_LIMIT_HIT
        if state.pnl_cents <= -cfg.daily_loss_limit_cents:
            return DayPhase.DAILY_LOSS_LIMIT_HIT
        if cfg.daily_target_cents is not None and state.pnl_cents >= cfg.daily_target_cents:
            return DayPhase.DAILY_TARGET_HIT
        return None

    def _halts_suppressed(self, state: _DayState) -> bool:
        """True while the next trade is a scheduled ladder trade under execute_all."""
        return (
            self._config.execute_all_regardless
            and state.mode is TradeMode.LOSS_RECOVERY
            and not state.sequence_complete
            and state.closing is None
        )
