"""Tests for the per-day state machine and trial loop."""

import numpy as np
import pytest

from risk_lab.core.contracts import RecoveryStep, SimulationConfig
from risk_lab.core.enums import (
    DayMode,
    GainModeType,
    PeriodHalt,
    TerminationReason,
)
from risk_lab.core.exceptions import SimulationInvariantError
from risk_lab.engine.trial import TrialEngine, TrialLedger


def _ladder(*cents):
    return tuple(RecoveryStep(risk_cents=c, risk_multiplier=c / 1000) for c in cents)


def _compounding(make_config, stop_on_first_loss=True, **overrides):
    fields = {
        "gain_mode": GainModeType.COMPOUNDING,
        "compounding_risk_percent": 50,
        "stop_on_first_loss": stop_on_first_loss,
        "max_trades_per_day": 5,
    }
    fields.update(overrides)
    return make_config(**fields)


# ─── Single day ────────────────────────────────────────────────


class TestTradePnl:
    def test_win_pays_reward_risk(self, make_config, script):
        config = make_config()
        day = TrialEngine(config).simulate_day(script(config, "W"))
        assert day.pnl_cents == 2000

    def test_win_rounds_half_up(self, make_config, script):
        config = make_config(base_risk_cents=333, reward_risk_ratio=1.5)
        day = TrialEngine(config).simulate_day(script(config, "W"))
        # 333 * 1.5 = 499.5 -> 500
        assert day.pnl_cents == 500

    def test_commission_on_every_outcome(self, make_config, script):
        config = make_config(
            win_rate=40,
            breakeven_rate=20,
            commission_per_trade_cents=10,
            loss_recovery_steps=_ladder(500, 500),
        )
        day = TrialEngine(config).simulate_day(script(config, "LBW"))
        # -1000-10 at base, breakeven -10 on step 1, +1000-10 on step 2
        assert day.pnl_cents == -1010 - 10 + 990
        assert day.trade_count == 3

    def test_breakeven_consumes_ladder_step(self, make_config, script):
        config = make_config(
            win_rate=40,
            breakeven_rate=20,
            loss_recovery_steps=_ladder(400, 200),
            stop_after_sequence=True,
        )
        day = TrialEngine(config).simulate_day(script(config, "LBL"))
        # loss at base, breakeven on step 1, loss on step 2 at 200
        assert day.pnl_cents == -1000 - 200
        assert day.trade_count == 3
        assert day.termination == TerminationReason.EXHAUSTED


class TestFirstTrade:
    def test_breakeven_ends_day(self, make_config, script):
        config = make_config(win_rate=40, breakeven_rate=20)
        day = TrialEngine(config).simulate_day(script(config, "B" + "W" * 5))
        assert day.trade_count == 1
        assert day.mode == DayMode.BREAKEVEN
        assert day.termination == TerminationReason.EXHAUSTED

    def test_fixed_mode_ends_on_first_win(self, make_config, script):
        config = make_config()
        day = TrialEngine(config).simulate_day(script(config, "W" * 60))
        assert day.trade_count == 1
        assert day.pnl_cents == 2000
        assert day.termination == TerminationReason.EXHAUSTED

    def test_fixed_mode_first_win_meets_target(self, make_config, script):
        config = make_config(daily_target_cents=2000)
        day = TrialEngine(config).simulate_day(script(config, "W" * 5))
        assert day.trade_count == 1
        assert day.termination == TerminationReason.TARGET_HIT

    def test_zero_reinvestment_ends_on_first_win(self, make_config, script):
        config = _compounding(make_config, compounding_risk_percent=0)
        day = TrialEngine(config).simulate_day(script(config, "W" * 5))
        assert day.trade_count == 1

    def test_day_mode_from_first_trade(self, make_config, script):
        config = make_config()
        engine = TrialEngine(config)
        assert engine.simulate_day(script(config, "LW")).mode == DayMode.LOSS_RECOVERY
        assert engine.simulate_day(script(config, "W")).mode == DayMode.GAIN_COMPOUNDING


class TestLossRecovery:
    def test_recovery_win_ends_day(self, make_config, script):
        config = make_config(loss_recovery_steps=_ladder(500, 500))
        day = TrialEngine(config).simulate_day(script(config, "LW" + "W" * 60))
        # -1000, then +1000 on step 1 and the sequence stops
        assert day.trade_count == 2
        assert day.pnl_cents == 0
        assert day.termination == TerminationReason.EXHAUSTED

    def test_ladder_advances_and_repeats_last_step(self, make_config, script):
        config = make_config(loss_recovery_steps=_ladder(500, 250))
        day = TrialEngine(config).simulate_day(script(config, "LLLW"))
        # 1000 L, 500 L, 250 L, last step repeated: W +500 ends the day
        assert day.pnl_cents == -1000 - 500 - 250 + 500
        assert day.termination == TerminationReason.EXHAUSTED
        assert day.trade_count == 4

    def test_stop_after_sequence(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(500), stop_after_sequence=True
        )
        day = TrialEngine(config).simulate_day(script(config, "LL"))
        assert day.termination == TerminationReason.EXHAUSTED
        assert day.trade_count == 2
        assert day.pnl_cents == -1500

    def test_recovery_win_meets_target(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(2000), daily_target_cents=3000
        )
        day = TrialEngine(config).simulate_day(script(config, "LW"))
        # -1000, +4000 on step 1
        assert day.termination == TerminationReason.TARGET_HIT
        assert day.pnl_cents == 3000

    def test_empty_ladder_repeats_base_risk(self, make_config, script):
        config = make_config()
        day = TrialEngine(config).simulate_day(script(config, "LLLW"))
        assert day.pnl_cents == -3000 + 2000
        assert day.trade_count == 4
        assert day.termination == TerminationReason.EXHAUSTED

    def test_empty_ladder_with_stop_after(self, make_config, script):
        config = make_config(stop_after_sequence=True)
        day = TrialEngine(config).simulate_day(script(config, "L" * 5))
        assert day.trade_count == 1
        assert day.pnl_cents == -1000


class TestDailyLossBudget:
    def test_recovery_risk_capped_to_budget(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(1000), daily_loss_limit_cents=1500
        )
        day = TrialEngine(config).simulate_day(script(config, "LL"))
        # step 1 risks only the 500 left before the limit
        assert day.pnl_cents == -1500
        assert day.termination == TerminationReason.LOSS_LIMIT_HIT

    def test_capped_win_pays_on_capped_risk(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(1000), daily_loss_limit_cents=1500
        )
        day = TrialEngine(config).simulate_day(script(config, "LW"))
        assert day.pnl_cents == -1000 + 1000

    def test_spent_budget_ends_execute_all_ladder(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(1000, 1000, 1000),
            execute_all_regardless=True,
            daily_loss_limit_cents=1500,
        )
        day = TrialEngine(config).simulate_day(script(config, "LLL"))
        assert day.trade_count == 2
        assert day.pnl_cents == -1500
        assert day.termination == TerminationReason.LOSS_LIMIT_HIT
        assert day.limit_breaches == ()

    def test_compounding_trade_refused_past_limit(self, make_config, script):
        config = _compounding(
            make_config, reward_risk_ratio=0.5, daily_loss_limit_cents=500
        )
        day = TrialEngine(config).simulate_day(script(config, "WW"))
        # +500, next risk 1000 + 250 would allow 500 - 1250 < -500
        assert day.trade_count == 1
        assert day.pnl_cents == 500
        assert day.termination == TerminationReason.EXHAUSTED

    def test_compounding_trade_at_limit_allowed(self, make_config, script):
        config = _compounding(make_config, daily_loss_limit_cents=1000)
        day = TrialEngine(config).simulate_day(script(config, "WL"))
        # +2000, risk 2000 leaves exactly 0 >= -1000
        assert day.trade_count == 2
        assert day.pnl_cents == 0


class TestExecuteAllRegardless:
    def test_target_suppressed_inside_ladder(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(500, 500, 500),
            execute_all_regardless=True,
            stop_after_sequence=True,
            daily_target_cents=500,
        )
        day = TrialEngine(config).simulate_day(script(config, "LWWW"))
        # target first reached on trade 3 while step 3 is still scheduled
        assert day.trade_count == 4
        assert day.pnl_cents == 2000
        assert day.termination == TerminationReason.TARGET_HIT
        assert day.limit_breaches == (TerminationReason.TARGET_HIT,)

    def test_without_execute_all_win_exits(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(500, 500, 500),
            daily_target_cents=500,
        )
        day = TrialEngine(config).simulate_day(script(config, "LWWW"))
        assert day.trade_count == 2
        assert day.pnl_cents == 0
        assert day.limit_breaches == ()

    def test_completed_sequence_ends_day(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(500, 500),
            execute_all_regardless=True,
        )
        day = TrialEngine(config).simulate_day(script(config, "LWW" + "W" * 5))
        assert day.termination == TerminationReason.EXHAUSTED
        assert day.trade_count == 3
        assert day.pnl_cents == 1000


class TestStopPrecedence:
    def test_consecutive_before_daily_loss(self, make_config, script):
        config = make_config(daily_loss_limit_cents=1500, max_consecutive_losses=2)
        day = TrialEngine(config).simulate_day(script(config, "LL"))
        assert day.termination == TerminationReason.CONSECUTIVE_LOSS_LIMIT_HIT

    def test_daily_loss_limit(self, make_config, script):
        config = make_config(daily_loss_limit_cents=2000)
        day = TrialEngine(config).simulate_day(script(config, "LL"))
        assert day.termination == TerminationReason.LOSS_LIMIT_HIT
        assert day.pnl_cents == -2000

    def test_win_resets_consecutive_counter(self, make_config, script):
        config = make_config(
            loss_recovery_steps=_ladder(500, 500, 500),
            execute_all_regardless=True,
            max_consecutive_losses=2,
        )
        day = TrialEngine(config).simulate_day(script(config, "LWLW"))
        assert day.trade_count == 4
        assert day.termination == TerminationReason.EXHAUSTED

    def test_target_hit(self, make_config, script):
        config = _compounding(make_config, daily_target_cents=5000)
        day = TrialEngine(config).simulate_day(script(config, "WWW"))
        # +2000, then 1000 + 50% of 2000 = 2000 risked for +4000
        assert day.termination == TerminationReason.TARGET_HIT
        assert day.trade_count == 2
        assert day.pnl_cents == 6000

    def test_max_trades_per_day_caps_compounding(self, make_config, script):
        config = _compounding(make_config, max_trades_per_day=3)
        day = TrialEngine(config).simulate_day(script(config, "W" * 10))
        assert day.termination == TerminationReason.EXHAUSTED
        assert day.trade_count == 3
        assert day.pnl_cents == 2000 + 4000 + 8000


class TestCompounding:
    def test_stop_on_first_loss_ends_day(self, make_config, script):
        config = _compounding(make_config, True)
        day = TrialEngine(config).simulate_day(script(config, "WL" + "L" * 60))
        # +2000, then 2000 risked and lost
        assert day.trade_count == 2
        assert day.pnl_cents == 0
        assert day.termination == TerminationReason.EXHAUSTED

    def test_stop_on_first_loss_with_profit_left(self, make_config, script):
        config = _compounding(make_config, True)
        day = TrialEngine(config).simulate_day(script(config, "WWLWW"))
        # 1000 -> 2000 -> 4000 lost, day closes still up 2000
        assert day.trade_count == 3
        assert day.pnl_cents == 2000 + 4000 - 4000

    def test_continues_without_stop_on_first_loss(self, make_config, script):
        config = _compounding(make_config, False)
        day = TrialEngine(config).simulate_day(script(config, "WWLWW"))
        # after the loss the day is up 2000: 2000 risked, then 1000 + 3000
        assert day.trade_count == 5
        assert day.pnl_cents == 2000 + 4000 - 4000 + 4000 + 8000
        assert day.termination == TerminationReason.EXHAUSTED

    def test_ends_when_profit_is_gone(self, make_config, script):
        config = _compounding(make_config, False)
        day = TrialEngine(config).simulate_day(script(config, "WL" + "W" * 5))
        assert day.trade_count == 2
        assert day.pnl_cents == 0

    def test_breakeven_keeps_risk(self, make_config, script):
        config = _compounding(
            make_config, win_rate=40, breakeven_rate=20, max_trades_per_day=3
        )
        day = TrialEngine(config).simulate_day(script(config, "WBW"))
        # +2000, breakeven at 2000, then 2000 again for +4000
        assert day.pnl_cents == 6000

    def test_recovery_day_never_compounds(self, make_config, script):
        config = _compounding(make_config, False)
        day = TrialEngine(config).simulate_day(script(config, "LW" + "W" * 5))
        assert day.trade_count == 2
        assert day.pnl_cents == 1000
        assert day.mode == DayMode.LOSS_RECOVERY


class TestInvariants:
    def test_non_positive_risk_raises(self, make_config, script):
        config = SimulationConfig.model_construct(
            **{**make_config().model_dump(), "base_risk_cents": 0}
        )
        with pytest.raises(SimulationInvariantError, match="non-positive risk"):
            TrialEngine(config).simulate_day(script(make_config(), "W"))

    def test_negative_trading_days(self, make_config):
        with pytest.raises(ValueError):
            TrialEngine(make_config(), trading_days=-1)

    def test_day_numbering(self, make_config, script):
        config = make_config()
        day = TrialEngine(config).simulate_day(script(config, "W"), day_number=8)
        assert day.week_number == 2
        assert day.month_number == 1

    def test_ledger_tracks_equity(self, make_config, script):
        config = make_config()
        ledger = TrialLedger(config.starting_balance_cents)
        TrialEngine(config).simulate_day(script(config, "LLW"), ledger=ledger)
        assert ledger.equity_cents == 100_000
        assert ledger.peak_cents == 100_000
        assert ledger.min_cents == 98_000
        assert ledger.max_drawdown_cents == 2000
        assert ledger.max_drawdown_pct == pytest.approx(2.0)
        assert ledger.max_losing_streak == 2


# ─── Full trial ────────────────────────────────────────────────


class TestRunTrial:
    def test_zero_win_rate_halts_every_day_identically(self, make_config):
        config = make_config(win_rate=0, daily_loss_limit_cents=3000)
        result = TrialEngine(config, trading_days=22).run_trial(
            np.random.default_rng(0)
        )
        assert result.trade_count == 66
        assert set(result.day_outcomes) == {TerminationReason.LOSS_LIMIT_HIT}
        assert result.daily_pnl_cents == (-3000,) * 22

    def test_all_wins_never_ruins(self, make_config):
        config = _compounding(make_config, win_rate=100, daily_target_cents=4000)
        result = TrialEngine(config, trading_days=22).run_trial(
            np.random.default_rng(0)
        )
        # +2000 at base, then 2000 risked for +4000 crosses the target
        assert result.terminal_equity_cents == 100_000 + 22 * 6000
        assert result.trade_count == 44
        assert result.max_drawdown_cents == 0
        assert result.ruined is False
        assert result.days_target_hit == 22
        assert result.days_in_gain_compounding == 22

    def test_weekly_limit_skips_rest_of_week(self, make_config):
        config = make_config(
            win_rate=0,
            daily_loss_limit_cents=1000,
            weekly_loss_limit_cents=1500,
            trading_days_per_week=3,
            trading_days_per_month=6,
        )
        result = TrialEngine(config, trading_days=6).run_trial(np.random.default_rng(0))
        assert result.day_outcomes == (
            TerminationReason.LOSS_LIMIT_HIT,
            TerminationReason.LOSS_LIMIT_HIT,
            PeriodHalt.WEEKLY_LIMIT,
            TerminationReason.LOSS_LIMIT_HIT,
            TerminationReason.LOSS_LIMIT_HIT,
            PeriodHalt.WEEKLY_LIMIT,
        )
        assert result.weekly_limit_hits == 2
        assert result.days_skipped_weekly_limit == 2
        assert result.trading_day_count == 4

    def test_monthly_limit_skips_rest_of_month(self, make_config):
        config = make_config(
            win_rate=0,
            daily_loss_limit_cents=1000,
            monthly_loss_limit_cents=1500,
            trading_days_per_month=4,
        )
        result = TrialEngine(config, trading_days=8).run_trial(np.random.default_rng(0))
        assert result.daily_pnl_cents == (-1000, -1000, 0, 0, -1000, -1000, 0, 0)
        assert result.monthly_limit_hits == 2
        assert result.days_skipped_monthly_limit == 4
        assert result.terminal_equity_cents == 96_000

    def test_depleted_account_skips_remaining_days(self, make_config):
        config = make_config(
            win_rate=0,
            daily_loss_limit_cents=1000,
            starting_balance_cents=2500,
        )
        result = TrialEngine(config, trading_days=5).run_trial(np.random.default_rng(0))
        assert result.terminal_equity_cents == -500
        assert result.days_skipped_depleted == 2
        assert result.day_outcomes[-1] == PeriodHalt.ACCOUNT_DEPLETED
        assert result.min_equity_cents == -500

    def test_equity_curve(self, make_config, script):
        config = make_config(max_trades_per_day=1, trading_days_per_month=3)
        result = TrialEngine(config, trading_days=3).run_trial(script(config, "WLW"))
        assert result.equity_curve() == [100_000, 102_000, 101_000, 103_000]
        assert result.total_pnl_cents == 3000
        assert result.total_return_pct == pytest.approx(3.0)

    def test_defaults_to_one_month(self, make_config):
        engine = TrialEngine(make_config(trading_days_per_month=20))
        assert engine.trading_days == 20

    def test_trial_metadata(self, make_config):
        config = make_config()
        result = TrialEngine(config, trading_days=5).run_trial(
            np.random.default_rng(1), trial_index=7, seed_entropy=1234
        )
        assert result.trial_index == 7
        assert result.seed_entropy == 1234
        assert len(result.daily_pnl_cents) == 5
        assert result.win_count + result.loss_count + result.breakeven_count == (
            result.trade_count
        )

    def test_same_stream_same_result(self, make_config):
        config = make_config(loss_recovery_steps=_ladder(500, 750))
        engine = TrialEngine(config, trading_days=44)
        a = engine.run_trial(np.random.default_rng(11))
        b = engine.run_trial(np.random.default_rng(11))
        assert a == b
