"""Tests for simple-mode edge expectancy and Kelly sizing."""

import math

import pytest

from risk_lab.core.enums import KellyLevel
from risk_lab.engine.edge import kelly_criterion, simulate_edge_expectancy


class TestKellyCriterion:
    def test_positive_edge(self):
        # 55% win rate, 1:1 -> f* = 0.55 - 0.45 = 10%
        k = kelly_criterion(55, 1.0)
        assert k.full == pytest.approx(10.0)
        assert k.half == pytest.approx(5.0)
        assert k.quarter == pytest.approx(2.5)
        assert k.level == KellyLevel.CONSERVATIVE

    def test_balanced(self):
        # 40% win rate, 3:1 -> f* = 0.40 - 0.60/3 = 20%
        k = kelly_criterion(40, 3.0)
        assert k.full == pytest.approx(20.0)
        assert k.level == KellyLevel.BALANCED

    def test_aggressive(self):
        # 60% win rate, 2:1 -> f* = 0.60 - 0.40/2 = 40%
        k = kelly_criterion(60, 2.0)
        assert k.full == pytest.approx(40.0)
        assert k.level == KellyLevel.AGGRESSIVE
        assert "Quarter Kelly" in k.recommendation

    def test_negative_edge_floored(self):
        k = kelly_criterion(30, 1.0)
        assert k.full == 0.0
        assert k.half == 0.0
        assert k.level == KellyLevel.CONSERVATIVE
        assert k.recommendation.startswith("Negative edge")

    def test_no_edge(self):
        assert kelly_criterion(50, 1.0).full == pytest.approx(0.0)

    def test_zero_reward_risk(self):
        assert kelly_criterion(90, 0.0).full == 0.0


class TestSimulateEdgeExpectancy:
    def test_always_win(self):
        s = simulate_edge_expectancy(100, 2.0, 50, simulation_count=20, rng_seed=1)
        assert s.median_final_r == pytest.approx(100.0)
        assert s.worst_case_final_r == pytest.approx(100.0)
        assert s.median_max_r_drawdown == 0.0
        assert s.profitable_pct == 100.0
        assert s.expected_max_win_streak == 50
        assert s.expected_max_loss_streak == 0
        assert math.isinf(s.profit_factor)

    def test_always_lose(self):
        s = simulate_edge_expectancy(0, 2.0, 30, simulation_count=10, rng_seed=1)
        assert s.mean_final_r == pytest.approx(-30.0)
        assert s.worst_max_r_drawdown == pytest.approx(30.0)
        assert s.profitable_pct == 0.0
        assert s.profit_factor == 0.0
        assert s.expected_max_loss_streak == 30
        assert s.kelly_full == 0.0

    def test_commission_in_r(self):
        # 10% of 1R per trade: wins pay 1.9R
        s = simulate_edge_expectancy(
            100, 2.0, 10, commission_impact_r=10, simulation_count=5, rng_seed=1
        )
        assert s.expected_r_per_trade == pytest.approx(1.9)
        assert s.median_final_r == pytest.approx(19.0)

    def test_seed_reproducible(self):
        a = simulate_edge_expectancy(45, 1.8, 100, simulation_count=200, rng_seed=11)
        b = simulate_edge_expectancy(45, 1.8, 100, simulation_count=200, rng_seed=11)
        assert a == b

    def test_expectancy_converges(self):
        s = simulate_edge_expectancy(50, 2.0, 200, simulation_count=2000, rng_seed=3)
        # E[R] = 0.5 * 2 - 0.5 = 0.5
        assert s.expected_r_per_trade == pytest.approx(0.5, abs=0.03)
        assert s.sharpe_ratio > 0
        assert s.sortino_ratio > s.sharpe_ratio
        assert s.profit_factor == pytest.approx(2.0, rel=0.05)

    def test_percentile_ordering(self):
        s = simulate_edge_expectancy(50, 1.5, 100, simulation_count=500, rng_seed=4)
        assert s.worst_case_final_r <= s.median_final_r <= s.best_case_final_r
        assert s.median_max_r_drawdown <= s.worst_max_r_drawdown

    def test_distribution(self):
        s = simulate_edge_expectancy(50, 1.5, 100, simulation_count=300, rng_seed=4)
        assert len(s.distribution) == 20
        assert sum(b.count for b in s.distribution) == 300

    def test_streaks_bounded(self):
        s = simulate_edge_expectancy(50, 1.0, 40, simulation_count=100, rng_seed=2)
        assert 1 <= s.expected_max_win_streak <= 40
        assert 1 <= s.expected_max_loss_streak <= 40

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            simulate_edge_expectancy(50, 1.0, 0)
        with pytest.raises(ValueError):
            simulate_edge_expectancy(50, 1.0, 10, simulation_count=0)
