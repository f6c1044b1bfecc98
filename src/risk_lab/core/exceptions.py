"""
Exception hierarchy for the Risk Lab simulation engine.

Configuration problems surface before any trial runs and are never retried.
Cancellation is not an error: it comes back as RunStatus.CANCELLED.
"""

from __future__ import annotations


class RiskLabError(Exception):
    """Base exception for all Risk Lab errors."""


class ConfigurationError(RiskLabError):
    """Invalid profile, overrides, request or settings file."""


class SimulationBudgetError(ConfigurationError):
    """A request asks for more work than settings.limits allows."""

    def __init__(self, quantity: str, requested: int, limit: int, detail: str = "") -> None:
        self.quantity = quantity
        self.requested = requested
        self.limit = limit
        message = f"{quantity} {requested} exceeds limit {limit}"
        super().__init__(f"{message} ({detail})" if detail else message)


class SimulationInvariantError(RiskLabError):
    """Engine state broke an invariant mid-run. A defect; the run is aborted."""

    def __init__(self, message: str, trial_index: int | None = None) -> None:
        self.trial_index = trial_index
        if trial_index is not None:
            message = f"Trial {trial_index}: {message}"
        super().__init__(message)
