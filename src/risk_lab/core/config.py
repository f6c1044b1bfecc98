"""
Configuration loader: reads YAML files and produces typed Pydantic models.

Usage:
    settings = load_settings()
    print(settings.simulation.trading_days_per_month)
    print(settings.profiles["r_multiples"].base_trade.risk_cents)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PositiveInt, ValidationError

from risk_lab.core.contracts import RiskManagementProfile
from risk_lab.core.exceptions import ConfigurationError

# ─── Typed Config Models ────────────────────────────────────────


class SimulationDefaults(BaseModel):
    """Defaults applied when a request or override leaves a value unset."""

    trading_days_per_month: PositiveInt = 22
    trading_days_per_week: PositiveInt = 5
    max_trades_per_day: PositiveInt = 50
    starting_balance_cents: PositiveInt = 5_000_000
    ruin_threshold_percent: float = Field(default=50.0, gt=0, le=100)
    batch_size: PositiveInt = 1000
    max_workers: PositiveInt = 1
    uniform_block_size: PositiveInt = 1024
    sample_curve_limit: int = Field(default=20, ge=0)


class SimulationLimits(BaseModel):
    """Upper bounds on request size."""

    max_simulation_count: PositiveInt = 1_000_000
    max_months_to_trade: PositiveInt = 48
    simple_iteration_cap: PositiveInt = Field(
        default=3_000_000, description="trades x simulations in simple mode"
    )


class Settings(BaseModel):
    """Root settings container assembled from all YAML config files."""

    simulation: SimulationDefaults = Field(default_factory=SimulationDefaults)
    limits: SimulationLimits = Field(default_factory=SimulationLimits)
    profiles: dict[str, RiskManagementProfile] = Field(default_factory=dict)
    log_level: str = "INFO"
    component_log_levels: dict[str, str] = Field(default_factory=dict)


# ─── Loader ─────────────────────────────────────────────────────


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file and return its contents as a dict. Missing file -> {}."""
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return data


def load_settings(config_dir: Path | None = None) -> Settings:
    """
    Load and merge all YAML configuration files into a Settings object.

    Args:
        config_dir: Path to config directory. Defaults to <project_root>/config/
    """
    if config_dir is None:
        config_dir = Path(__file__).resolve().parents[3] / "config"

    settings_data = _read_yaml(config_dir / "settings.yaml")
    profiles_data = _read_yaml(config_dir / "risk_profiles.yaml")
    system = settings_data.get("system", {})

    try:
        profiles = {
            profile_id: RiskManagementProfile.model_validate(profile)
            for profile_id, profile in profiles_data.get("profiles", {}).items()
        }
        return Settings(
            simulation=SimulationDefaults(**settings_data.get("simulation", {})),
            limits=SimulationLimits(**settings_data.get("limits", {})),
            profiles=profiles,
            log_level=system.get("log_level", "INFO"),
            component_log_levels=system.get("component_log_levels") or {},
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings in {config_dir}: {exc}") from exc
