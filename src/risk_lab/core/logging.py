"""
Logging setup for the Risk Lab simulation engine.

Engine components log under ``risk_lab.engine.<component>`` (compiler, trial,
runner, aggregator, edge, service). Each component can be given its own
level, so a single component such as ``trial`` can be traced at DEBUG while
the rest of the engine stays at INFO. The runner traces trial 0 day by day
whenever the ``trial`` logger is enabled for DEBUG.
"""

from __future__ import annotations

import logging
import logging.config
from collections.abc import Mapping
from typing import Any

from risk_lab.core.exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
ENGINE_LOGGER = "risk_lab.engine"


def setup_logging(
    level: str = "INFO",
    component_levels: Mapping[str, str] | None = None,
) -> None:
    """Configure console logging for the engine.

    Args:
        level: Level for the ``risk_lab`` tree
        component_levels: Optional per-component overrides, e.g. ``{"trial": "DEBUG"}``
    """
    loggers: dict[str, dict[str, Any]] = {
        "risk_lab": {
            "level": _level_name(level),
            "handlers": ["console"],
            "propagate": False,
        },
    }
    for component, component_level in (component_levels or {}).items():
        loggers[f"{ENGINE_LOGGER}.{component}"] = {"level": _level_name(component_level)}

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": LOG_FORMAT,
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": loggers,
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }
    logging.config.dictConfig(config)


def get_engine_logger(component: str) -> logging.Logger:
    """Logger for one engine component, e.g. ``get_engine_logger("runner")``."""
    return logging.getLogger(f"{ENGINE_LOGGER}.{component}")


def _level_name(level: str) -> str:
    name = level.upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigurationError(f"Unknown log level {level!r}")
    return name
