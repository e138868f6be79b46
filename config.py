"""
JSON-backed settings for the simulation and its driver.

``ConfigLoader`` reads ``config.json`` and layers it over built-in
defaults, so a missing file or a partial one still yields a complete
configuration.  Values are read with ``loader[key]`` and written back
with ``loader.set(key, value)``.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from simulation import ConfigurationError, SimulationParameters

logger = logging.getLogger("hardsphere.config")

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.json")

DEFAULTS: Dict[str, Any] = {
    "simulation": {
        "L": 15.0,
        "N": 200,
        "r": 0.2,
        "m": 1.0,
        "k": 1.0,
        "dt": 0.01,
        "nu": 1.0,
        "equilibrium_time": 10.0,
        "stats_duration": 60.0,
        "max_samples": 2000,
        "max_history": 300,
    },
    # Engine steps per driver frame.
    "sub_steps": 5,
    # Frames between refreshes of the instantaneous histograms.
    "chart_every": 5,
    "seed": None,
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Load and persist settings stored in a JSON file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.debug(f"No config file at {self.path}; using defaults.")
            return copy.deepcopy(DEFAULTS)
        with open(self.path, "r", encoding="utf-8") as f:
            stored = json.load(f)
        if not isinstance(stored, dict):
            raise ConfigurationError("config", f"{self.path} must contain a JSON object")
        return _merge(DEFAULTS, stored)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and write the file."""
        self._data[key] = value
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
            f.write("\n")

    def simulation_parameters(self, **overrides: Any) -> SimulationParameters:
        """Build validated ``SimulationParameters`` from the ``simulation`` section.

        Keyword arguments take precedence over the file.
        """
        values = dict(self._data["simulation"])
        values.update(overrides)
        known = {f.name for f in fields(SimulationParameters)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(unknown[0], "unknown simulation parameter")
        return SimulationParameters(**values)
