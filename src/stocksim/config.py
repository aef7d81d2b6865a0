# Copyright (c) Syntropy Systems
"""Configuration management for stocksim."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml


@dataclass
class StockSimConfig:
    """Configuration for stocksim."""

    # Solver executable name, looked up on PATH
    solver: str = "ss3"

    # Stem the solver's .par/.rep/.log/.bar outputs are renamed to
    artifact_stem: str = "ss3"

    # Seconds to wait after the solver exits before touching its outputs
    settle_delay: float = 0.05

    # Per-run wall clock limit in seconds (None = unlimited)
    solver_timeout: float | None = None

    # Grace period before SIGKILL after SIGTERM (seconds)
    kill_grace_period: int = 10

    # Compute the Hessian (drops -nohess)
    hess: bool = False

    # Extra solver command line options
    solver_options: str = ""

    # Units run concurrently, each in its own process
    max_workers: int = 1


def find_stocksim_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .stocksim directory by walking up from start_path.

    Returns None if no .stocksim directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        stocksim_dir = current / ".stocksim"
        if stocksim_dir.is_dir():
            return stocksim_dir
        current = current.parent

    # Check root
    stocksim_dir = current / ".stocksim"
    if stocksim_dir.is_dir():
        return stocksim_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global stocksim config directory (~/.stocksim)."""
    return Path.home() / ".stocksim"


def load_config(stocksim_dir: Path | None = None) -> StockSimConfig:
    """Load configuration from .stocksim/config.yaml or defaults.

    Looks for config in:
    1. Provided stocksim_dir
    2. Nearest .stocksim directory walking up
    3. ~/.stocksim/config.yaml
    4. Defaults

    Values of the wrong type are ignored.
    """
    config = StockSimConfig()

    config_path = None

    if stocksim_dir is not None:
        config_path = stocksim_dir / "config.yaml"
    else:
        found_dir = find_stocksim_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        solver = data.get("solver")
        if isinstance(solver, str) and solver:
            config.solver = solver
        artifact_stem = data.get("artifact_stem")
        if isinstance(artifact_stem, str) and artifact_stem:
            config.artifact_stem = artifact_stem
        settle_delay = data.get("settle_delay")
        if isinstance(settle_delay, (int, float)) and not isinstance(settle_delay, bool):
            config.settle_delay = float(settle_delay)
        solver_timeout = data.get("solver_timeout")
        if isinstance(solver_timeout, (int, float)) and not isinstance(solver_timeout, bool):
            config.solver_timeout = float(solver_timeout)
        kill_grace_period = data.get("kill_grace_period")
        if isinstance(kill_grace_period, (int, float)) and not isinstance(kill_grace_period, bool):
            config.kill_grace_period = int(kill_grace_period)
        hess = data.get("hess")
        if isinstance(hess, bool):
            config.hess = hess
        solver_options = data.get("solver_options")
        if isinstance(solver_options, str):
            config.solver_options = solver_options
        max_workers = data.get("max_workers")
        if isinstance(max_workers, int) and not isinstance(max_workers, bool) and max_workers > 0:
            config.max_workers = max_workers

    return config
