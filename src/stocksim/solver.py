# Copyright (c) Syntropy Systems
"""Adapter around the external stock-assessment solver executable.

The solver is a blocking batch program that reads its input files from the
current directory and writes outputs next to them. Each invocation runs in
its own process with ``cwd`` set to the model folder.
"""
from __future__ import annotations

import functools
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from stocksim.errors import SolverNotFound
from stocksim.models.results import ModelType, RunResult
from stocksim.runner import SolverProcess

if TYPE_CHECKING:
    from stocksim.config import StockSimConfig

logger = logging.getLogger(__name__)

NOHESS_FLAG = "-nohess"
NOEST_FLAG = "-noest"
RENAMED_EXTENSIONS = ("par", "rep", "log", "bar")
SOLVER_OUTPUT = "solver.out"


@functools.lru_cache(maxsize=None)
def resolve_executable(name: str) -> Path:
    """Locate the solver on PATH (``.exe`` suffix handled by shutil.which).

    Raises:
        SolverNotFound: If the executable is not on PATH.

    """
    found = shutil.which(name)
    if found is None:
        msg = (
            f"Solver executable '{name}' was not found on PATH. Install it and "
            "make sure its folder is on PATH, or set 'solver' in .stocksim/config.yaml."
        )
        raise SolverNotFound(msg)
    return Path(found)


def sanitize_options(options: str, exclude: str) -> str:
    """Drop user option tokens containing a flag the adapter injects itself."""
    kept: list[str] = []
    for token in options.split():
        if exclude in token:
            logger.warning("Removed solver option %s", token)
            continue
        kept.append(token)
    return " ".join(kept)


@dataclass
class SolverAdapter:
    """Runs the solver inside model folders.

    Holds everything that would otherwise be global: the resolved
    executable, the stable artifact stem, and timing policy.
    """

    executable: Path
    artifact_stem: str = "ss3"
    settle_delay: float = 0.05
    timeout: float | None = None
    kill_grace_period: float = 10.0
    hess: bool = False
    options: str = ""
    required_outputs: tuple[str, ...] = ("Report.sso",)

    @classmethod
    def from_config(cls, config: StockSimConfig) -> SolverAdapter:
        return cls(
            executable=resolve_executable(config.solver),
            artifact_stem=config.artifact_stem,
            settle_delay=config.settle_delay,
            timeout=config.solver_timeout,
            kill_grace_period=config.kill_grace_period,
            hess=config.hess,
            options=config.solver_options,
        )

    def build_command(self, *, estimate: bool = True) -> list[str]:
        options = sanitize_options(self.options, NOHESS_FLAG)
        options = sanitize_options(options, NOEST_FLAG)
        command = [str(self.executable)]
        if not self.hess:
            command.append(NOHESS_FLAG)
        if not estimate:
            command.append(NOEST_FLAG)
        command.extend(options.split())
        return command

    def run(
        self,
        scenario: str,
        iteration: int,
        model_type: ModelType,
        *,
        root: Path,
        estimate: bool = True,
    ) -> RunResult:
        """Run the OM or EM of one iteration under ``root/scenario/iteration``."""
        logger.info(
            "Running %s for scenario: %s; iteration: %d",
            model_type.value.upper(),
            scenario,
            iteration,
        )
        workdir = root / scenario / str(iteration) / model_type.value
        result = self.run_in(workdir, estimate=estimate)
        return result.model_copy(
            update={"scenario": scenario, "iteration": iteration, "model_type": model_type}
        )

    def run_in(self, workdir: Path, *, estimate: bool = True) -> RunResult:
        """Run the solver once in ``workdir`` and collect its artifacts."""
        command = self.build_command(estimate=estimate)
        process = SolverProcess(command, workdir, workdir / SOLVER_OUTPUT)
        started = time.monotonic()

        try:
            process.start()
        except OSError as e:
            return RunResult(
                workdir=str(workdir),
                command=command,
                success=False,
                error=f"Could not start solver: {e}",
            )

        timed_out = False
        try:
            exit_code = process.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            logger.warning(
                "Solver in %s exceeded %ss, terminating", workdir, self.timeout
            )
            exit_code = process.kill(self.kill_grace_period)

        # Outputs can land late on networked file systems
        time.sleep(self.settle_delay)

        artifacts = self._rename_artifacts(workdir)
        for name in self.required_outputs:
            if (workdir / name).exists():
                artifacts[name] = str(workdir / name)
        missing = [name for name in self.required_outputs if name not in artifacts]

        error = None
        if timed_out:
            error = f"Solver timed out after {self.timeout}s in {workdir}"
        elif exit_code != 0:
            error = f"Solver exited with code {exit_code} in {workdir}"
        elif missing:
            error = f"Solver left no {', '.join(missing)} in {workdir}"

        return RunResult(
            workdir=str(workdir),
            command=command,
            success=error is None,
            exit_code=exit_code,
            timed_out=timed_out,
            error=error,
            artifacts=artifacts,
            missing=missing,
            duration_seconds=time.monotonic() - started,
        )

    def _rename_artifacts(self, workdir: Path) -> dict[str, str]:
        """Rename ``<exe stem>.<ext>`` outputs to ``<artifact_stem>.<ext>``."""
        stem = self.executable.stem
        artifacts: dict[str, str] = {}
        for ext in RENAMED_EXTENSIONS:
            source = workdir / f"{stem}.{ext}"
            target = workdir / f"{self.artifact_stem}.{ext}"
            if source != target and source.exists():
                _ = source.replace(target)
            if target.exists():
                artifacts[f"{self.artifact_stem}.{ext}"] = str(target)
        return artifacts
