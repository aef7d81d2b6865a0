# Copyright (c) Syntropy Systems
"""Pydantic models for solver runs and per-unit records."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from stocksim.errors import SolverFailure, SolverTimeout

from .base import StockSimBaseModel


class ModelType(str, Enum):
    """Which half of an iteration a solver run belongs to."""

    OM = "om"
    EM = "em"


class Stage(str, Enum):
    """Lifecycle of one (scenario, iteration) unit, in execution order."""

    PENDING = "pending"
    OM_PREPARED = "om_prepared"
    OM_MUTATED = "om_mutated"
    OM_SOLVED = "om_solved"
    SAMPLED = "sampled"
    EM_PREPARED = "em_prepared"
    EM_MUTATED = "em_mutated"
    EM_SOLVED = "em_solved"
    COMPLETE = "complete"
    FAILED = "failed"


STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class RunResult(StockSimBaseModel):
    """Outcome of one solver invocation."""

    workdir: str
    command: list[str] = Field(default_factory=list)
    scenario: str | None = None
    iteration: int | None = None
    model_type: ModelType | None = None
    success: bool
    exit_code: int | None = None
    timed_out: bool = False
    error: str | None = None
    artifacts: dict[str, str] = Field(default_factory=dict)
    missing: list[str] = Field(default_factory=list)
    duration_seconds: float | None = None

    def raise_for_status(self) -> None:
        """Raise SolverFailure (or SolverTimeout) if the run did not succeed."""
        if self.success:
            return
        message = self.error or f"Solver failed in {self.workdir}"
        if self.timed_out:
            raise SolverTimeout(message, result=self)
        raise SolverFailure(message, result=self)


class UnitRecord(StockSimBaseModel):
    """Persisted state of one (scenario, iteration) unit (status.json)."""

    scenario: str
    iteration: int
    seed: int
    status: str = STATUS_RUNNING
    stage: Stage = Stage.PENDING
    failed_stage: Stage | None = None
    error_type: str | None = None
    error_message: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    runs: list[RunResult] = Field(default_factory=list)


class BatchReport(StockSimBaseModel):
    """Records produced by one orchestrator batch."""

    records: list[UnitRecord] = Field(default_factory=list)
    skipped: dict[str, list[int]] = Field(default_factory=dict)

    @property
    def completed(self) -> list[UnitRecord]:
        return [r for r in self.records if r.status == STATUS_COMPLETED]

    @property
    def failed(self) -> list[UnitRecord]:
        return [r for r in self.records if r.status == STATUS_FAILED]

    def failures_by_scenario(self) -> dict[str, list[UnitRecord]]:
        """Group failed units by scenario, iterations in ascending order."""
        grouped: dict[str, list[UnitRecord]] = {}
        for record in sorted(self.failed, key=lambda r: (r.scenario, r.iteration)):
            grouped.setdefault(record.scenario, []).append(record)
        return grouped
