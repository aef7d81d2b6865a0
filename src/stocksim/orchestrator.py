# Copyright (c) Syntropy Systems
"""Batch execution of scenario x iteration units.

Each unit moves through a fixed sequence of stages::

    pending -> om_prepared -> om_mutated -> om_solved -> sampled
            -> em_prepared -> em_mutated -> em_solved -> complete

and any error raised inside a stage absorbs it into
``failed``, recording which stage failed and why. Units are independent
and share nothing beyond their own folder, so with ``max_workers > 1``
each runs in its own process.
"""
from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from stocksim.document import read_document, write_document
from stocksim.errors import StockSimError
from stocksim.layout import ExperimentLayout, utcnow
from stocksim.models.results import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RUNNING,
    BatchReport,
    ModelType,
    RunResult,
    Stage,
    UnitRecord,
)
from stocksim.mutators.fishing import change_f, fishing_rows
from stocksim.mutators.index import change_index
from stocksim.mutators.retro import change_retro
from stocksim.mutators.time_varying import apply_time_varying, prepare_time_varying
from stocksim.report import time_series
from stocksim.sampling import BIOMASS_COLUMN, sample_index

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from stocksim.models.experiment import ExperimentSpec, ScenarioSpec
    from stocksim.mutators.index import IndexObservation

logger = logging.getLogger(__name__)


class Solver(Protocol):
    """What the orchestrator needs from a solver adapter."""

    def run(
        self,
        scenario: str,
        iteration: int,
        model_type: ModelType,
        *,
        root: Path,
        estimate: bool = True,
    ) -> RunResult:
        ...

    def run_in(self, workdir: Path, *, estimate: bool = True) -> RunResult:
        ...


def validate_experiment(experiment: ExperimentSpec) -> None:
    """Check every scenario's factor inputs before any unit runs.

    Time-varying requests are dry-run against the base operating model, so
    unknown names and conflicts surface here instead of once per iteration.
    """
    files = experiment.om_files
    for scenario in experiment.scenarios:
        om = scenario.om
        try:
            if om.fishing is not None:
                _ = fishing_rows(
                    om.fishing.years,
                    om.fishing.fvals,
                    om.fishing.fisheries,
                    om.fishing.seasons,
                    om.fishing.ses,
                )
            if om.time_varying is not None:
                _ = prepare_time_varying(
                    om.time_varying.deviations,
                    read_document(experiment.om_dir / files.control),
                    read_document(experiment.om_dir / files.data),
                    read_document(experiment.om_dir / files.starter),
                    read_document(experiment.om_dir / files.report),
                    control_name=files.control,
                    data_name=files.data,
                )
        except StockSimError:
            logger.error("Scenario %s has invalid inputs", scenario.scenario_id)
            raise


@dataclass(frozen=True)
class UnitPlan:
    """Everything a worker process needs to run one unit."""

    experiment: ExperimentSpec
    scenario: ScenarioSpec
    iteration: int
    root: Path

    @property
    def scenario_id(self) -> str:
        return self.scenario.scenario_id

    @property
    def seed(self) -> int:
        return self.experiment.seed_for(self.iteration)


class UnitRunner:
    """Drives one unit through its stages, persisting progress."""

    plan: UnitPlan
    solver: Solver
    layout: ExperimentLayout
    record: UnitRecord
    _observations: list[IndexObservation] | None

    def __init__(self, plan: UnitPlan, solver: Solver) -> None:
        self.plan = plan
        self.solver = solver
        self.layout = ExperimentLayout(plan.root)
        self.record = UnitRecord(
            scenario=plan.scenario_id,
            iteration=plan.iteration,
            seed=plan.seed,
        )
        self._observations = None

    @property
    def om_dir(self) -> Path:
        return self.layout.unit_dir(self.plan.scenario_id, self.plan.iteration, ModelType.OM)

    @property
    def em_dir(self) -> Path:
        return self.layout.unit_dir(self.plan.scenario_id, self.plan.iteration, ModelType.EM)

    def run_in(self, workdir: Path, *, estimate: bool = True) -> RunResult:
        """Intermediate solver runs, recorded alongside the main ones."""
        result = self.solver.run_in(workdir, estimate=estimate)
        self.record.runs.append(result)
        return result

    def _solve(self, model_type: ModelType) -> None:
        result = self.solver.run(
            self.plan.scenario_id,
            self.plan.iteration,
            model_type,
            root=self.plan.root,
        )
        self.record.runs.append(result)
        result.raise_for_status()

    def prepare_om(self) -> None:
        _ = self.layout.prepare_model(
            self.plan.scenario_id,
            self.plan.iteration,
            ModelType.OM,
            self.plan.experiment.om_dir,
            force=True,
        )

    def mutate_om(self) -> None:
        files = self.plan.experiment.om_files
        factors = self.plan.scenario.om
        if factors.fishing is not None:
            path = self.om_dir / files.control
            fishing = factors.fishing
            write_document(
                change_f(
                    read_document(path),
                    fishing.years,
                    fishing.fvals,
                    fishing.fisheries,
                    fishing.seasons,
                    fishing.ses,
                ),
                path,
            )
        if factors.time_varying is not None:
            _ = apply_time_varying(self.om_dir, factors.time_varying.deviations, self, files)

    def solve_om(self) -> None:
        self._solve(ModelType.OM)

    def sample(self) -> None:
        case = self.plan.scenario.index
        if case is None:
            return
        report = read_document(self.om_dir / self.plan.experiment.om_files.report)
        self._observations = sample_index(
            time_series(report, BIOMASS_COLUMN), case, self.plan.seed
        )

    def prepare_em(self) -> None:
        _ = self.layout.prepare_model(
            self.plan.scenario_id,
            self.plan.iteration,
            ModelType.EM,
            self.plan.experiment.em_dir,
            force=True,
        )
        if self._observations is not None:
            path = self.em_dir / self.plan.experiment.em_files.data
            write_document(change_index(read_document(path), self._observations), path)

    def mutate_em(self) -> None:
        retro = self.plan.scenario.em.retro
        if retro is not None:
            path = self.em_dir / self.plan.experiment.em_files.starter
            write_document(change_retro(read_document(path), retro.retro_yr), path)

    def solve_em(self) -> None:
        self._solve(ModelType.EM)

    def stages(self) -> list[tuple[Stage, Callable[[], None]]]:
        return [
            (Stage.OM_PREPARED, self.prepare_om),
            (Stage.OM_MUTATED, self.mutate_om),
            (Stage.OM_SOLVED, self.solve_om),
            (Stage.SAMPLED, self.sample),
            (Stage.EM_PREPARED, self.prepare_em),
            (Stage.EM_MUTATED, self.mutate_em),
            (Stage.EM_SOLVED, self.solve_em),
        ]

    def execute(self) -> UnitRecord:
        """Run every stage in order; the first failure stops the unit."""
        record = self.record
        record.status = STATUS_RUNNING
        record.started_at = utcnow()
        self.layout.iteration_dir(record.scenario, record.iteration).mkdir(
            parents=True, exist_ok=True
        )
        self.layout.write_record(record)

        for stage, step in self.stages():
            try:
                step()
            except Exception as e:  # noqa: BLE001
                record.status = STATUS_FAILED
                record.failed_stage = stage
                record.stage = Stage.FAILED
                record.error_type = type(e).__name__
                record.error_message = str(e)
                logger.warning(
                    "Scenario %s iteration %d failed at %s: %s",
                    record.scenario,
                    record.iteration,
                    stage.value,
                    e,
                )
                break
            record.stage = stage
            self.layout.write_record(record)
        else:
            record.status = STATUS_COMPLETED
            record.stage = Stage.COMPLETE

        record.finished_at = utcnow()
        self.layout.write_record(record)
        return record


def execute_unit(plan: UnitPlan, solver: Solver) -> UnitRecord:
    """Run one unit; module-level so worker processes can pickle it."""
    return UnitRunner(plan, solver).execute()


def _crashed_record(plan: UnitPlan, error: BaseException) -> UnitRecord:
    return UnitRecord(
        scenario=plan.scenario_id,
        iteration=plan.iteration,
        seed=plan.seed,
        status=STATUS_FAILED,
        stage=Stage.FAILED,
        error_type=type(error).__name__,
        error_message=str(error),
        finished_at=utcnow(),
    )


def plan_batch(
    experiment: ExperimentSpec,
    root: Path,
    *,
    retry_failed: bool = False,
    force: bool = False,
) -> tuple[list[UnitPlan], dict[str, list[int]]]:
    """Decide which units to run; returns the plans and the skipped iterations.

    Completed units are skipped, as are failed ones unless ``retry_failed``.
    ``force`` reruns everything.
    """
    layout = ExperimentLayout(root)
    plans: list[UnitPlan] = []
    skipped: dict[str, list[int]] = {}
    for scenario in experiment.scenarios:
        for iteration in experiment.iterations:
            record = None if force else layout.read_record(scenario.scenario_id, iteration)
            if record is not None and (
                record.status == STATUS_COMPLETED
                or (record.status == STATUS_FAILED and not retry_failed)
            ):
                skipped.setdefault(scenario.scenario_id, []).append(iteration)
                continue
            plans.append(
                UnitPlan(experiment=experiment, scenario=scenario, iteration=iteration, root=root)
            )
    return plans, skipped


def run_batch(
    experiment: ExperimentSpec,
    root: Path,
    solver: Solver,
    *,
    max_workers: int = 1,
    retry_failed: bool = False,
    force: bool = False,
    progress: Callable[[UnitRecord], None] | None = None,
    validate: bool = True,
) -> BatchReport:
    """Run every pending unit of an experiment.

    Input problems raise before anything runs unless ``validate`` is off
    because the caller already checked them. Failures inside a unit are
    recorded and the batch continues.
    """
    if validate:
        validate_experiment(experiment)
    plans, skipped = plan_batch(experiment, root, retry_failed=retry_failed, force=force)
    logger.info("Running %d units (%d skipped)", len(plans), sum(map(len, skipped.values())))

    records: list[UnitRecord] = []
    if max_workers <= 1:
        for plan in plans:
            record = execute_unit(plan, solver)
            records.append(record)
            if progress is not None:
                progress(record)
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as pool:
            futures = {pool.submit(execute_unit, plan, solver): plan for plan in plans}
            for future in as_completed(futures):
                plan = futures[future]
                try:
                    record = future.result()
                except Exception as e:  # noqa: BLE001
                    logger.error(
                        "Worker for scenario %s iteration %d crashed: %s",
                        plan.scenario_id,
                        plan.iteration,
                        e,
                    )
                    record = _crashed_record(plan, e)
                    ExperimentLayout(root).write_record(record)
                records.append(record)
                if progress is not None:
                    progress(record)

    records.sort(key=lambda r: (r.scenario, r.iteration))
    return BatchReport(records=records, skipped=skipped)
