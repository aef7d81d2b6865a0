# Copyright (c) Syntropy Systems
"""stocksim run command."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from stocksim.config import load_config
from stocksim.errors import SolverNotFound, StockSimError
from stocksim.models.experiment import ExperimentSpec, ScenarioSpec
from stocksim.models.results import STATUS_COMPLETED, BatchReport, UnitRecord
from stocksim.orchestrator import plan_batch, run_batch, validate_experiment
from stocksim.solver import SolverAdapter

console = Console()


def describe_factors(scenario: ScenarioSpec) -> str:
    """One-line summary of the factors a scenario applies."""
    parts: list[str] = []
    if scenario.om.fishing is not None:
        fishing = scenario.om.fishing
        parts.append(f"F x{len(fishing.years)} yrs")
    if scenario.om.time_varying is not None:
        parts.append("tv: " + ", ".join(scenario.om.time_varying.deviations))
    if scenario.index is not None:
        index = scenario.index
        parts.append(f"index {index.start_year}-{index.end_year}/{index.frequency}")
    if scenario.em.retro is not None:
        parts.append(f"retro {scenario.em.retro.retro_yr}")
    return "; ".join(parts) or "-"


def print_failures(report: BatchReport) -> None:
    grouped = report.failures_by_scenario()
    if not grouped:
        return
    table = Table(title="Failed units")
    table.add_column("Scenario", style="cyan")
    table.add_column("Iteration")
    table.add_column("Stage")
    table.add_column("Error")
    for scenario, records in grouped.items():
        for record in records:
            table.add_row(
                scenario,
                str(record.iteration),
                record.failed_stage.value if record.failed_stage else "-",
                f"{record.error_type}: {record.error_message}",
            )
    console.print(table)


def run(  # noqa: PLR0913
    experiment_file: Path = typer.Argument(
        ...,
        help="Path to experiment YAML file",
        exists=True,
    ),
    root: Path = typer.Option(
        Path(),
        "--root", "-r",
        help="Folder receiving <scenario>/<iteration>/{om,em}",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers", "-w",
        help="Units to run in parallel (overrides config)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Rerun every unit, including completed ones",
    ),
    retry_failed: bool = typer.Option(
        False,
        "--retry-failed",
        help="Rerun units that failed in a previous batch",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-run solver time limit in seconds (overrides config)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run", "-n",
        help="Validate and list units without running the solver",
    ),
) -> None:
    """Run every scenario x iteration unit of an experiment.

    Completed units are skipped, so rerunning resumes an interrupted batch.
    """
    config = load_config()

    try:
        experiment = ExperimentSpec.from_yaml(experiment_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading experiment:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title=f"Experiment: {experiment_file.name}")
    table.add_column("Scenario", style="cyan")
    table.add_column("Factors")
    for scenario in experiment.scenarios:
        table.add_row(scenario.scenario_id, describe_factors(scenario))
    console.print(table)

    try:
        validate_experiment(experiment)
    except (StockSimError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    plans, skipped = plan_batch(experiment, root, retry_failed=retry_failed, force=force)
    n_skipped = sum(len(v) for v in skipped.values())
    console.print(
        f"\n[bold]{len(plans)} units[/bold] to run"
        + (f" [dim]({n_skipped} skipped)[/dim]" if n_skipped else "")
    )

    if dry_run:
        console.print("\n[yellow]Dry run - solver not started[/yellow]")
        return

    if timeout is not None:
        config.solver_timeout = timeout
    try:
        solver = SolverAdapter.from_config(config)
    except SolverNotFound as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    def progress(record: UnitRecord) -> None:
        mark = "[green]ok[/green]" if record.status == STATUS_COMPLETED else "[red]failed[/red]"
        console.print(f"  {record.scenario} / {record.iteration}: {mark}")

    # Inputs were validated above
    report = run_batch(
        experiment,
        root,
        solver,
        max_workers=workers or config.max_workers,
        retry_failed=retry_failed,
        force=force,
        progress=progress,
        validate=False,
    )

    console.print(
        f"\n[green]{len(report.completed)} completed[/green], "
        f"[red]{len(report.failed)} failed[/red]"
    )
    print_failures(report)
    if report.failed:
        raise typer.Exit(1)
