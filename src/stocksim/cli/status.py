# Copyright (c) Syntropy Systems
"""stocksim status command."""
from __future__ import annotations

from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from stocksim.layout import ExperimentLayout
from stocksim.models.results import STATUS_COMPLETED, STATUS_FAILED, Stage

console = Console()


def _stage_name(stage: Stage | None) -> str:
    # No stage means the worker process itself died
    return stage.value if stage is not None else "worker"


def status(
    root: Path = typer.Argument(
        Path(),
        help="Experiment root holding <scenario>/<iteration> folders",
    ),
    failed: bool = typer.Option(
        False,
        "--failed", "-f",
        help="List every failed iteration with its error",
    ),
) -> None:
    """Show per-scenario progress by rescanning the experiment folder."""
    layout = ExperimentLayout(root)
    scenarios = layout.list_scenarios()
    if not scenarios:
        console.print(f"[dim]No scenarios under {root}[/dim]")
        return

    table = Table(title=f"Experiment: {root.resolve()}")
    table.add_column("Scenario", style="cyan")
    table.add_column("Completed", style="green")
    table.add_column("Failed", style="red")
    table.add_column("Pending", style="yellow")
    table.add_column("Failing stages")

    details: list[tuple[str, int, str, str]] = []
    for scenario in scenarios:
        iterations = layout.list_iterations(scenario)
        records = {r.iteration: r for r in layout.records(scenario)}
        done = [i for i in iterations if i in records and records[i].status == STATUS_COMPLETED]
        bad = [i for i in iterations if i in records and records[i].status == STATUS_FAILED]
        stage_of = {i: _stage_name(records[i].failed_stage) for i in bad}
        stages = Counter(stage_of.values())
        table.add_row(
            scenario,
            str(len(done)),
            str(len(bad)),
            str(len(iterations) - len(done) - len(bad)),
            ", ".join(f"{stage} x{n}" for stage, n in sorted(stages.items())) or "-",
        )
        details.extend(
            (scenario, i, stage_of[i], f"{records[i].error_type}: {records[i].error_message}")
            for i in bad
        )

    console.print(table)

    if failed and details:
        failures = Table(title="Failed iterations")
        failures.add_column("Scenario", style="cyan")
        failures.add_column("Iteration")
        failures.add_column("Stage")
        failures.add_column("Error")
        for scenario, iteration, stage_name, error in details:
            failures.add_row(scenario, str(iteration), stage_name, error)
        console.print(failures)
