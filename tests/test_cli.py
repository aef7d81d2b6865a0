# Copyright (c) Syntropy Systems
"""Tests for stocksim CLI commands."""

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from stocksim.cli.main import app
from stocksim.errors import SolverNotFound
from stocksim.layout import ExperimentLayout
from stocksim.models.results import ModelType, RunResult

runner = CliRunner()


class FakeSolver:
    """Succeeds everywhere except the EM of iteration 2."""

    def run(self, scenario, iteration, model_type, *, root, estimate=True):
        workdir = ExperimentLayout(root).unit_dir(scenario, iteration, model_type)
        if iteration == 2 and model_type is ModelType.EM:
            return RunResult(workdir=str(workdir), success=False, exit_code=1,
                             error="Solver exited with code 1")
        return RunResult(workdir=str(workdir), success=True, exit_code=0)

    def run_in(self, workdir, *, estimate=True):
        return RunResult(workdir=str(workdir), success=True, exit_code=0)


@pytest.fixture
def experiment_file(stocksim_project: Path, om_dir: Path, em_dir: Path) -> Path:
    path = stocksim_project / "experiment.yaml"
    data = {
        "om_dir": str(om_dir),
        "em_dir": str(em_dir),
        "iterations": "1:2",
        "scenarios": [
            {
                "cases": {"F": 1},
                "om": {"fishing": {"years": "1:5", "fvals": 0.2}},
                "index": {"start_year": 2, "end_year": 5},
            }
        ],
    }
    _ = path.write_text(yaml.safe_dump(data))
    return path


class TestRunCommand:
    """Tests for stocksim run."""

    def test_dry_run(self, experiment_file: Path, stocksim_project: Path) -> None:
        """Test that a dry run lists units and creates nothing."""
        result = runner.invoke(
            app, ["run", str(experiment_file), "--root", "runs", "--dry-run"]
        )

        assert result.exit_code == 0
        assert "2 units" in result.stdout
        assert "Dry run" in result.stdout
        assert not (stocksim_project / "runs").exists()

    def test_bad_experiment_file(self, stocksim_project: Path) -> None:
        path = stocksim_project / "bad.yaml"
        _ = path.write_text("om_dir: om\n")

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 1
        assert "Error loading experiment" in result.stdout

    def test_invalid_inputs(self, experiment_file: Path) -> None:
        """Test that factor inputs are checked before anything runs."""
        data = yaml.safe_load(experiment_file.read_text())
        data["scenarios"][0]["om"]["fishing"]["fvals"] = [0.1, 0.2]
        _ = experiment_file.write_text(yaml.safe_dump(data))

        result = runner.invoke(app, ["run", str(experiment_file), "--dry-run"])

        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_solver_not_found(self, experiment_file: Path, monkeypatch) -> None:
        def missing(config):
            raise SolverNotFound("Solver executable 'ss3' not found on PATH")

        monkeypatch.setattr("stocksim.cli.run.SolverAdapter.from_config", missing)

        result = runner.invoke(app, ["run", str(experiment_file)])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_run_reports_failures(
        self, experiment_file: Path, stocksim_project: Path, monkeypatch
    ) -> None:
        """Test a full batch with one failing unit."""
        monkeypatch.setattr(
            "stocksim.cli.run.SolverAdapter.from_config", lambda config: FakeSolver()
        )

        result = runner.invoke(app, ["run", str(experiment_file), "--root", "runs"])

        assert result.exit_code == 1
        assert "1 completed" in result.stdout
        assert "1 failed" in result.stdout
        assert "Failed units" in result.stdout

        layout = ExperimentLayout(stocksim_project / "runs")
        assert layout.enumerate_completed("F1") == [1]
        assert layout.enumerate_failed("F1") == [2]

        # Rerunning resumes: nothing left to do
        result = runner.invoke(app, ["run", str(experiment_file), "--root", "runs"])
        assert result.exit_code == 0
        assert "0 units" in result.stdout


class TestStatusCommand:
    """Tests for stocksim status."""

    def test_empty_root(self, stocksim_project: Path) -> None:
        result = runner.invoke(app, ["status", "runs"])

        assert result.exit_code == 0
        assert "No scenarios" in result.stdout

    def test_status_after_run(self, experiment_file: Path, monkeypatch) -> None:
        monkeypatch.setattr(
            "stocksim.cli.run.SolverAdapter.from_config", lambda config: FakeSolver()
        )
        _ = runner.invoke(app, ["run", str(experiment_file), "--root", "runs"])

        result = runner.invoke(app, ["status", "runs", "--failed"])

        assert result.exit_code == 0
        assert "F1" in result.stdout
        assert "em_solved x1" in result.stdout
        assert "Failed iterations" in result.stdout
        assert "SolverFailure" in result.stdout


class TestHelp:
    """Tests for the top-level app."""

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "run" in result.stdout
        assert "status" in result.stdout
