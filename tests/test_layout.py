# Copyright (c) Syntropy Systems
"""Tests for the experiment directory layout."""

from pathlib import Path

from stocksim.layout import ExperimentLayout
from stocksim.models.results import STATUS_COMPLETED, STATUS_FAILED, ModelType, Stage, UnitRecord


class TestPrepare:
    """Tests for populating unit folders."""

    def test_prepare_copies_models(self, temp_dir: Path, om_dir: Path, em_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir / "runs")

        created = layout.prepare("F1", [1, 2], om_dir, em_dir)

        assert created == [1, 2]
        assert (temp_dir / "runs" / "F1" / "1" / "om" / "om.ctl").exists()
        assert (temp_dir / "runs" / "F1" / "2" / "em" / "em.ctl").exists()
        assert layout.unit_dir("F1", 2, ModelType.EM) == temp_dir / "runs" / "F1" / "2" / "em"

    def test_prepare_is_idempotent(self, temp_dir: Path, om_dir: Path, em_dir: Path) -> None:
        """Test that existing results survive a second prepare without force."""
        layout = ExperimentLayout(temp_dir / "runs")
        _ = layout.prepare("F1", [1], om_dir, em_dir)
        result = layout.unit_dir("F1", 1, ModelType.EM) / "ss3.par"
        _ = result.write_text("estimates")

        created = layout.prepare("F1", [1, 2], om_dir, em_dir)

        assert created == [2]
        assert result.read_text() == "estimates"

    def test_prepare_force_recopies(self, temp_dir: Path, om_dir: Path, em_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir / "runs")
        _ = layout.prepare("F1", [1], om_dir, em_dir)
        result = layout.unit_dir("F1", 1, ModelType.EM) / "ss3.par"
        _ = result.write_text("estimates")

        created = layout.prepare("F1", [1], om_dir, em_dir, force=True)

        assert created == [1]
        assert not result.exists()

    def test_no_partial_folders_left(self, temp_dir: Path, om_dir: Path, em_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir / "runs")
        _ = layout.prepare("F1", [1], om_dir, em_dir)
        names = {p.name for p in (temp_dir / "runs" / "F1" / "1").iterdir()}
        assert names == {"om", "em"}


class TestRecords:
    """Tests for status.json persistence and rescanning."""

    def test_round_trip(self, temp_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir)
        record = UnitRecord(scenario="F1", iteration=3, seed=103, status=STATUS_COMPLETED)

        layout.write_record(record)

        assert layout.read_record("F1", 3) == record
        assert layout.read_record("F1", 4) is None

    def test_unreadable_record(self, temp_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir)
        path = layout.status_path("F1", 1)
        path.parent.mkdir(parents=True)
        _ = path.write_text("{not json")

        assert layout.read_record("F1", 1) is None

    def test_enumerate(self, temp_dir: Path) -> None:
        layout = ExperimentLayout(temp_dir)
        layout.write_record(UnitRecord(scenario="F1", iteration=1, seed=1, status=STATUS_COMPLETED))
        layout.write_record(
            UnitRecord(
                scenario="F1",
                iteration=2,
                seed=2,
                status=STATUS_FAILED,
                failed_stage=Stage.OM_SOLVED,
            )
        )
        layout.write_record(UnitRecord(scenario="F1", iteration=10, seed=10, status=STATUS_COMPLETED))
        (temp_dir / "F1" / "11").mkdir()
        layout.write_record(UnitRecord(scenario="F2", iteration=1, seed=1))

        assert layout.list_scenarios() == ["F1", "F2"]
        assert layout.list_iterations("F1") == [1, 2, 10, 11]
        assert layout.enumerate_completed("F1") == [1, 10]
        assert layout.enumerate_failed("F1") == [2]
        assert layout.enumerate_completed("F2") == []
        assert layout.list_iterations("missing") == []

    def test_empty_root(self, temp_dir: Path) -> None:
        assert ExperimentLayout(temp_dir / "nothing").list_scenarios() == []
