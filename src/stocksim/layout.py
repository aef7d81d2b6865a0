# Copyright (c) Syntropy Systems
"""On-disk layout of an experiment: ``root/<scenario>/<iteration>/{om,em}``.

The tree is the durable record of progress. Each iteration folder holds a
``status.json`` with its :class:`~stocksim.models.results.UnitRecord`, so a
batch can be resumed by rescanning.
"""
from __future__ import annotations

import logging
import shutil
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import ValidationError

from stocksim.models.results import STATUS_COMPLETED, STATUS_FAILED, ModelType, UnitRecord

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

STATUS_FILE = "status.json"
PARTIAL_SUFFIX = ".partial"


def utcnow() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ExperimentLayout:
    """Directory manager for one experiment root."""

    root: Path

    def __init__(self, root: Path) -> None:
        self.root = root

    def scenario_dir(self, scenario: str) -> Path:
        return self.root / scenario

    def iteration_dir(self, scenario: str, iteration: int) -> Path:
        return self.root / scenario / str(iteration)

    def unit_dir(self, scenario: str, iteration: int, model_type: ModelType) -> Path:
        return self.iteration_dir(scenario, iteration) / model_type.value

    def status_path(self, scenario: str, iteration: int) -> Path:
        return self.iteration_dir(scenario, iteration) / STATUS_FILE

    def prepare_model(
        self,
        scenario: str,
        iteration: int,
        model_type: ModelType,
        source: Path,
        *,
        force: bool = False,
    ) -> Path:
        """Copy a base model into its unit folder.

        The copy lands in a temporary sibling first and is renamed into
        place, so a crash never leaves a half-populated folder behind.
        """
        target = self.unit_dir(scenario, iteration, model_type)
        if target.exists():
            if not force:
                return target
            shutil.rmtree(target)

        if not source.is_dir():
            msg = f"Base model folder does not exist: {source}"
            raise FileNotFoundError(msg)

        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        if partial.exists():
            shutil.rmtree(partial)
        target.parent.mkdir(parents=True, exist_ok=True)
        _ = shutil.copytree(source, partial)
        _ = partial.rename(target)
        logger.debug("Copied %s to %s", source, target)
        return target

    def prepare(
        self,
        scenario: str,
        iterations: Iterable[int],
        om_source: Path,
        em_source: Path,
        *,
        force: bool = False,
    ) -> list[int]:
        """Create OM and EM folders for each iteration.

        Existing iteration folders are left untouched unless ``force`` is
        set, in which case they are wiped and recopied. Returns the
        iterations that were (re)created.
        """
        created: list[int] = []
        for iteration in iterations:
            iteration_dir = self.iteration_dir(scenario, iteration)
            if iteration_dir.exists():
                if not force:
                    continue
                shutil.rmtree(iteration_dir)
            _ = self.prepare_model(scenario, iteration, ModelType.OM, om_source)
            _ = self.prepare_model(scenario, iteration, ModelType.EM, em_source)
            created.append(iteration)
        return created

    def write_record(self, record: UnitRecord) -> None:
        path = self.status_path(record.scenario, record.iteration)
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_text(record.model_dump_json(indent=2))

    def read_record(self, scenario: str, iteration: int) -> UnitRecord | None:
        """Read a unit's status.json; None when absent or unreadable."""
        path = self.status_path(scenario, iteration)
        if not path.exists():
            return None
        with suppress(ValidationError):
            return UnitRecord.model_validate_json(path.read_text())
        logger.warning("Ignoring unreadable %s", path)
        return None

    def list_scenarios(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def list_iterations(self, scenario: str) -> list[int]:
        scenario_dir = self.scenario_dir(scenario)
        if not scenario_dir.is_dir():
            return []
        return sorted(
            int(p.name) for p in scenario_dir.iterdir() if p.is_dir() and p.name.isdigit()
        )

    def records(self, scenario: str) -> list[UnitRecord]:
        found: list[UnitRecord] = []
        for iteration in self.list_iterations(scenario):
            record = self.read_record(scenario, iteration)
            if record is not None:
                found.append(record)
        return found

    def enumerate_completed(self, scenario: str) -> list[int]:
        return [r.iteration for r in self.records(scenario) if r.status == STATUS_COMPLETED]

    def enumerate_failed(self, scenario: str) -> list[int]:
        return [r.iteration for r in self.records(scenario) if r.status == STATUS_FAILED]
