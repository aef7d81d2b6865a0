# Copyright (c) Syntropy Systems
"""Experiment definition: base models, scenarios and factor cases."""

from __future__ import annotations

from pathlib import Path
from typing import cast

import yaml
from pydantic import Field, field_validator, model_validator

from .base import StrictModel


def expand_sequence(value: object) -> object:
    """Accept ``"a:b"`` ranges and scalars where a list is expected.

    ``"1:50"`` becomes ``[1, ..., 50]`` and a bare scalar becomes a
    one-element list, which the mutators then broadcast.
    """
    if isinstance(value, str) and ":" in value:
        lo, hi = value.split(":", 1)
        try:
            start, stop = int(lo), int(hi)
        except ValueError as e:
            msg = f"Invalid range '{value}', expected 'start:end'"
            raise ValueError(msg) from e
        step = 1 if stop >= start else -1
        return list(range(start, stop + step, step))
    if isinstance(value, (int, float, str)):
        return [value]
    return value


class FishingCase(StrictModel):
    """Fishing-mortality schedule written into the control file."""

    years: list[int]
    fvals: list[float]
    fisheries: list[int] = Field(default_factory=lambda: [1])
    seasons: list[int] = Field(default_factory=lambda: [1])
    ses: list[float] = Field(default_factory=lambda: [0.005])

    @field_validator("years", "fvals", "fisheries", "seasons", "ses", mode="before")
    @classmethod
    def _expand(cls, value: object) -> object:
        return expand_sequence(value)


class TimeVaryingCase(StrictModel):
    """Additive environmental deviations keyed by control-file parameter name."""

    deviations: dict[str, list[float]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_deviations(cls, data: object) -> object:
        if isinstance(data, dict) and "deviations" not in data:
            return {"deviations": cast("dict[str, list[float]]", data)}
        return data


class IndexCase(StrictModel):
    """Survey index design: which years to sample and with what error."""

    start_year: int
    end_year: int
    frequency: int = 1
    sd_obs: float = 0.1
    fleet: int = 2
    season: int = 1

    @model_validator(mode="after")
    def _check_design(self) -> IndexCase:
        if self.frequency < 1:
            msg = "Index frequency must be at least 1"
            raise ValueError(msg)
        if self.end_year < self.start_year:
            msg = "Index end_year must not precede start_year"
            raise ValueError(msg)
        if self.sd_obs < 0:
            msg = "Index sd_obs must be non-negative"
            raise ValueError(msg)
        return self

    @property
    def years(self) -> list[int]:
        return list(range(self.start_year, self.end_year + 1, self.frequency))


class RetroCase(StrictModel):
    """Retrospective truncation, as a year offset relative to the end year."""

    retro_yr: int = 0

    @field_validator("retro_yr")
    @classmethod
    def _check_offset(cls, value: int) -> int:
        if value > 0:
            msg = f"retro_yr must be 0 or negative, got {value}"
            raise ValueError(msg)
        return value


class OmFactors(StrictModel):
    fishing: FishingCase | None = None
    time_varying: TimeVaryingCase | None = None


class EmFactors(StrictModel):
    retro: RetroCase | None = None


class ModelFiles(StrictModel):
    """File names inside a model folder."""

    control: str
    data: str = "ss3.dat"
    starter: str = "starter.ss"
    par: str = "ss3.par"
    report: str = "Report.sso"


class ScenarioSpec(StrictModel):
    """One deterministic combination of factor cases."""

    name: str | None = None
    cases: dict[str, str | int] = Field(default_factory=dict)
    om: OmFactors = Field(default_factory=OmFactors)
    em: EmFactors = Field(default_factory=EmFactors)
    index: IndexCase | None = None

    @model_validator(mode="after")
    def _check_identity(self) -> ScenarioSpec:
        if not self.name and not self.cases:
            msg = "Scenario needs a 'name' or at least one entry in 'cases'"
            raise ValueError(msg)
        return self

    @property
    def scenario_id(self) -> str:
        """Explicit name, else the concatenated case identifiers (``F1-D0``)."""
        if self.name:
            return self.name
        return "-".join(f"{factor}{case}" for factor, case in self.cases.items())


class ExperimentSpec(StrictModel):
    """A batch of scenarios over shared base models and iterations."""

    om_dir: Path
    em_dir: Path
    iterations: list[int]
    seed_base: int = 0
    om_files: ModelFiles = Field(default_factory=lambda: ModelFiles(control="om.ctl"))
    em_files: ModelFiles = Field(default_factory=lambda: ModelFiles(control="em.ctl"))
    scenarios: list[ScenarioSpec]

    @field_validator("iterations", mode="before")
    @classmethod
    def _expand_iterations(cls, value: object) -> object:
        return expand_sequence(value)

    @model_validator(mode="after")
    def _check_unique(self) -> ExperimentSpec:
        ids = [s.scenario_id for s in self.scenarios]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"Duplicate scenario identifiers: {', '.join(duplicates)}"
            raise ValueError(msg)
        if len(set(self.iterations)) != len(self.iterations):
            msg = "Iteration numbers must be unique"
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> ExperimentSpec:
        """Load an experiment from YAML; relative model dirs resolve next to it."""
        with path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        if "scenarios" not in data:
            msg = "Experiment config must have 'scenarios' field"
            raise ValueError(msg)

        spec = cls.model_validate(data)
        base = path.parent
        return spec.model_copy(
            update={
                "om_dir": spec.om_dir if spec.om_dir.is_absolute() else base / spec.om_dir,
                "em_dir": spec.em_dir if spec.em_dir.is_absolute() else base / spec.em_dir,
            }
        )

    def seed_for(self, iteration: int) -> int:
        """Deterministic seed for an iteration, shared across scenarios."""
        return self.seed_base + iteration
