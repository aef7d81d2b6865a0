# Copyright (c) Syntropy Systems
"""Time-varying parameters through environmental links.

A parameter that is constant in the base model is made to vary by year as
``par(y) = par + link * env(y)`` (on the log scale for catchability), with
the link fixed at 1 and ``env(y)`` a new environmental variable holding the
requested deviations.

The solver, not this module, numbers the parameters it creates for the
links. The rewrite is therefore three explicit steps:

1. :func:`prepare_time_varying` rewrites control, data and starter files
   and switches the starter to read initial values from the control file.
2. The caller runs the solver once with estimation disabled, which writes a
   report listing the new link parameters with their final numbers.
3. :func:`finalize_time_varying` switches the starter back to the par file
   and inserts unit link values into the par file at those numbers.

:func:`apply_time_varying` runs all three against a model folder. The
control file must be solver-generated (``control.ss_new`` style): its
comment annotations are the only way to find the sections edited here.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from stocksim.document import (
    append_after,
    format_row,
    leading_token,
    locate,
    locate_all,
    read_document,
    replace_line,
    set_leading_value,
    splice_block,
    value_tokens,
    with_value_tokens,
    write_document,
)
from stocksim.errors import Conflict, ContractViolation, FormatMismatch
from stocksim.report import find_parameter, read_parameters, time_varying_parameters

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from stocksim.document import ConfigDocument
    from stocksim.models.experiment import ModelFiles
    from stocksim.models.results import RunResult
    from stocksim.report import ReportParameter

logger = logging.getLogger(__name__)

# Control file markers
SR_SECTION = "#_Spawner-Recruitment"
Q_SECTION = "#_Q_setup"
SEL_SECTION = "selex_types"
MG_ENV_SETUP = "#custom_MG-env_setup (0/1)"
SEL_ENV_SETUP = "#_custom_sel-env_setup (0/1)"
DEV_ADJUST = "#_env/block/dev_adjust_method"
SR_ENV_LINK = "#_SR_env_link"
SR_ENVLINK_PARM = "# SR_envlink"
Q_SETUP_END = "#_Cond 0 #_If q has random component"
Q_PARMS = "#_Q_parms(if_any)"
Q_POWER = "Q_power_"

# Data file markers
START_YEAR = "#_styr"
END_YEAR = "#_endyr"
N_AREAS = "#_N_areas"
N_ENV_VARIABLES = "#_N_environ_variables"
N_ENV_OBS = "#_N_environ_obs"
SIZEFREQ = "# N sizefreq methods to read"

# Starter file marker
USE_PAR = "# 0=use init values in control file; 1=use ss3.par"

ENV_LINK_SPEC = "-1 2 1 0 -1 99 -2 # env link specification i.e fixed to 1"
SR_LINK_SPEC = "-5 5 1 0 -1 99 -3 # SR_envlink"
Q_LINK_SPEC = "-2 2 1 0 -1 99 -5 # {name}"
SR_TARGET_COMMENT = "#_SR_env_target_0=none;1=devs;_2=R0;_3=steepness"
UNIT_LINK = "1.00000000000"

# 0-based column of the env-var link in a 14-column parameter line
ENV_LINK_FIELD = 7
MIN_PARAMETER_FIELDS = 14
# 0-based column of the env-var link in a Q setup row
Q_ENV_FIELD = 1

SELECTIVITY_LABEL = re.compile(r"Sel_.._")


class ParameterCategory(str, Enum):
    """Section of the control file a parameter lives in."""

    GROWTH = "mg"
    RECRUITMENT = "sr"
    CATCHABILITY = "qs"
    SELECTIVITY = "sx"


class RecruitmentTarget(int, Enum):
    """Which stock-recruitment quantity an environmental link drives."""

    DEVS = 1
    R0 = 2
    STEEPNESS = 3


@dataclass(frozen=True)
class TimeVaryingTarget:
    """A parameter scheduled to become time-varying."""

    name: str
    category: ParameterCategory
    env_variable: int
    link_label: str
    deviations: tuple[float, ...]


@dataclass(frozen=True)
class TimeVaryingPlan:
    """Documents rewritten by the first step, plus what the last step needs."""

    control: ConfigDocument
    data: ConfigDocument
    starter: ConfigDocument
    targets: tuple[TimeVaryingTarget, ...]


@dataclass(frozen=True)
class TimeVaryingResult:
    par: ConfigDocument
    starter: ConfigDocument
    parameter_numbers: dict[str, int]


class IntermediateSolver(Protocol):
    def run_in(self, workdir: Path, *, estimate: bool = True) -> RunResult:
        ...


def year_range(data: ConfigDocument) -> tuple[int, int]:
    """Start and end year declared in a data file."""
    start = int(leading_token(data[locate(data, START_YEAR)]))
    end = int(leading_token(data[locate(data, END_YEAR)]))
    return start, end


def fleet_names(data: ConfigDocument) -> list[str]:
    """Fleet and survey names, from the ``%``-separated line after ``#_N_areas``."""
    index = locate(data, N_AREAS) + 1
    if index >= len(data):
        raise FormatMismatch(N_AREAS, data.source, detail="no fleet names line follows")
    return [name.strip() for name in data[index].split("%") if name.strip()]


def classify_parameters(
    control: ConfigDocument,
    names: Sequence[str],
    fleets: Sequence[str],
) -> dict[str, ParameterCategory]:
    """Assign each parameter to a control-file section by its first line.

    Names that are fleet names are catchability targets wherever they first
    appear; when that disagrees with the position a diagnostic is logged.
    """
    sr_start = locate(control, SR_SECTION)
    q_start = locate(control, Q_SECTION)
    sel_start = locate(control, SEL_SECTION)

    categories: dict[str, ParameterCategory] = {}
    for name in names:
        hits = locate_all(control, name)
        if not hits:
            msg = (
                f"Could not locate the parameter {name} in the control file "
                f"{control.source or ''}. Check spelling and case, and that the "
                "control file was generated by the solver (control.ss_new)."
            )
            raise ContractViolation(msg)
        pos = hits[0]
        if pos in (sr_start, q_start, sel_start):
            msg = (
                f"Parameter {name} first appears on section boundary line "
                f"{pos + 1}; cannot tell which section it belongs to"
            )
            raise ContractViolation(msg)

        if pos < sr_start:
            by_position = ParameterCategory.GROWTH
        elif pos < q_start:
            by_position = ParameterCategory.RECRUITMENT
        elif pos < sel_start:
            by_position = ParameterCategory.CATCHABILITY
        else:
            by_position = ParameterCategory.SELECTIVITY

        category = by_position
        if name in fleets:
            category = ParameterCategory.CATCHABILITY
            if by_position is not ParameterCategory.CATCHABILITY:
                logger.warning(
                    "%s is a fleet name, treating it as catchability although its "
                    "first line (%d) lies in the %s section",
                    name,
                    pos + 1,
                    by_position.name.lower(),
                )
        categories[name] = category
    return categories


def recruitment_target(name: str) -> RecruitmentTarget:
    lowered = name.lower()
    if "r0" in lowered:
        return RecruitmentTarget.R0
    if "steep" in lowered:
        return RecruitmentTarget.STEEPNESS
    if "dev" in lowered:
        return RecruitmentTarget.DEVS
    msg = (
        f"Did not recognize {name} as recruitment deviations, virgin "
        "recruitment (R0), or steepness; rename it and rerun the scenario"
    )
    raise ContractViolation(msg)


def _validate(
    deviations: Mapping[str, Sequence[float]],
    categories: Mapping[str, ParameterCategory],
    n_years: int,
    base_time_varying: set[str],
    control: ConfigDocument,
) -> None:
    for name, values in deviations.items():
        if len(values) != n_years:
            msg = (
                f"Deviations for {name} have length {len(values)}; the data file "
                f"spans {n_years} years"
            )
            raise ContractViolation(msg)

    already = sorted(set(deviations) & base_time_varying)
    if already:
        msg = (
            f"Already time-varying in the base operating model: {', '.join(already)}. "
            "Time-varying properties of such parameters cannot be changed."
        )
        raise Conflict(msg)

    recruitment = [n for n, c in categories.items() if c is ParameterCategory.RECRUITMENT]
    if len(recruitment) > 1:
        msg = (
            "Only one stock-recruitment parameter may vary with an environmental "
            f"covariate, got {', '.join(recruitment)}"
        )
        raise Conflict(msg)
    if recruitment:
        _ = recruitment_target(recruitment[0])
        target_line = locate(control, SR_ENV_LINK) + 1
        if int(leading_token(control[target_line])) > 0:
            msg = (
                "The base operating model already links a stock-recruitment "
                "parameter to the environment; remove that link and rerun"
            )
            raise Conflict(msg)


def _link_parameter_line(control: ConfigDocument, name: str, env_variable: int) -> ConfigDocument:
    index = locate(control, name)
    line = control[index]
    tokens = value_tokens(line)
    if len(tokens) < MIN_PARAMETER_FIELDS:
        raise FormatMismatch(
            name,
            control.source,
            detail=f"parameter line has {len(tokens)} values, expected {MIN_PARAMETER_FIELDS}",
        )
    tokens[ENV_LINK_FIELD] = str(-env_variable)
    return replace_line(control, index, with_value_tokens(line, tokens))


def _activate(control: ConfigDocument, index: int, marker: str, value: int) -> ConfigDocument:
    """Write ``value`` in front of ``marker``, dropping any ``#_Cond`` prefix."""
    line = control[index]
    return replace_line(control, index, f"{value} {line[line.find(marker) :]}")


def _enable_env_setup(
    control: ConfigDocument,
    setup_marker: str,
    dev_adjust_occurrence: int,
) -> ConfigDocument:
    setup = locate(control, setup_marker)
    control = _activate(control, setup, setup_marker, 0)
    control = replace_line(control, setup + 1, ENV_LINK_SPEC)
    adjust = locate_all(control, DEV_ADJUST)
    if len(adjust) <= dev_adjust_occurrence:
        raise FormatMismatch(
            DEV_ADJUST,
            control.source,
            detail=f"expected at least {dev_adjust_occurrence + 1} occurrences",
        )
    return _activate(control, adjust[dev_adjust_occurrence], DEV_ADJUST, 1)


def prepare_time_varying(
    deviations: Mapping[str, Sequence[float]],
    control: ConfigDocument,
    data: ConfigDocument,
    starter: ConfigDocument,
    base_report: ConfigDocument,
    *,
    control_name: str,
    data_name: str,
) -> TimeVaryingPlan:
    """Step one: link each parameter to a new environmental variable.

    Nothing is rewritten until every request has been validated.

    Raises:
        ContractViolation: Unknown names, wrong deviation lengths, an
            unrecognized stock-recruitment parameter.
        Conflict: A parameter already time-varying in the base model, or
            more than one stock-recruitment target.
        FormatMismatch: A required marker is missing.

    """
    if not deviations:
        msg = "No time-varying parameters requested"
        raise ContractViolation(msg)

    start_year, end_year = year_range(data)
    years = list(range(start_year, end_year + 1))
    fleets = fleet_names(data)
    categories = classify_parameters(control, list(deviations), fleets)
    _validate(
        deviations,
        categories,
        len(years),
        time_varying_parameters(base_report),
        control,
    )

    n_vars_index = locate(data, N_ENV_VARIABLES)
    obs_index = locate(data, N_ENV_OBS)
    sizefreq_index = locate(data, SIZEFREQ, start=obs_index + 1)
    env_rows = list(data.lines[obs_index + 1 : sizefreq_index])
    env_variable = int(leading_token(data[n_vars_index]))

    def by_category(*wanted: ParameterCategory) -> list[str]:
        return [n for n in deviations if categories[n] in wanted]

    targets: list[TimeVaryingTarget] = []

    def add_target(name: str, category: ParameterCategory, label: str) -> None:
        values = tuple(float(v) for v in deviations[name])
        targets.append(
            TimeVaryingTarget(
                name=name,
                category=category,
                env_variable=env_variable,
                link_label=label,
                deviations=values,
            )
        )
        env_rows.extend(
            format_row((year, env_variable, value)) for year, value in zip(years, values)
        )

    if by_category(ParameterCategory.GROWTH):
        control = _enable_env_setup(control, MG_ENV_SETUP, 0)
    if by_category(ParameterCategory.SELECTIVITY):
        control = _enable_env_setup(control, SEL_ENV_SETUP, 1)

    for name in by_category(ParameterCategory.GROWTH, ParameterCategory.SELECTIVITY):
        env_variable += 1
        control = _link_parameter_line(control, name, env_variable)
        add_target(name, categories[name], f"{name}_ENV")

    for name in by_category(ParameterCategory.RECRUITMENT):
        target = recruitment_target(name)
        if target is RecruitmentTarget.DEVS:
            logger.warning(
                "Annual recruitment deviations are used throughout and may not work "
                "with a model that ties recruitment deviations to environmental "
                "covariates; consider an age-0 pre-recruit survey instead"
            )
        env_variable += 1
        link = locate(control, SR_ENV_LINK)
        control = set_leading_value(control, link, env_variable)
        control = replace_line(control, link + 1, f"{target.value} {SR_TARGET_COMMENT}")
        control = replace_line(control, locate(control, SR_ENVLINK_PARM), SR_LINK_SPEC)
        add_target(name, ParameterCategory.RECRUITMENT, "SR_envlink")

    q_links: list[str] = []
    for name in by_category(ParameterCategory.CATCHABILITY):
        env_variable += 1
        q_start = locate(control, Q_SECTION)
        q_end = locate(control, Q_SETUP_END, start=q_start)
        row = locate(control, name, start=q_start, end=q_end + 1)
        tokens = value_tokens(control[row])
        if len(tokens) <= Q_ENV_FIELD:
            raise FormatMismatch(name, control.source, detail="Q setup row is too short")
        tokens[Q_ENV_FIELD] = str(env_variable)
        control = replace_line(control, row, with_value_tokens(control[row], tokens))
        q_links.append(Q_LINK_SPEC.format(name=name))
        fleet = fleets.index(name) + 1 if name in fleets else 0
        add_target(name, ParameterCategory.CATCHABILITY, f"Q_envlink_{fleet}_{name}")

    if q_links:
        q_parms = locate(control, Q_PARMS)
        n_power = len(locate_all(control, Q_POWER, start=q_parms))
        control = append_after(control, q_parms + 1 + n_power, q_links)

    data = set_leading_value(data, n_vars_index, env_variable)
    data = set_leading_value(data, obs_index, len(env_rows))
    data = splice_block(data, obs_index + 1, sizefreq_index - 1, env_rows)

    use_par = locate(starter, USE_PAR)
    if use_par < 2:
        raise FormatMismatch(
            USE_PAR, starter.source, detail="expected data and control file names above it"
        )
    starter = set_leading_value(starter, use_par, 0)
    starter = replace_line(starter, use_par - 2, data_name)
    starter = replace_line(starter, use_par - 1, control_name)

    return TimeVaryingPlan(control=control, data=data, starter=starter, targets=tuple(targets))


def _insert_after_label(par: ConfigDocument, kind: str, number: int) -> ConfigDocument:
    """Insert ``# kind[number]:`` with a unit value after ``kind[number - 1]``."""
    previous = locate(par, f"# {kind}[{number - 1}]:")
    return append_after(par, previous + 1, [f"# {kind}[{number}]:", UNIT_LINK])


def _catchability_values(params: list[ReportParameter], source: str | None) -> list[str]:
    """Values of the Q parameters: after the last F (or SR/initial F) row, before selectivity."""
    sel_rows = [i for i, p in enumerate(params) if SELECTIVITY_LABEL.search(p.label)]
    f_rows = [i for i, p in enumerate(params) if "F_fleet" in p.label]
    if not f_rows:
        f_rows = [
            i for i, p in enumerate(params) if p.label.startswith(("SR_", "InitF_"))
        ]
    if not sel_rows or not f_rows:
        raise FormatMismatch(
            "F_fleet",
            source,
            detail="cannot delimit the catchability parameters in the report",
        )
    return [p.value for p in params[f_rows[-1] + 1 : sel_rows[0]]]


def finalize_time_varying(
    plan: TimeVaryingPlan,
    par: ConfigDocument,
    report: ConfigDocument,
) -> TimeVaryingResult:
    """Step three: patch the par file from the regenerated report."""
    use_par = locate(plan.starter, USE_PAR)
    starter = set_leading_value(plan.starter, use_par, 1)

    params = read_parameters(report)
    numbers = {
        t.name: find_parameter(params, t.link_label, report.source).num
        for t in plan.targets
    }

    sel_rows = [p for p in params if SELECTIVITY_LABEL.search(p.label)]
    inserts = sorted(
        (numbers[t.name], t)
        for t in plan.targets
        if t.category in (ParameterCategory.GROWTH, ParameterCategory.SELECTIVITY)
    )
    for number, target in inserts:
        if target.category is ParameterCategory.GROWTH:
            par = _insert_after_label(par, "MGparm", number)
        else:
            position = next(
                i for i, p in enumerate(sel_rows, start=1) if target.link_label in p.label
            )
            par = _insert_after_label(par, "selparm", position)

    categories = {t.category for t in plan.targets}
    if ParameterCategory.CATCHABILITY in categories:
        values = _catchability_values(params, report.source)
        q_lines: list[str] = []
        for i, value in enumerate(values, start=1):
            q_lines.extend([f"# Q_parm[{i}]:", value])
        sel_first = locate(par, "# selparm[1]:")
        q_first = locate_all(par, "# Q_parm[1]:")
        start = q_first[0] if q_first else sel_first
        par = splice_block(par, start, sel_first - 1, q_lines)

    if ParameterCategory.RECRUITMENT in categories:
        sr_rows = [p for p in params if p.label.startswith("SR_")]
        position = next(
            i for i, p in enumerate(sr_rows, start=1) if p.label == "SR_envlink"
        )
        label = locate(par, f"# SR_parm[{position}]:")
        par = replace_line(par, label + 1, UNIT_LINK)

    return TimeVaryingResult(par=par, starter=starter, parameter_numbers=numbers)


def apply_time_varying(
    model_dir: Path,
    deviations: Mapping[str, Sequence[float]],
    solver: IntermediateSolver,
    files: ModelFiles,
) -> TimeVaryingResult:
    """Run the three-step protocol against a model folder in place.

    The par file is read before the intermediate run so that whatever the
    solver writes during that run never leaks into the patched result.
    """
    control = read_document(model_dir / files.control)
    data = read_document(model_dir / files.data)
    starter = read_document(model_dir / files.starter)
    par = read_document(model_dir / files.par)
    base_report = read_document(model_dir / files.report)

    plan = prepare_time_varying(
        deviations,
        control,
        data,
        starter,
        base_report,
        control_name=files.control,
        data_name=files.data,
    )
    write_document(plan.control, model_dir / files.control)
    write_document(plan.data, model_dir / files.data)
    write_document(plan.starter, model_dir / files.starter)

    logger.info("Regenerating report in %s to number the new link parameters", model_dir)
    solver.run_in(model_dir, estimate=False).raise_for_status()

    result = finalize_time_varying(plan, par, read_document(model_dir / files.report))
    write_document(result.par, model_dir / files.par)
    write_document(result.starter, model_dir / files.starter)
    return result
