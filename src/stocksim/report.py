# Copyright (c) Syntropy Systems
"""Read-only views over the solver's annotated report file."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from stocksim.errors import FormatMismatch

if TYPE_CHECKING:
    from stocksim.document import ConfigDocument

PARAMETERS_SECTION = "PARAMETERS"
TIME_SERIES_SECTION = "TIME_SERIES"
PRE_TIME_ERAS = frozenset({"VIRG", "INIT"})


@dataclass(frozen=True)
class ReportParameter:
    """One row of the report's parameter table."""

    num: int
    label: str
    value: str


def _section_start(report: ConfigDocument, name: str) -> int:
    """Index of the line whose first token is exactly ``name``."""
    for i, line in enumerate(report):
        tokens = line.split()
        if tokens and tokens[0] == name:
            return i
    raise FormatMismatch(name, report.source)


def _section_rows(report: ConfigDocument, name: str) -> tuple[list[str], list[list[str]]]:
    """Return the header tokens and row tokens of a blank-line-terminated table."""
    start = _section_start(report, name)
    if start + 1 >= len(report) or not report[start + 1].split():
        raise FormatMismatch(
            name, report.source, detail="section has no column header line"
        )
    header = report[start + 1].split()
    rows: list[list[str]] = []
    for line in report.lines[start + 2 :]:
        tokens = line.split()
        if not tokens:
            break
        rows.append(tokens)
    return header, rows


def read_parameters(report: ConfigDocument) -> list[ReportParameter]:
    """Parse the ``PARAMETERS`` table (``Num Label Value ...``)."""
    header, rows = _section_rows(report, PARAMETERS_SECTION)
    if header[:3] != ["Num", "Label", "Value"]:
        raise FormatMismatch(
            "Num Label Value",
            report.source,
            detail="unexpected PARAMETERS column header",
        )
    params: list[ReportParameter] = []
    for tokens in rows:
        if len(tokens) < 3 or not tokens[0].isdigit():
            break
        params.append(ReportParameter(num=int(tokens[0]), label=tokens[1], value=tokens[2]))
    return params


def find_parameter(
    params: list[ReportParameter],
    fragment: str,
    source: str | None = None,
) -> ReportParameter:
    """First parameter whose label contains ``fragment``."""
    for param in params:
        if fragment in param.label:
            return param
    raise FormatMismatch(fragment, source, detail="no such parameter in the report")


def time_varying_parameters(report: ConfigDocument) -> set[str]:
    """Names of parameters that already carry an environmental link."""
    return {
        p.label.split("_ENV")[0]
        for p in read_parameters(report)
        if "_ENV" in p.label
    }


def time_series(report: ConfigDocument, column: str = "Bio_all") -> dict[int, float]:
    """Year -> value of a ``TIME_SERIES`` column, skipping virgin/initial rows.

    Areas are summed; only the first season of each year is used.
    """
    header, rows = _section_rows(report, TIME_SERIES_SECTION)
    for required in ("Yr", "Era", column):
        if required not in header:
            raise FormatMismatch(
                required, report.source, detail="missing TIME_SERIES column"
            )
    yr, era, col = header.index("Yr"), header.index("Era"), header.index(column)
    seas = header.index("Seas") if "Seas" in header else None
    series: dict[int, float] = {}
    for tokens in rows:
        if len(tokens) < len(header) or tokens[era] in PRE_TIME_ERAS:
            continue
        if seas is not None and tokens[seas] != "1":
            continue
        year = int(tokens[yr])
        series[year] = series.get(year, 0.0) + float(tokens[col])
    return series
