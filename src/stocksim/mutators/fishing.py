# Copyright (c) Syntropy Systems
"""Fishing-mortality schedules written into the control file.

The solver only honours the detailed F rows when (1) the starter file reads
initial values from the control file rather than the par file and (2) the
data file has a dummy catch entry for every fleet/year written here. Neither
is checked: a mismatch surfaces as a solver error, not here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from stocksim.document import (
    format_row,
    format_value,
    locate,
    locate_first_of,
    locate_last,
    replace_line,
    set_leading_value,
    splice_block,
    value_tokens,
    with_value_tokens,
)
from stocksim.errors import ContractViolation, FormatMismatch

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stocksim.document import ConfigDocument

T = TypeVar("T")

F_METHOD_MARKER = "F_Method"
F_DETAIL_END_MARKERS = ("#_initial_F_parms", "#_Q_setup")
DETAILED_F_METHOD = 2
MIN_MAX_F = 4.0
F_PHASE = 1


@dataclass(frozen=True)
class FishingRow:
    """One detailed F input: fleet, year, season, F, standard error, phase."""

    fleet: int
    year: int
    season: int
    fval: float
    se: float
    phase: int = F_PHASE

    def to_line(self) -> str:
        return format_row(
            (self.fleet, self.year, self.season, self.fval, self.se, self.phase)
        )


def broadcast(name: str, values: Sequence[T], n: int) -> list[T]:
    """Repeat a length-1 vector ``n`` times; pass a length-``n`` one through.

    Raises:
        ContractViolation: For any other length.

    """
    if len(values) == n:
        return list(values)
    if len(values) == 1:
        return list(values) * n
    msg = (
        f"The number of years to alter, {n}, does not equal the number of "
        f"supplied {name} values, {len(values)}. Supply either 1 value or {n} values."
    )
    raise ContractViolation(msg)


def fishing_rows(
    years: Sequence[int],
    fvals: Sequence[float],
    fisheries: Sequence[int] = (1,),
    seasons: Sequence[int] = (1,),
    ses: Sequence[float] = (0.005,),
) -> list[FishingRow]:
    """Validate and broadcast the per-year vectors into rows, in input order."""
    n = len(years)
    if n == 0:
        msg = "At least one year is required to alter fishing mortality"
        raise ContractViolation(msg)
    fleets = broadcast("fisheries", fisheries, n)
    values = broadcast("fvals", fvals, n)
    seas = broadcast("seasons", seasons, n)
    errors = broadcast("ses", ses, n)
    if any(v < 0 for v in values):
        msg = "F values must be non-negative"
        raise ContractViolation(msg)
    return [
        FishingRow(fleet=f, year=y, season=s, fval=v, se=e)
        for f, y, s, v, e in zip(fleets, years, seas, values, errors)
    ]


def max_f(fvals: Sequence[float]) -> float:
    """Upper bound on F written into the header: at least 4, else twice the max."""
    return max(MIN_MAX_F, 2 * max(fvals))


def change_f(
    control: ConfigDocument,
    years: Sequence[int],
    fvals: Sequence[float],
    fisheries: Sequence[int] = (1,),
    seasons: Sequence[int] = (1,),
    ses: Sequence[float] = (0.005,),
) -> ConfigDocument:
    """Replace the detailed F inputs of a control file.

    The block runs from the first ``F_Method`` line (the method selector) to
    the last one (the detail header), followed by the detail rows up to the
    initial-F parameters. Between the two markers the first line holds max F
    and the last one holds ``start F; phase; N detailed inputs``.
    """
    rows = fishing_rows(years, fvals, fisheries, seasons, ses)

    first = locate(control, F_METHOD_MARKER, ignore_case=True)
    last = locate_last(control, F_METHOD_MARKER, ignore_case=True)
    if last - first < 3:
        raise FormatMismatch(
            F_METHOD_MARKER,
            control.source,
            detail=(
                "expected the max F line and the detailed-input count line "
                "between the first and last occurrence"
            ),
        )
    end = locate_first_of(control, F_DETAIL_END_MARKERS, start=last + 1)

    count_index = last - 1
    count_tokens = value_tokens(control[count_index])
    if len(count_tokens) < 3:
        raise FormatMismatch(
            "N detailed inputs to read",
            control.source,
            detail=f"line {count_index + 1} needs start F, phase and count values",
        )
    count_tokens[2] = str(len(rows))

    document = set_leading_value(control, first, DETAILED_F_METHOD)
    document = set_leading_value(
        document, first + 1, format_value(max_f([r.fval for r in rows]))
    )
    document = replace_line(
        document, count_index, with_value_tokens(control[count_index], count_tokens)
    )
    return splice_block(document, last + 1, end - 1, [row.to_line() for row in rows])
