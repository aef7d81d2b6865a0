# Copyright (c) Syntropy Systems
"""Insertion of survey index observations into a data file."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from stocksim.document import (
    format_row,
    locate,
    set_leading_value,
    splice_block,
)
from stocksim.errors import ContractViolation

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stocksim.document import ConfigDocument

N_OBS_MARKER = "#_N_cpue_and_surveyabundance_observations"
OBS_HEADER_MARKER = "#_year seas index obs se_log"
OBS_END_MARKER = "#_N_discard_fleets"


@dataclass(frozen=True)
class IndexObservation:
    year: int
    season: int
    fleet: int
    value: float
    se: float

    def to_line(self) -> str:
        return format_row((self.year, self.season, self.fleet, self.value, self.se))


def change_index(
    data: ConfigDocument,
    observations: Sequence[IndexObservation],
) -> ConfigDocument:
    """Replace the index table with one line per observation.

    The declared observation count is updated to match.
    """
    if not observations:
        msg = "No index observations to write; the index would have length 0"
        raise ContractViolation(msg)
    years = [o.year for o in observations]
    if len(set(years)) != len(years):
        msg = f"Duplicate index years: {sorted({y for y in years if years.count(y) > 1})}"
        raise ContractViolation(msg)

    count_index = locate(data, N_OBS_MARKER)
    header = locate(data, OBS_HEADER_MARKER)
    end = locate(data, OBS_END_MARKER, start=header + 1)

    document = set_leading_value(data, count_index, len(observations))
    return splice_block(document, header + 1, end - 1, [o.to_line() for o in observations])
