# Copyright (c) Syntropy Systems
"""Survey index sampled from the operating model's true biomass."""
from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from stocksim.errors import ContractViolation
from stocksim.mutators.index import IndexObservation, change_index
from stocksim.report import time_series

if TYPE_CHECKING:
    from collections.abc import Mapping

    from stocksim.document import ConfigDocument
    from stocksim.models.experiment import IndexCase

BIOMASS_COLUMN = "Bio_all"


def sample_index(
    biomass: Mapping[int, float],
    case: IndexCase,
    seed: int,
) -> list[IndexObservation]:
    """Draw one lognormal observation per sampled year.

    ``value = B * exp(N(0, sd) - sd**2 / 2)``, which is unbiased on the
    natural scale. The same seed always yields the same index.
    """
    years = case.years
    missing = [y for y in years if y not in biomass]
    if missing:
        msg = (
            f"No true biomass for index years {missing}; the operating model "
            f"covers {min(biomass, default=None)}-{max(biomass, default=None)}"
        )
        raise ContractViolation(msg)

    rng = np.random.default_rng(seed)
    sd = case.sd_obs
    truth = np.array([biomass[year] for year in years], dtype=float)
    values = np.round(truth * np.exp(rng.normal(0.0, sd, len(years)) - sd**2 / 2), 4)
    return [
        IndexObservation(
            year=year,
            season=case.season,
            fleet=case.fleet,
            value=float(value),
            se=sd,
        )
        for year, value in zip(years, values)
    ]


def write_index(
    om_report: ConfigDocument,
    em_data: ConfigDocument,
    case: IndexCase,
    seed: int,
) -> ConfigDocument:
    """Sample an index from an OM report and write it into EM data."""
    observations = sample_index(time_series(om_report, BIOMASS_COLUMN), case, seed)
    return change_index(em_data, observations)
