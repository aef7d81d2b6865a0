# Copyright (c) Syntropy Systems
"""Tests for survey index insertion and sampling."""

import numpy as np
import pytest

from stocksim.document import ConfigDocument, locate, value_tokens
from stocksim.errors import ContractViolation
from stocksim.models.experiment import IndexCase
from stocksim.mutators.index import IndexObservation, change_index
from stocksim.sampling import sample_index, write_index


def index_rows(data: ConfigDocument) -> list[str]:
    start = locate(data, "#_year seas index obs se_log")
    end = locate(data, "#_N_discard_fleets")
    return list(data.lines[start + 1 : end])


class TestChangeIndex:
    """Tests for writing index observations into a data file."""

    def test_rows_and_count(self, om_data: ConfigDocument) -> None:
        """Test one line per observation and a matching declared count."""
        observations = [
            IndexObservation(year=y, season=1, fleet=2, value=100.0 + y, se=0.2)
            for y in (1, 3, 5)
        ]
        new = change_index(om_data, observations)

        assert index_rows(new) == ["1 1 2 101 0.2", "3 1 2 103 0.2", "5 1 2 105 0.2"]
        count = locate(new, "#_N_cpue_and_surveyabundance_observations")
        assert value_tokens(new[count]) == ["3"]

    def test_lines_outside_table_preserved(self, om_data: ConfigDocument) -> None:
        new = change_index(om_data, [IndexObservation(2, 1, 2, 1.5, 0.1)])
        end = locate(om_data, "#_N_discard_fleets")
        assert new.lines[-(len(om_data) - end) :] == om_data.lines[end:]
        assert locate(new, "#_N_discard_fleets") == locate(new, "#_year seas index") + 2

    def test_empty_index(self, om_data: ConfigDocument) -> None:
        with pytest.raises(ContractViolation, match="length 0"):
            _ = change_index(om_data, [])

    def test_duplicate_years(self, om_data: ConfigDocument) -> None:
        observations = [IndexObservation(2, 1, 2, 1.0, 0.1), IndexObservation(2, 1, 2, 2.0, 0.1)]
        with pytest.raises(ContractViolation, match="Duplicate"):
            _ = change_index(om_data, observations)


class TestSampleIndex:
    """Tests for lognormal index sampling."""

    def test_same_seed_same_index(self) -> None:
        biomass = {y: 1000.0 for y in range(1, 11)}
        case = IndexCase(start_year=2, end_year=10, frequency=2, sd_obs=0.2)

        first = sample_index(biomass, case, seed=7)
        second = sample_index(biomass, case, seed=7)

        assert first == second
        assert [o.year for o in first] == [2, 4, 6, 8, 10]
        assert all(o.fleet == 2 and o.season == 1 and o.se == 0.2 for o in first)

    def test_zero_error_returns_truth(self) -> None:
        biomass = {1: 500.0, 2: 400.0}
        case = IndexCase(start_year=1, end_year=2, sd_obs=0.0)
        assert [o.value for o in sample_index(biomass, case, seed=1)] == [500.0, 400.0]

    def test_years_outside_series(self) -> None:
        case = IndexCase(start_year=1, end_year=20)
        with pytest.raises(ContractViolation, match="No true biomass"):
            _ = sample_index({1: 1.0, 2: 1.0}, case, seed=1)

    def test_write_index_from_report(
        self, om_report: ConfigDocument, om_data: ConfigDocument
    ) -> None:
        """Test sampling an OM report's Bio_all series into EM data."""
        case = IndexCase(start_year=2, end_year=5, sd_obs=0.0)
        new = write_index(om_report, om_data, case, seed=3)
        assert index_rows(new) == [
            "2 1 2 9000 0", "3 1 2 8400 0", "4 1 2 7900 0", "5 1 2 7500 0",
        ]

    def test_draws_follow_seeded_generator(self) -> None:
        """Test that values are bias-corrected lognormal draws from the seeded generator."""
        biomass = {y: 2000.0 for y in range(1, 6)}
        case = IndexCase(start_year=1, end_year=5, sd_obs=0.3)

        observations = sample_index(biomass, case, seed=11)

        errors = np.random.default_rng(11).normal(0.0, 0.3, 5)
        expected = np.round(2000.0 * np.exp(errors - 0.3**2 / 2), 4)
        assert [o.value for o in observations] == expected.tolist()
        assert sample_index(biomass, case, seed=12) != observations
