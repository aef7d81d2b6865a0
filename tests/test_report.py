# Copyright (c) Syntropy Systems
"""Tests for report parsing."""

import pytest

from stocksim.document import ConfigDocument
from stocksim.errors import FormatMismatch
from stocksim.report import (
    find_parameter,
    read_parameters,
    time_series,
    time_varying_parameters,
)


class TestParameters:
    """Tests for the PARAMETERS table."""

    def test_read_parameters(self, om_report: ConfigDocument) -> None:
        params = read_parameters(om_report)
        assert len(params) == 25
        assert params[0].num == 1
        assert params[0].label == "NatM_p_1_Fem_GP_1"
        assert params[0].value == "0.1"

    def test_find_parameter(self, om_report: ConfigDocument) -> None:
        params = read_parameters(om_report)
        assert find_parameter(params, "SR_envlink").num == 8
        with pytest.raises(FormatMismatch):
            _ = find_parameter(params, "Q_envlink", om_report.source)

    def test_time_varying_parameters(self, om_report: ConfigDocument) -> None:
        assert time_varying_parameters(om_report) == set()

        text = om_report.to_text().replace(
            "5 SR_LN(R0)",
            "5 NatM_p_1_Fem_GP_1_ENV_add 1 _ -4\n6 SR_LN(R0)",
            1,
        )
        report = ConfigDocument.from_text(text)
        assert time_varying_parameters(report) == {"NatM_p_1_Fem_GP_1"}

    def test_missing_section(self) -> None:
        with pytest.raises(FormatMismatch, match="PARAMETERS"):
            _ = read_parameters(ConfigDocument.from_text("nothing here\n"))


class TestTimeSeries:
    """Tests for the TIME_SERIES table."""

    def test_skips_virgin_and_initial(self, om_report: ConfigDocument) -> None:
        series = time_series(om_report)
        assert sorted(series) == [1, 2, 3, 4, 5, 6]
        assert series[1] == 9500.0

    def test_other_column(self, om_report: ConfigDocument) -> None:
        assert time_series(om_report, "SpawnBio")[5] == 3700.0

    def test_areas_summed(self) -> None:
        report = ConfigDocument.from_text(
            "TIME_SERIES\n"
            "Area Yr Era Seas Bio_all\n"
            "1 1 TIME 1 100\n"
            "2 1 TIME 1 50\n"
            "1 1 TIME 2 999\n"
            "\n"
        )
        assert time_series(report) == {1: 150.0}

    def test_missing_column(self, om_report: ConfigDocument) -> None:
        with pytest.raises(FormatMismatch, match="Bio_nope"):
            _ = time_series(om_report, "Bio_nope")
