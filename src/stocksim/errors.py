# Copyright (c) Syntropy Systems
"""Exception hierarchy for stocksim."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stocksim.models.results import RunResult


class StockSimError(Exception):
    """Base class for all stocksim errors."""


class ContractViolation(StockSimError, ValueError):
    """Caller input is malformed (vector lengths, unknown names).

    Raised before any document or file is rewritten.
    """


class FormatMismatch(StockSimError):
    """An expected marker is missing from a configuration document."""

    marker: str
    source: str | None

    def __init__(
        self,
        marker: str,
        source: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.marker = marker
        self.source = source
        where = f" in {source}" if source else ""
        if detail is None:
            super().__init__(
                f"Marker '{marker}' not found{where}; "
                "is the file in the solver-generated format?"
            )
        else:
            super().__init__(f"Marker '{marker}'{where}: {detail}")


class Conflict(StockSimError):
    """Two requested treatments (or a treatment and the base model) clash."""


class SolverFailure(StockSimError):
    """The external solver exited badly or left no usable output."""

    result: RunResult | None

    def __init__(self, message: str, result: RunResult | None = None) -> None:
        self.result = result
        super().__init__(message)


class SolverTimeout(SolverFailure):
    """The solver was terminated after exceeding its time limit."""


class SolverNotFound(SolverFailure):
    """The solver executable could not be located."""
