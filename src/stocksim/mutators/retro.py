# Copyright (c) Syntropy Systems
"""Retrospective truncation via the starter file."""
from __future__ import annotations

from typing import TYPE_CHECKING

from stocksim.document import locate, set_leading_value
from stocksim.errors import ContractViolation

if TYPE_CHECKING:
    from stocksim.document import ConfigDocument

RETRO_MARKER = "# retrospective year relative to end year"


def change_retro(starter: ConfigDocument, retro_yr: int) -> ConfigDocument:
    """Set the retrospective year offset (0 for none, -n to drop n years)."""
    if retro_yr > 0:
        msg = f"Retrospective year must be 0 or negative, got {retro_yr}"
        raise ContractViolation(msg)
    return set_leading_value(starter, locate(starter, RETRO_MARKER), retro_yr)
