# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for stocksim."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class StockSimBaseModel(BaseModel):
    """Base model with shared config for stocksim schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class StrictModel(BaseModel):
    """Base model that rejects unknown keys, for user-authored YAML."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        populate_by_name=True,
    )
