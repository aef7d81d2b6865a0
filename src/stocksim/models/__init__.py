# Copyright (c) Syntropy Systems
"""Pydantic models for experiments, solver runs and unit records."""
