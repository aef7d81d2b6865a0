# Copyright (c) Syntropy Systems
"""Pytest fixtures for stocksim tests."""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from stocksim.document import ConfigDocument, read_document

MODELS_DIR = Path(__file__).parent / "models"

# Store original cwd at module load time
_original_cwd = Path.cwd()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def om_dir(temp_dir: Path) -> Path:
    """A scratch copy of the base operating model."""
    target = temp_dir / "base-om"
    _ = shutil.copytree(MODELS_DIR / "om", target)
    return target


@pytest.fixture
def em_dir(temp_dir: Path) -> Path:
    """A scratch copy of the base estimation model."""
    target = temp_dir / "base-em"
    _ = shutil.copytree(MODELS_DIR / "em", target)
    return target


@pytest.fixture
def stocksim_project(temp_dir: Path) -> Generator[Path, None, None]:
    """A temporary project directory with an empty .stocksim folder."""
    (temp_dir / ".stocksim").mkdir()

    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def om_control() -> ConfigDocument:
    return read_document(MODELS_DIR / "om" / "om.ctl")


@pytest.fixture
def om_data() -> ConfigDocument:
    return read_document(MODELS_DIR / "om" / "ss3.dat")


@pytest.fixture
def om_starter() -> ConfigDocument:
    return read_document(MODELS_DIR / "om" / "starter.ss")


@pytest.fixture
def om_par() -> ConfigDocument:
    return read_document(MODELS_DIR / "om" / "ss3.par")


@pytest.fixture
def om_report() -> ConfigDocument:
    return read_document(MODELS_DIR / "om" / "Report.sso")
