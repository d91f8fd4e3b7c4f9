"""
Tests for the package version.
"""

import re
import tomllib
from pathlib import Path

import photo_backup


def test_version_format():
    """__version__ matches semver pattern (X.Y.Z)."""
    assert re.match(r"^\d+\.\d+\.\d+$", photo_backup.__version__)


def test_version_matches_pyproject():
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    with open(pyproject, "rb") as fh:
        data = tomllib.load(fh)
    assert data["project"]["version"] == photo_backup.__version__
