"""
Shared fixtures and helpers for the mod install planner test suite.
"""

import zipfile
from pathlib import Path

import pytest

from game_registry import default_registry


def make_zip(path: Path, members: dict[str, bytes | str]) -> Path:
    """Write a zip with the given {archive_path: content} entries.

    Names ending in "/" become directory entries.
    """
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def dirs(tmp_path):
    """Return (archives_dir, install_dir) as fresh tmp_path subdirectories."""
    archives = tmp_path / "archives"
    install = tmp_path / "install"
    archives.mkdir()
    install.mkdir()
    return archives, install
