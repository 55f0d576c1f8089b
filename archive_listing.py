"""
Archive access for the command line tool.

Lists ``.zip``/``.7z``/``.rar`` members as planner file entries (``/``
separators, directories with a trailing ``/``) and extracts selected members.
The planner itself never calls this; hosts hand it ready-made listings.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

import py7zr
import rarfile

from installer_errors import ArchiveError
from installer_schema import SEPARATOR

_log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}

# Raised by the archive libraries for corrupt or truncated files.
READ_ERRORS = (zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error)


def _entry(name: str, is_dir: bool) -> str:
    name = name.replace("\\", "/")
    if is_dir and not name.endswith(SEPARATOR):
        name += SEPARATOR
    return name


def list_archive(filepath: str | Path) -> list[str]:
    """Member paths in archive order.

    Raises ``ValueError`` for unsupported archive formats and
    ``ArchiveError`` for archives that cannot be read.
    """
    filepath = Path(filepath)
    ext = filepath.suffix.lower()
    try:
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                names = [_entry(info.filename, info.is_dir()) for info in zf.infolist()]
        elif ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                names = [_entry(info.filename, info.is_directory) for info in sz.list()]
        elif ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                names = [_entry(info.filename, info.is_dir()) for info in rf.infolist()]
        else:
            raise ValueError(f"Unsupported archive format: {ext}")
    except READ_ERRORS as exc:
        _log.error("Failed to read %s: %s", filepath.name, exc)
        raise ArchiveError(filepath.name, exc) from exc

    _log.debug("%s: %d member(s)", filepath.name, len(names))
    return names


def extract_members(filepath: str | Path, members: list[str], dest: Path) -> list[Path]:
    filepath = Path(filepath)
    ext = filepath.suffix.lower()
    extracted: list[Path] = []
    try:
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                for member in members:
                    zf.extract(member, dest)
                    extracted.append(dest / member)
        elif ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                sz.extract(dest, targets=members)
                for member in members:
                    extracted.append(dest / member)
        elif ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                for member in members:
                    rf.extract(member, dest)
                    extracted.append(dest / member)
        else:
            raise ValueError(f"Unsupported archive format: {ext}")
    except READ_ERRORS as exc:
        _log.error("Failed to extract from %s: %s", filepath.name, exc)
        raise ArchiveError(filepath.name, exc) from exc
    return extracted
