"""
Applies an install plan to a directory on disk.

This is the file-copy executor a host would normally provide; the command line
tool uses it for ``install``.  Sources are extracted from the archive into a
temporary directory, then copied to their destinations below the mod's
install directory.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Sequence

from archive_listing import extract_members
from installer_errors import UnsafeDestination
from installer_schema import CopyInstruction

_log = logging.getLogger(__name__)


def _target_path(install_dir: Path, instruction: CopyInstruction) -> Path:
    target = (install_dir / instruction.destination.replace("/", os.sep)).resolve()
    root = install_dir.resolve()
    if target != root and root not in target.parents:
        raise UnsafeDestination(instruction.source, instruction.destination)
    return target


def apply_plan(
    archive_path: str | Path,
    instructions: Sequence[CopyInstruction],
    install_dir: str | Path,
) -> list[str]:
    """Copy every planned file into ``install_dir``.

    Returns the destinations written, in plan order.  Nothing is extracted
    when any destination would land outside ``install_dir``.
    """
    archive_path = Path(archive_path)
    install_dir = Path(install_dir)
    targets = [(inst, _target_path(install_dir, inst)) for inst in instructions]
    if not targets:
        return []

    written: list[str] = []
    with tempfile.TemporaryDirectory() as tmpdir:
        tmppath = Path(tmpdir)
        members = list(dict.fromkeys(inst.source for inst in instructions))
        _log.info("Extracting %d file(s) from %s", len(members), archive_path.name)
        extract_members(archive_path, members, tmppath)

        for inst, dst in targets:
            src = tmppath / inst.source.replace("/", os.sep)
            if not src.exists():
                _log.warning("Expected file not found after extraction: %s", inst.source)
                continue
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            written.append(inst.destination)
            _log.debug("Copied: %s -> %s", inst.source, inst.destination)

    _log.info("Installed %d file(s) into %s", len(written), install_dir)
    return written
