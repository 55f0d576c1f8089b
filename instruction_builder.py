"""
Turns a supported archive listing into copy instructions.

The builder re-locates the anchor itself rather than trusting an earlier
classification, since the host calls ``test`` and ``install`` independently.
Everything outside the anchor's directory (top-level readmes, sibling
folders) is dropped without complaint; what remains keeps its layout below
the root.

Examples (root_relative, anchor ``.pak``):
    mods/MyMod/data.pak          -> data.pak
    mods/MyMod/sub/extra.bin     -> sub/extra.bin
    readme.txt                   -> (dropped)
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Callable, Optional, Sequence

from content_classifier import find_anchor
from installer_errors import NoAnchorFound, UnsafeDestination
from installer_schema import (
    SEPARATOR,
    CopyInstruction,
    InstallerVariant,
    InstallResult,
    entry_basename,
    is_directory_entry,
)

INSTALLING_SUFFIX = ".installing"
FALLBACK_MOD_NAME = "UnnamedMod"

_NON_ALPHA_RE = re.compile(r"[^A-Za-z]")

_log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def sanitize_mod_name(destination_path: str) -> str:
    """Mod folder name derived from the host's staging path.

    ``C:/staging/My Mod-1.2.installing`` -> ``MyMod``
    """
    name = posixpath.basename(destination_path.replace("\\", "/").rstrip("/"))
    if name.endswith(INSTALLING_SUFFIX) and name != INSTALLING_SUFFIX:
        name = name[: -len(INSTALLING_SUFFIX)]
    return _NON_ALPHA_RE.sub("", name) or FALLBACK_MOD_NAME


def mod_root(anchor: str) -> str:
    """Directory holding the anchor; ``""`` when it sits at the archive top."""
    return posixpath.dirname(anchor)


def anchor_offset(anchor: str) -> int:
    """Index of the anchor's basename within its own path."""
    return len(anchor) - len(entry_basename(anchor))


def check_destination(source: str, destination: str) -> str:
    parts = destination.split(SEPARATOR)
    if not destination or destination.startswith(SEPARATOR) or ".." in parts:
        raise UnsafeDestination(source, destination)
    return destination


class InstructionBuilder:
    """Builder for one variant.  Stateless; safe to share between calls."""

    def __init__(self, variant: InstallerVariant):
        self.variant = variant

    def _rooted(self, files: Sequence[str], anchor: str) -> list[tuple[str, str]]:
        offset = anchor_offset(anchor)
        prefix = anchor[:offset]
        return [
            (entry, entry[offset:])
            for entry in files
            if entry and not is_directory_entry(entry) and entry.startswith(prefix)
        ]

    def _file_folders(self, files: Sequence[str]) -> list[tuple[str, str]]:
        # The folder keeps the file's own casing (.mod and .MOD both load).
        pairs = []
        for entry in files:
            if not self.variant.anchor.matches(entry):
                continue
            name = entry_basename(entry)
            stem = posixpath.splitext(name)[0]
            pairs.append((entry, posixpath.join(stem, name)))
        return pairs

    def install(
        self,
        files: Sequence[str],
        destination_path: str,
        progress: Optional[ProgressCallback] = None,
        archive: str | None = None,
    ) -> InstallResult:
        anchor = find_anchor(files, self.variant.anchor)
        if anchor is None:
            raise NoAnchorFound(self.variant.id, archive)

        if self.variant.strategy == "file_folder":
            pairs = self._file_folders(files)
        else:
            pairs = self._rooted(files, anchor)
            if self.variant.strategy == "name_spaced":
                mod_name = sanitize_mod_name(destination_path)
                pairs = [(src, posixpath.join(mod_name, dst)) for src, dst in pairs]

        instructions: list[CopyInstruction] = []
        for i, (source, destination) in enumerate(pairs, start=1):
            check_destination(source, destination)
            instructions.append(CopyInstruction(source=source, destination=destination))
            if progress is not None:
                progress(i * 100.0 / len(pairs))

        _log.debug(
            "%s: anchor %s, root %r, %d of %d entries planned",
            self.variant.id, anchor, mod_root(anchor), len(instructions), len(files),
        )
        return InstallResult(instructions=instructions)
