"""
Exceptions raised by the mod install planner.

"Not my mod" is never an exception: classifiers report it as
``SupportResult(supported=False)``.  Everything here aborts a single install
attempt and should be reported to the user together with the archive name.
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base class for install planning failures."""


class NoAnchorFound(InstallerError):
    """The file list has no entry matching the variant's anchor rule."""

    def __init__(self, variant_id: str, archive: str | None = None):
        self.variant_id = variant_id
        self.archive = archive
        where = f" in {archive}" if archive else ""
        super().__init__(
            f"No anchor file for {variant_id!r} found{where} "
            "— the archive does not look like a mod for this game"
        )


class AmbiguousVariant(InstallerError):
    """More than one variant's anchor rule matched the same file list."""

    def __init__(self, game_id: str, variant_ids: list[str]):
        self.game_id = game_id
        self.variant_ids = list(variant_ids)
        super().__init__(
            f"Archive matches several {game_id} mod layouts: {', '.join(self.variant_ids)}"
        )


class UnsafeDestination(InstallerError):
    """A computed destination would land outside the mod's install directory."""

    def __init__(self, source: str, destination: str):
        self.source = source
        self.destination = destination
        super().__init__(f"Refusing to copy {source!r} to {destination!r}")


class UnknownGame(InstallerError, KeyError):
    def __init__(self, game_id: str):
        self.game_id = game_id
        super().__init__(f"No game registered with id {game_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class GameNotFound(InstallerError):
    """Game store discovery could not locate an installed copy."""


class SetupError(InstallerError):
    """Preparing a game for modding failed."""


class ArchiveError(InstallerError):
    """An archive could not be read; usually corrupt or truncated."""

    def __init__(self, archive: str, reason: Exception):
        self.archive = archive
        self.reason = reason
        super().__init__(f"Could not read {archive}: {reason}")
