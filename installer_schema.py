"""
Schema for game installer profiles and install plans.

Every game the planner supports is described by a ``GameProfile``: store ids
and lookup names used for discovery, where its mods live, and an ordered list
of ``InstallerVariant`` records.  A variant is the data that drives the generic
classifier/builder pair: the anchor rule that recognises the mod and marks
its root, any exclusion rules, and how destinations are shaped.

Built-in profiles live in ``game_registry``.  Extra profiles can be supplied
as JSON:

{
    "schema_version": "1.0",
    "games": [
        {
            "id": "elex",
            "name": "Elex",
            "executable": "system/ELEX.exe",
            "steam_app_id": "411300",
            "mods_path": {"base": "game", "path": "data/packed"},
            "variants": [
                {
                    "id": "elex-mod",
                    "anchor": {"kind": "extension", "value": ".pak"},
                    "strategy": "root_relative",
                    "exclusions": [{"basename": "ModuleConfig.xml", "parent": "fomod"}]
                }
            ]
        }
    ]
}

File entries always use ``/`` as separator; a trailing ``/`` marks a
directory placeholder.
"""

from __future__ import annotations

import json
import logging
import posixpath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

SEPARATOR = "/"
CURRENT_SCHEMA_VERSION = (1, 0)  # (major, minor) supported by this build

AnchorKind = Literal["extension", "basename", "suffix"]
DestinationStrategy = Literal["root_relative", "name_spaced", "file_folder"]
FolderBase = Literal["game", "documents", "local_low"]

_log = logging.getLogger(__name__)


# ── File entries ──────────────────────────────────────────────────────


def is_directory_entry(entry: str) -> bool:
    return entry.endswith(SEPARATOR)


def entry_basename(entry: str) -> str:
    return posixpath.basename(entry.rstrip(SEPARATOR))


def entry_parent_name(entry: str) -> str:
    return posixpath.basename(posixpath.dirname(entry.rstrip(SEPARATOR)))


def _normalize_rel_path(v: str) -> str:
    return v.replace("\\", "/").strip("/")


# ── Rules ─────────────────────────────────────────────────────────────


class AnchorRule(BaseModel):
    """Predicate identifying the file that anchors a mod's root.

    Comparisons are case-insensitive; archives come with arbitrary casing.
    Directory placeholders never match.
    """

    kind: AnchorKind
    value: str

    @field_validator("value")
    @classmethod
    def _check_value(cls, v: str, info: ValidationInfo) -> str:
        if not v:
            raise ValueError("Anchor value must not be empty")
        if info.data.get("kind") == "extension" and not v.startswith("."):
            v = "." + v
        return v

    def matches(self, entry: str) -> bool:
        if is_directory_entry(entry):
            return False
        name = entry_basename(entry).lower()
        value = self.value.lower()
        if self.kind == "extension":
            return posixpath.splitext(name)[1] == value
        if self.kind == "basename":
            return name == value
        return name.endswith(value)


class ExclusionRule(BaseModel):
    """Disqualifies an archive holding ``<parent>/<basename>`` anywhere."""

    basename: str
    parent: str

    def matches(self, entry: str) -> bool:
        if is_directory_entry(entry):
            return False
        return (
            entry_basename(entry).lower() == self.basename.lower()
            and entry_parent_name(entry).lower() == self.parent.lower()
        )


class InstallerVariant(BaseModel):
    """One recognised mod layout for a game.

    ``strategy`` decides the destination shape:

    * ``root_relative``: path below the anchor's directory.
    * ``name_spaced``: same, nested under the sanitised mod name.
    * ``file_folder``: each anchor-matching file in a folder named after it.
    """

    id: str
    anchor: AnchorRule
    strategy: DestinationStrategy = "root_relative"
    priority: int = 25
    exclusions: list[ExclusionRule] = Field(default_factory=list)


# ── Game profile ──────────────────────────────────────────────────────


class FolderSpec(BaseModel):
    """A directory relative to the game install or a known user folder."""

    base: FolderBase = "game"
    path: str = ""

    @field_validator("path")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return _normalize_rel_path(v)


class ModTypeRule(BaseModel):
    """Plans whose sources include a file ending in ``source_suffix`` deploy
    into ``target`` instead of the game's default mods folder."""

    id: str
    priority: int = 25
    source_suffix: str
    target: FolderSpec


class PatcherSettings(BaseModel):
    """Arguments for the external unity patcher.

    With ``skip_when_mods_installed`` the patcher only runs during setup for
    games that have no mods yet; users migrating from an older loader keep
    their existing setup until they switch over by hand.
    """

    data_path: str
    entry_point: str
    mods_dir: str | None = None
    skip_when_mods_installed: bool = False

    @field_validator("data_path")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return _normalize_rel_path(v)


class MigrationNotice(BaseModel):
    """One-time notice shown to users upgrading from before ``introduced_in``."""

    id: str
    introduced_in: str
    message: str
    title: str
    explanation: str = ""


class CarnageReportSettings(BaseModel):
    """Per-user mods folder resolution for the Master Chief Collection."""

    internal_game_id: str
    mods_folder: str


class RegistryValue(BaseModel):
    """Windows registry value holding the install directory."""

    hive: Literal["HKEY_LOCAL_MACHINE", "HKEY_CURRENT_USER"] = "HKEY_LOCAL_MACHINE"
    key: str
    value: str


class GameProfile(BaseModel):
    id: str
    name: str
    executable: str
    required_files: list[str] = Field(default_factory=list)
    steam_app_id: str | None = None
    epic_app_id: str | None = None
    ms_app_id: str | None = None
    store_names: list[str] = Field(default_factory=list)
    app_id_lookup: bool = True
    registry_path: RegistryValue | None = None
    mods_path: FolderSpec = Field(default_factory=FolderSpec)
    setup_dirs: list[FolderSpec] = Field(default_factory=list)
    steam_launcher: bool = False
    patcher: PatcherSettings | None = None
    migration: MigrationNotice | None = None
    carnage_report: CarnageReportSettings | None = None
    mod_types: list[ModTypeRule] = Field(default_factory=list)
    variants: list[InstallerVariant] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _check_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Game id must not be empty")
        return v

    @model_validator(mode="after")
    def _no_duplicate_variants(self) -> GameProfile:
        seen = set()
        for variant in self.variants:
            if variant.id in seen:
                raise ValueError(f"Duplicate installer variant id: {variant.id!r}")
            seen.add(variant.id)
        return self


class ProfileFile(BaseModel):
    schema_version: str
    games: list[GameProfile] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def _check_version(cls, v: str) -> str:
        try:
            major, minor = (int(x) for x in v.split("."))
        except ValueError:
            raise ValueError(
                f"Invalid schema_version {v!r} — expected 'major.minor' (e.g. '1.0')"
            )
        cur_major, cur_minor = CURRENT_SCHEMA_VERSION
        if major > cur_major:
            raise ValueError(
                f"schema_version {v!r} requires a newer planner "
                f"(this build supports up to version {cur_major}.x)"
            )
        if major == cur_major and minor > cur_minor:
            _log.warning(
                "Profile schema %s is newer than this build supports (%d.%d) — "
                "unknown fields will be ignored.",
                v, cur_major, cur_minor,
            )
        return v

    @model_validator(mode="after")
    def _no_duplicate_games(self) -> ProfileFile:
        seen = set()
        for game in self.games:
            if game.id in seen:
                raise ValueError(f"Duplicate game id: {game.id!r}")
            seen.add(game.id)
        return self


def parse_profiles(data: bytes | str) -> list[GameProfile]:
    """Parse a JSON profile file into game profiles.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the bytes are not valid JSON.
    """
    return ProfileFile.model_validate(json.loads(data)).games


# ── Install plan ──────────────────────────────────────────────────────


class CopyInstruction(BaseModel):
    """Copy ``source`` from the archive to ``destination`` below the mod's
    install directory."""

    type: Literal["copy"] = "copy"
    source: str
    destination: str


class SupportResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    supported: bool
    required_files: list[str] = Field(default_factory=list, alias="requiredFiles")


class InstallResult(BaseModel):
    instructions: list[CopyInstruction] = Field(default_factory=list)
