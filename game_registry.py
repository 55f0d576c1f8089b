"""
Built-in game profiles and installer registration.

Each ``InstallerVariant`` of a registered game becomes one ``ModInstaller``
(a classifier/builder pair with an id and a priority), mirroring how a host
lets every registered installer test an archive in priority order.
``GameRegistry.plan`` does the same dispatch explicitly through
``VariantResolver`` so that archives matching several layouts are noticed.

Workflow:
    registry = default_registry()
    result = registry.test(files, "elex")
    if result.supported:
        plan = registry.plan(files, "elex", "C:/staging/MyMod.installing")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from content_classifier import ContentClassifier
from installer_errors import InstallerError, NoAnchorFound, UnknownGame
from installer_schema import (
    AnchorRule,
    CarnageReportSettings,
    CopyInstruction,
    ExclusionRule,
    FolderSpec,
    GameProfile,
    InstallerVariant,
    InstallResult,
    MigrationNotice,
    ModTypeRule,
    PatcherSettings,
    RegistryValue,
    SupportResult,
)
from instruction_builder import InstructionBuilder, ProgressCallback
from variant_resolver import VariantResolver

_log = logging.getLogger(__name__)

DEFAULT_PRIORITY = 25

_UMM_EXPLANATION = (
    "The manager now ships its own Unity patcher and mod loader, which can load "
    "existing UMM mods as well as mods written for the new patcher.\n\n"
    "1. Your mods and UMM installation are untouched. You can keep playing through "
    "UMM and the manager will still install mods into UMM's mods folder, but UMM "
    "cannot load mods written for the new patcher.\n\n"
    "2. Do NOT use the \"Patcher - Add\" / \"Patcher - Remove\" actions while the UMM "
    "patch is still applied.\n\n"
    "3. To remove the UMM patch, start UMM, select {game} and click uninstall "
    "(if the button is greyed out there is nothing to remove).\n\n"
    "4. Once the UMM patch is gone, run \"Patcher - Add\" to inject the new loader."
)


# ── Built-in profiles ─────────────────────────────────────────────────

ELEX = GameProfile(
    id="elex",
    name="Elex",
    executable="system/ELEX.exe",
    required_files=["system/ELEX.exe"],
    steam_app_id="411300",
    mods_path=FolderSpec(path="data/packed"),
    setup_dirs=[FolderSpec(path="data/packed")],
    variants=[
        # FOMOD archives belong to the FOMOD installer even when they ship .pak files.
        InstallerVariant(
            id="elex-mod",
            anchor=AnchorRule(kind="extension", value=".pak"),
            strategy="root_relative",
            exclusions=[ExclusionRule(basename="ModuleConfig.xml", parent="fomod")],
        ),
    ],
)

TORCHLIGHT2 = GameProfile(
    id="torchlight2",
    name="Torchlight II",
    executable="ModLauncher.exe",
    required_files=["Torchlight2.exe", "ModLauncher.exe"],
    steam_app_id="200710",
    registry_path=RegistryValue(
        key="SOFTWARE\\WOW6432Node\\runic games\\torchlight ii",
        value="instdir",
    ),
    mods_path=FolderSpec(base="documents", path="My Games/runic games/torchlight 2/mods"),
    setup_dirs=[FolderSpec(base="documents", path="My Games/runic games/torchlight 2/mods")],
    steam_launcher=True,
    variants=[
        InstallerVariant(
            id="torchlight2-mod",
            anchor=AnchorRule(kind="extension", value=".mod"),
            strategy="file_folder",
        ),
    ],
)

DAWN_OF_MAN = GameProfile(
    id="dawnofman",
    name="Dawn of Man",
    executable="DawnOfMan.exe",
    steam_app_id="858810",
    store_names=["Dawn of Man"],
    mods_path=FolderSpec(path="Mods"),
    setup_dirs=[
        FolderSpec(base="documents", path="DawnOfMan/Scenarios"),
        FolderSpec(path="Mods"),
    ],
    patcher=PatcherSettings(
        data_path="DawnOfMan_Data/Managed",
        entry_point="DawnOfMan.TitleStateMain::init",
        mods_dir="Mods",
        skip_when_mods_installed=True,
    ),
    migration=MigrationNotice(
        id="dom-requires-upgrade",
        introduced_in="0.1.0",
        title="Dawn of Man",
        message="Dawn of Man mods no longer require UMM",
        explanation=_UMM_EXPLANATION.format(game="Dawn of Man"),
    ),
    mod_types=[
        ModTypeRule(
            id="dom-scene-modtype",
            priority=DEFAULT_PRIORITY,
            source_suffix=".scn.xml",
            target=FolderSpec(base="documents", path="DawnOfMan/Scenarios"),
        ),
    ],
    variants=[
        InstallerVariant(
            id="dom-scene-installer",
            anchor=AnchorRule(kind="suffix", value=".scn.xml"),
            strategy="name_spaced",
        ),
        InstallerVariant(
            id="dom-mod",
            anchor=AnchorRule(kind="basename", value="Info.json"),
            strategy="name_spaced",
        ),
    ],
)

BREAKING_WHEEL = GameProfile(
    id="breakingwheel",
    name="Breaking Wheel",
    executable="Ellie_Ball_Project.exe",
    required_files=["Ellie_Ball_Project.exe"],
    steam_app_id="545890",
    store_names=["Breaking Wheel"],
    mods_path=FolderSpec(path="ModdingTools"),
)

GRIMROCK = GameProfile(
    id="grimrock",
    name="Legend of Grimrock",
    executable="grimrock.exe",
    required_files=["grimrock.exe"],
    steam_app_id="207170",
    store_names=["Legend of Grimrock"],
    mods_path=FolderSpec(base="documents", path="Almost Human/Legend of Grimrock/Dungeons"),
    setup_dirs=[FolderSpec(base="documents", path="Almost Human/Legend of Grimrock/Dungeons")],
)

STATE_OF_DECAY = GameProfile(
    id="stateofdecay",
    name="State of Decay",
    executable="StateOfDecay.exe",
    required_files=["StateOfDecay.exe"],
    steam_app_id="241540",
    store_names=["State of Decay: Year-One", "State of Decay"],
    app_id_lookup=False,
    mods_path=FolderSpec(path="game"),
)

UNTITLED_GOOSE = GameProfile(
    id="untitledgoosegame",
    name="Untitled Goose Game",
    executable="Untitled.exe",
    required_files=["Untitled.exe", "UnityPlayer.dll"],
    epic_app_id="Flour",
    mods_path=FolderSpec(path="Untitled_Data/Managed/VortexMods"),
    setup_dirs=[FolderSpec(path="Untitled_Data/Managed/VortexMods")],
    patcher=PatcherSettings(
        data_path="Untitled_Data/Managed",
        entry_point="GameManager::Awake",
    ),
)

PATHFINDER_KINGMAKER = GameProfile(
    id="pathfinderkingmaker",
    name="Pathfinder: Kingmaker",
    executable="Kingmaker.exe",
    required_files=["Kingmaker.exe"],
    steam_app_id="640820",
    store_names=["Kingmaker"],
    mods_path=FolderSpec(path="Mods"),
    setup_dirs=[FolderSpec(path="Mods")],
    patcher=PatcherSettings(
        data_path="Kingmaker_Data/Managed",
        entry_point="Kingmaker.GameStarter::Awake",
        mods_dir="Mods",
        skip_when_mods_installed=True,
    ),
    migration=MigrationNotice(
        id="pk-requires-upgrade",
        introduced_in="0.3.0",
        title="Pathfinder: Kingmaker",
        message="Pathfinder: Kingmaker mods no longer require UMM",
        explanation=_UMM_EXPLANATION.format(game="Pathfinder: Kingmaker"),
    ),
)

MCC_REACH = GameProfile(
    id="halothemasterchiefcollection",
    name="Master Chief Collection: REACH",
    executable="mcclauncher.exe",
    steam_app_id="976730",
    ms_app_id="Microsoft.Chelan",
    mods_path=FolderSpec(base="local_low", path="MCC/LocalFiles"),
    carnage_report=CarnageReportSettings(internal_game_id="6", mods_folder="HaloReach"),
)

BUILTIN_PROFILES: tuple[GameProfile, ...] = (
    ELEX,
    TORCHLIGHT2,
    DAWN_OF_MAN,
    BREAKING_WHEEL,
    GRIMROCK,
    STATE_OF_DECAY,
    UNTITLED_GOOSE,
    PATHFINDER_KINGMAKER,
    MCC_REACH,
)


# ── Installers ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ModInstaller:
    """A registered installer: one game variant's classifier and builder."""

    id: str
    priority: int
    game_id: str
    classifier: ContentClassifier
    builder: InstructionBuilder

    @classmethod
    def for_variant(cls, game_id: str, variant: InstallerVariant) -> ModInstaller:
        return cls(
            id=variant.id,
            priority=variant.priority,
            game_id=game_id,
            classifier=ContentClassifier(game_id, variant),
            builder=InstructionBuilder(variant),
        )

    def test(self, files: Sequence[str], game_id: str) -> SupportResult:
        return self.classifier.test(files, game_id)

    def install(
        self,
        files: Sequence[str],
        destination_path: str,
        game_id: str | None = None,
        progress: Optional[ProgressCallback] = None,
        archive: str | None = None,
    ) -> InstallResult:
        if game_id is not None and game_id != self.game_id:
            raise InstallerError(
                f"Installer {self.id!r} handles {self.game_id!r}, not {game_id!r}"
            )
        return self.builder.install(files, destination_path, progress=progress, archive=archive)


class GameRegistry:
    def __init__(self, profiles: Iterable[GameProfile] = ()):
        self._games: dict[str, GameProfile] = {}
        self._installers: list[ModInstaller] = []
        self._resolvers: dict[str, VariantResolver] = {}
        for profile in profiles:
            self.register_game(profile)

    def register_game(self, profile: GameProfile, replace: bool = False):
        if profile.id in self._games:
            if not replace:
                raise ValueError(f"Game {profile.id!r} is already registered")
            self._installers = [i for i in self._installers if i.game_id != profile.id]

        self._games[profile.id] = profile
        self._resolvers[profile.id] = VariantResolver(profile.id, profile.variants)
        for variant in profile.variants:
            self._installers.append(ModInstaller.for_variant(profile.id, variant))
        _log.debug(
            "Registered %s (%s) with %d installer(s)",
            profile.name, profile.id, len(profile.variants),
        )

    def get(self, game_id: str) -> GameProfile:
        try:
            return self._games[game_id]
        except KeyError:
            raise UnknownGame(game_id) from None

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._games

    @property
    def games(self) -> list[GameProfile]:
        return list(self._games.values())

    def installers(self) -> list[ModInstaller]:
        """All installers in the order a host would try them."""
        return sorted(self._installers, key=lambda i: i.priority)

    def installers_for(self, game_id: str) -> list[ModInstaller]:
        return [i for i in self.installers() if i.game_id == game_id]

    # ── Dispatch ──────────────────────────────────────────────────────

    def test(self, files: Sequence[str], game_id: str) -> SupportResult:
        """Supported when any installer registered for the game accepts the files.

        Unknown games are simply not supported.
        """
        for installer in self.installers_for(game_id):
            result = installer.test(files, game_id)
            if result.supported:
                return result
        return SupportResult(supported=False)

    def find_installer(
        self, files: Sequence[str], game_id: str, strict: bool = False
    ) -> ModInstaller | None:
        self.get(game_id)
        resolution = self._resolvers[game_id].resolve(files, strict=strict)
        if resolution is None:
            return None
        return next(i for i in self._installers if i.id == resolution.variant.id and i.game_id == game_id)

    def plan(
        self,
        files: Sequence[str],
        game_id: str,
        destination_path: str,
        progress: Optional[ProgressCallback] = None,
        archive: str | None = None,
        strict: bool = False,
    ) -> InstallResult:
        installer = self.find_installer(files, game_id, strict=strict)
        if installer is None:
            raise NoAnchorFound(game_id, archive)
        _log.info("Planning %s with installer %s", archive or "archive", installer.id)
        return installer.install(
            files, destination_path, game_id=game_id, progress=progress, archive=archive
        )

    def mod_type_for(
        self, game_id: str, instructions: Sequence[CopyInstruction]
    ) -> ModTypeRule | None:
        """The mod type a finished plan deploys as; ``None`` for the default."""
        profile = self.get(game_id)
        for rule in sorted(profile.mod_types, key=lambda r: r.priority):
            suffix = rule.source_suffix.lower()
            if any(inst.source.lower().endswith(suffix) for inst in instructions):
                return rule
        return None


def default_registry(extra_profiles: Iterable[GameProfile] = ()) -> GameRegistry:
    """Registry with the built-in games; extra profiles override built-ins by id."""
    registry = GameRegistry(BUILTIN_PROFILES)
    for profile in extra_profiles:
        registry.register_game(profile, replace=profile.id in registry)
    return registry
