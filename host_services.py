"""
Game setup orchestration on top of host-provided capabilities.

The planner never touches game stores, the user's filesystem, persisted
application state or the UI directly.  Those arrive as small protocols
bundled in ``HostServices``; this module only decides *what* to ask for:

* discover_game()        — store lookup by app id, then by name
* requires_launcher()    — whether the game must start through a store launcher
* resolve_mods_path()    — where a game's mods live
* prepare_for_modding()  — patcher run + writable mod directories
* patcher_action()       — manual "Patcher - Add" / "Patcher - Remove"
* migrate()              — one-time upgrade notice for users with mods
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Callable, Protocol, Sequence

from installer_errors import GameNotFound, SetupError
from installer_schema import FolderSpec, GameProfile

_log = logging.getLogger(__name__)

REPORT_PATTERN = re.compile(r"campaigncarnagereport.*\.xml", re.IGNORECASE)
WINDOWS_APPS_DIR = "c:/program files/windowsapps"
STEAM_API_DLL = "steam_api.dll"


# ── Host capabilities ─────────────────────────────────────────────────


class GameStore(Protocol):
    def find_by_app_id(self, app_ids: Sequence[str]) -> str | None: ...

    def find_by_name(self, name: str) -> str | None: ...

    def is_installed(self, app_id: str, store: str) -> bool: ...

    def read_registry(self, hive: str, key: str, value: str) -> str | None:
        """String registry value, or None when absent or off Windows."""
        ...


class FileSystem(Protocol):
    def ensure_dir_writable(self, path: Path) -> None: ...

    def exists(self, path: Path) -> bool: ...


class InstalledModsLookup(Protocol):
    def has_existing_mods(self, game_id: str) -> bool: ...


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...

    def report_error(self, title: str, message: str) -> None: ...


class Patcher(Protocol):
    def run_patcher(
        self,
        root_dir: Path,
        data_path: Path,
        entry_point: str,
        remove: bool,
        mods_dir: Path | None,
    ) -> None: ...


@dataclass
class Notification:
    id: str
    message: str
    severity: str = "info"
    title: str = ""
    details: str = ""
    dismissable: bool = True


@dataclass
class UserFolders:
    documents: Path
    local_low: Path

    @classmethod
    def from_home(cls, home: str | Path) -> UserFolders:
        home = Path(home)
        return cls(documents=home / "Documents", local_low=home / "AppData" / "LocalLow")


@dataclass
class HostServices:
    store: GameStore
    fs: FileSystem
    installed_mods: InstalledModsLookup
    notifier: Notifier
    patcher: Patcher
    folders: UserFolders
    tools_running: Callable[[], bool] = field(default=lambda: False)


@dataclass
class LauncherRequirement:
    launcher: str
    app_id: str


# ── Discovery ─────────────────────────────────────────────────────────


def discover_game(profile: GameProfile, store: GameStore) -> Path:
    reg = profile.registry_path
    if reg is not None:
        found = store.read_registry(reg.hive, reg.key, reg.value)
        if found:
            return Path(found)
        _log.debug("No registry entry for %s, trying game stores", profile.name)

    app_ids = [i for i in (profile.steam_app_id, profile.epic_app_id, profile.ms_app_id) if i]
    if app_ids and profile.app_id_lookup:
        found = store.find_by_app_id(app_ids)
        if found:
            return Path(found)
    for name in profile.store_names:
        found = store.find_by_name(name)
        if found:
            return Path(found)
    raise GameNotFound(f"{profile.name} was not found in any game store")


def requires_launcher(
    profile: GameProfile, store: GameStore, fs: FileSystem, game_path: str | Path
) -> LauncherRequirement | None:
    if profile.epic_app_id and store.is_installed(profile.epic_app_id, "epic"):
        return LauncherRequirement("epic", profile.epic_app_id)
    normalized = str(game_path).replace("\\", "/").lower()
    if profile.ms_app_id and normalized.startswith(WINDOWS_APPS_DIR):
        return LauncherRequirement("xbox", profile.ms_app_id)
    if (
        profile.steam_launcher
        and profile.steam_app_id
        and fs.exists(Path(game_path) / STEAM_API_DLL)
    ):
        return LauncherRequirement("steam", profile.steam_app_id)
    return None


# ── Paths ─────────────────────────────────────────────────────────────


def resolve_folder(folder: FolderSpec, game_path: str | Path, folders: UserFolders) -> Path:
    if folder.base == "documents":
        base = folders.documents
    elif folder.base == "local_low":
        base = folders.local_low
    else:
        base = Path(game_path)
    return base / PurePath(folder.path) if folder.path else base


def xbox_user_id_from_report(xml_text: str, internal_game_id: str) -> str | None:
    """Xbox user id of the non-guest player in an MCC campaign carnage report.

    Reports for other Halo titles (``GeneralData/@GameId`` mismatch) yield None.
    Raises ``xml.etree.ElementTree.ParseError`` on malformed XML.
    """
    root = ET.fromstring(xml_text)
    general = root.find("GeneralData")
    if general is None or general.get("GameId") != internal_game_id:
        return None
    for player in root.iterfind("Players/PlayerInfo"):
        if player.get("isGuest") == "false":
            xbox_id = player.get("mXboxUserId") or ""
            # Reported as "0x..."
            return xbox_id[2:] if xbox_id.lower().startswith("0x") else xbox_id or None
    return None


def resolve_mcc_mods_path(profile: GameProfile, folders: UserFolders) -> Path:
    settings = profile.carnage_report
    if settings is None:
        raise SetupError(f"{profile.name} has no carnage report settings")
    reports_dir = folders.local_low / "MCC" / "Temporary"
    try:
        reports = sorted(p for p in reports_dir.iterdir() if REPORT_PATTERN.match(p.name))
    except OSError as exc:
        raise SetupError(f"Unable to read MCC reports in {reports_dir}: {exc}") from exc

    for report in reports:
        try:
            xbox_id = xbox_user_id_from_report(
                report.read_text(encoding="utf-8"), settings.internal_game_id
            )
        except (OSError, ET.ParseError) as exc:
            _log.warning("Skipping unreadable carnage report %s: %s", report.name, exc)
            continue
        if xbox_id:
            return resolve_folder(profile.mods_path, "", folders) / xbox_id / settings.mods_folder
    raise SetupError("Unable to resolve Xbox user ID")


def resolve_mods_path(profile: GameProfile, game_path: str | Path, folders: UserFolders) -> Path:
    if profile.carnage_report is not None:
        return resolve_mcc_mods_path(profile, folders)
    return resolve_folder(profile.mods_path, game_path, folders)


# ── Setup ─────────────────────────────────────────────────────────────


def _run_patcher(profile: GameProfile, game_path: Path, host: HostServices, remove: bool):
    settings = profile.patcher
    mods_dir = game_path / PurePath(settings.mods_dir) if settings.mods_dir else None
    host.patcher.run_patcher(
        game_path, game_path / PurePath(settings.data_path), settings.entry_point, remove, mods_dir
    )


def prepare_for_modding(profile: GameProfile, game_path: str | Path, host: HostServices) -> list[Path]:
    """Patch the game if needed and make sure its mod directories are writable.

    Returns the directories that were ensured.
    """
    game_path = Path(game_path)

    if profile.patcher is not None:
        if profile.patcher.skip_when_mods_installed and host.installed_mods.has_existing_mods(profile.id):
            _log.info("%s already has mods installed, leaving the patcher alone", profile.name)
        else:
            _log.info("Running patcher for %s", profile.name)
            _run_patcher(profile, game_path, host, remove=False)

    ensured: list[Path] = []
    for folder in profile.setup_dirs:
        path = resolve_folder(folder, game_path, host.folders)
        host.fs.ensure_dir_writable(path)
        ensured.append(path)

    if profile.carnage_report is not None:
        try:
            mods_path = resolve_mcc_mods_path(profile, host.folders)
        except SetupError:
            host.notifier.report_error(
                "Unable to resolve Xbox user ID",
                "Please run the game at least once before modding it.",
            )
            raise
        host.fs.ensure_dir_writable(mods_path)
        ensured.append(mods_path)

    return ensured


def patcher_action(profile: GameProfile, game_path: str | Path, host: HostServices, remove: bool) -> bool:
    """Add or remove the patcher on demand.

    Returns False when the game has no patcher; errors are reported through
    the notifier rather than raised.
    """
    if profile.patcher is None:
        return False

    if host.tools_running():
        host.notifier.notify(
            Notification(
                id="patcher-tool-running",
                message="Can't run the patcher while a tool/game is running",
            )
        )
        return True

    try:
        _run_patcher(profile, Path(game_path), host, remove=remove)
    except Exception as exc:
        _log.error("Patcher failed for %s: %s", profile.name, exc)
        host.notifier.report_error(
            "Patcher encountered errors",
            f'The patcher was unable to finish its operation "{exc}"',
        )
    return True


# ── Migration ─────────────────────────────────────────────────────────


def _version_tuple(version: str) -> tuple[int, ...]:
    core = version.split("-", 1)[0].split("+", 1)[0]
    parts = [int(x) for x in re.findall(r"\d+", core)[:3]]
    return tuple(parts + [0] * (3 - len(parts)))


def migrate(profile: GameProfile, old_version: str, host: HostServices) -> bool:
    """Show the profile's migration notice once, for upgrades with mods installed.

    Returns True when the notice was sent.
    """
    notice = profile.migration
    if notice is None:
        return False
    if _version_tuple(old_version) >= _version_tuple(notice.introduced_in):
        return False
    if not host.installed_mods.has_existing_mods(profile.id):
        return False

    host.notifier.notify(
        Notification(
            id=notice.id,
            message=notice.message,
            severity="warning",
            title=notice.title,
            details=notice.explanation,
            dismissable=False,
        )
    )
    return True
