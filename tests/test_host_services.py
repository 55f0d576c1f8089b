"""
Tests for setup, discovery and migration against fake host capabilities.
"""

from pathlib import Path

import pytest

from game_registry import (
    DAWN_OF_MAN,
    ELEX,
    GRIMROCK,
    MCC_REACH,
    PATHFINDER_KINGMAKER,
    STATE_OF_DECAY,
    TORCHLIGHT2,
    UNTITLED_GOOSE,
)
from host_services import (
    HostServices,
    UserFolders,
    discover_game,
    migrate,
    patcher_action,
    prepare_for_modding,
    requires_launcher,
    resolve_mods_path,
    xbox_user_id_from_report,
)
from installer_errors import GameNotFound, SetupError

REPORT = """<?xml version="1.0"?>
<CampaignCarnageReport>
  <GeneralData GameId="{game_id}" />
  <Players>
    <PlayerInfo isGuest="true" mXboxUserId="0x1111" />
    <PlayerInfo isGuest="false" mXboxUserId="0xABCDEF" />
  </Players>
</CampaignCarnageReport>
"""


# ── fakes ────────────────────────────────────────────────────────────────────

class FakeStore:
    def __init__(self, by_id=None, by_name=None, installed=(), registry=None):
        self.by_id = by_id or {}
        self.by_name = by_name or {}
        self.installed = set(installed)
        self.registry = registry or {}
        self.app_id_queries = []

    def find_by_app_id(self, app_ids):
        self.app_id_queries.append(list(app_ids))
        for app_id in app_ids:
            if app_id in self.by_id:
                return self.by_id[app_id]
        return None

    def find_by_name(self, name):
        return self.by_name.get(name)

    def is_installed(self, app_id, store):
        return (app_id, store) in self.installed

    def read_registry(self, hive, key, value):
        return self.registry.get((hive, key, value))


class FakeFs:
    def __init__(self, existing=()):
        self.ensured = []
        self.existing = {Path(p) for p in existing}

    def ensure_dir_writable(self, path):
        self.ensured.append(path)

    def exists(self, path):
        return Path(path) in self.existing


class FakeMods:
    def __init__(self, *game_ids):
        self.game_ids = set(game_ids)

    def has_existing_mods(self, game_id):
        return game_id in self.game_ids


class FakeNotifier:
    def __init__(self):
        self.notifications = []
        self.errors = []

    def notify(self, notification):
        self.notifications.append(notification)

    def report_error(self, title, message):
        self.errors.append((title, message))


class FakePatcher:
    def __init__(self, fail=None):
        self.calls = []
        self.fail = fail

    def run_patcher(self, root_dir, data_path, entry_point, remove, mods_dir):
        self.calls.append((root_dir, data_path, entry_point, remove, mods_dir))
        if self.fail:
            raise RuntimeError(self.fail)


def make_host(tmp_path, mods=(), patcher=None, running=False, fs=None):
    return HostServices(
        store=FakeStore(),
        fs=fs or FakeFs(),
        installed_mods=FakeMods(*mods),
        notifier=FakeNotifier(),
        patcher=patcher or FakePatcher(),
        folders=UserFolders.from_home(tmp_path / "home"),
        tools_running=lambda: running,
    )


# ── discovery ────────────────────────────────────────────────────────────────

def test_discover_by_app_id():
    store = FakeStore(by_id={"411300": "/games/Elex"})
    assert discover_game(ELEX, store) == Path("/games/Elex")


def test_discover_falls_back_through_names():
    store = FakeStore(by_name={"State of Decay": "/games/SoD"})
    assert discover_game(STATE_OF_DECAY, store) == Path("/games/SoD")


def test_name_only_discovery_skips_app_ids():
    store = FakeStore(by_id={"241540": "/games/steam/SoD"}, by_name={"State of Decay": "/games/SoD"})
    assert discover_game(STATE_OF_DECAY, store) == Path("/games/SoD")
    assert store.app_id_queries == []


def test_discover_prefers_registry_install_dir():
    key = ("HKEY_LOCAL_MACHINE", "SOFTWARE\\WOW6432Node\\runic games\\torchlight ii", "instdir")
    store = FakeStore(by_id={"200710": "/games/steam/tl2"}, registry={key: "C:/Games/Torchlight II"})
    assert discover_game(TORCHLIGHT2, store) == Path("C:/Games/Torchlight II")
    assert store.app_id_queries == []


def test_discover_falls_back_to_app_id_without_registry_entry():
    store = FakeStore(by_id={"200710": "/games/steam/tl2"})
    assert discover_game(TORCHLIGHT2, store) == Path("/games/steam/tl2")


def test_discover_not_found():
    with pytest.raises(GameNotFound):
        discover_game(GRIMROCK, FakeStore())


def test_epic_launcher_required_when_installed():
    store = FakeStore(installed={("Flour", "epic")})
    launcher = requires_launcher(UNTITLED_GOOSE, store, FakeFs(), "/games/goose")
    assert (launcher.launcher, launcher.app_id) == ("epic", "Flour")
    assert requires_launcher(UNTITLED_GOOSE, FakeStore(), FakeFs(), "/games/goose") is None


def test_xbox_launcher_for_windows_apps_path():
    launcher = requires_launcher(
        MCC_REACH, FakeStore(), FakeFs(), "C:\\Program Files\\WindowsApps\\Chelan"
    )
    assert launcher.launcher == "xbox"
    assert requires_launcher(MCC_REACH, FakeStore(), FakeFs(), "D:/Steam/MCC") is None


def test_steam_launcher_needs_steam_api_dll():
    fs = FakeFs(existing=["/games/tl2/steam_api.dll"])
    assert requires_launcher(TORCHLIGHT2, FakeStore(), fs, "/games/tl2").launcher == "steam"
    assert requires_launcher(TORCHLIGHT2, FakeStore(), FakeFs(), "/games/tl2") is None


# ── paths ────────────────────────────────────────────────────────────────────

def test_mods_path_relative_to_game_and_documents(tmp_path):
    folders = UserFolders.from_home(tmp_path)
    assert resolve_mods_path(ELEX, "/games/Elex", folders) == Path("/games/Elex/data/packed")
    assert resolve_mods_path(GRIMROCK, "/games/g", folders) == (
        tmp_path / "Documents" / "Almost Human" / "Legend of Grimrock" / "Dungeons"
    )


def test_xbox_user_id_from_report():
    assert xbox_user_id_from_report(REPORT.format(game_id="6"), "6") == "ABCDEF"
    assert xbox_user_id_from_report(REPORT.format(game_id="1"), "6") is None


def test_mcc_mods_path_from_reports(tmp_path):
    folders = UserFolders.from_home(tmp_path)
    reports = folders.local_low / "MCC" / "Temporary"
    reports.mkdir(parents=True)
    (reports / "campaigncarnagereport1_halo1.xml").write_text(REPORT.format(game_id="1"), encoding="utf-8")
    (reports / "campaigncarnagereport2_broken.xml").write_text("<oops", encoding="utf-8")
    (reports / "campaigncarnagereport3_reach.xml").write_text(REPORT.format(game_id="6"), encoding="utf-8")
    (reports / "unrelated.xml").write_text("<x/>", encoding="utf-8")

    assert resolve_mods_path(MCC_REACH, "/games/mcc", folders) == (
        folders.local_low / "MCC" / "LocalFiles" / "ABCDEF" / "HaloReach"
    )


# ── setup ────────────────────────────────────────────────────────────────────

def test_prepare_plain_game_ensures_mod_dir(tmp_path):
    host = make_host(tmp_path)
    ensured = prepare_for_modding(ELEX, tmp_path / "Elex", host)
    assert ensured == [tmp_path / "Elex" / "data" / "packed"]
    assert host.fs.ensured == ensured
    assert host.patcher.calls == []


def test_prepare_runs_patcher_for_fresh_install(tmp_path):
    game = tmp_path / "DoM"
    host = make_host(tmp_path)
    ensured = prepare_for_modding(DAWN_OF_MAN, game, host)
    assert host.patcher.calls == [
        (game, game / "DawnOfMan_Data" / "Managed", "DawnOfMan.TitleStateMain::init", False, game / "Mods")
    ]
    assert ensured == [
        host.folders.documents / "DawnOfMan" / "Scenarios",
        game / "Mods",
    ]


def test_prepare_leaves_existing_mod_setups_alone(tmp_path):
    host = make_host(tmp_path, mods=["dawnofman"])
    prepare_for_modding(DAWN_OF_MAN, tmp_path / "DoM", host)
    assert host.patcher.calls == []
    assert len(host.fs.ensured) == 2


def test_prepare_always_patches_ungated_games(tmp_path):
    host = make_host(tmp_path, mods=["untitledgoosegame"])
    game = tmp_path / "Goose"
    ensured = prepare_for_modding(UNTITLED_GOOSE, game, host)
    assert len(host.patcher.calls) == 1
    assert host.patcher.calls[0][4] is None
    mods = game / "Untitled_Data" / "Managed" / "VortexMods"
    assert ensured == [mods]
    assert resolve_mods_path(UNTITLED_GOOSE, game, host.folders) == mods


def test_prepare_mcc_without_reports_notifies(tmp_path):
    host = make_host(tmp_path)
    with pytest.raises(SetupError):
        prepare_for_modding(MCC_REACH, tmp_path / "MCC", host)
    assert host.notifier.errors[0][0] == "Unable to resolve Xbox user ID"


# ── patcher actions ──────────────────────────────────────────────────────────

def test_patcher_action_remove(tmp_path):
    host = make_host(tmp_path)
    assert patcher_action(DAWN_OF_MAN, tmp_path, host, remove=True) is True
    assert host.patcher.calls[0][3] is True


def test_patcher_action_blocked_while_running(tmp_path):
    host = make_host(tmp_path, running=True)
    assert patcher_action(DAWN_OF_MAN, tmp_path, host, remove=False) is True
    assert host.patcher.calls == []
    assert host.notifier.notifications[0].id == "patcher-tool-running"


def test_patcher_errors_are_reported(tmp_path):
    host = make_host(tmp_path, patcher=FakePatcher(fail="assembly locked"))
    patcher_action(DAWN_OF_MAN, tmp_path, host, remove=False)
    title, message = host.notifier.errors[0]
    assert title == "Patcher encountered errors"
    assert "assembly locked" in message


def test_patcher_action_without_patcher(tmp_path):
    assert patcher_action(ELEX, tmp_path, make_host(tmp_path), remove=False) is False


# ── migration ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "old_version, has_mods, shown",
    [
        ("0.0.9", True, True),
        ("0.0.9", False, False),
        ("0.1.0", True, False),
        ("0.2.3", True, False),
    ],
)
def test_migration_notice(tmp_path, old_version, has_mods, shown):
    host = make_host(tmp_path, mods=["dawnofman"] if has_mods else [])
    assert migrate(DAWN_OF_MAN, old_version, host) is shown
    assert len(host.notifier.notifications) == (1 if shown else 0)
    if shown:
        notice = host.notifier.notifications[0]
        assert notice.id == "dom-requires-upgrade"
        assert notice.severity == "warning"
        assert notice.dismissable is False


def test_pathfinder_migration_threshold(tmp_path):
    host = make_host(tmp_path, mods=["pathfinderkingmaker"])
    assert migrate(PATHFINDER_KINGMAKER, "0.2.1", host) is True
    assert migrate(PATHFINDER_KINGMAKER, "0.3.0", host) is False


def test_no_migration_for_plain_games(tmp_path):
    assert migrate(ELEX, "0.0.1", make_host(tmp_path, mods=["elex"])) is False
