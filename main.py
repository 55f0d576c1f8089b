#!/usr/bin/env python3
"""Mod Install Planner — Entry Point"""

from __future__ import annotations

import argparse
import faulthandler
import json
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import ValidationError

from archive_listing import SUPPORTED_EXTENSIONS, list_archive
from game_registry import GameRegistry, default_registry
from installer_errors import InstallerError, NoAnchorFound
from installer_schema import parse_profiles
from instruction_builder import INSTALLING_SUFFIX
from plan_executor import apply_plan

PROFILES_ENV = "MOD_INSTALL_PLANNER_PROFILES"

_handlers: list[logging.Handler] = []


def setup_logging(log_dir: str | Path | None = None, verbose: bool = False) -> tuple[logging.Logger, Path]:
    if log_dir is None:
        log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "ModInstallPlanner"
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "modinstallplanner.log"

    logger = logging.getLogger()
    for old in _handlers:
        logger.removeHandler(old)
        old.close()
    _handlers.clear()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.setLevel(logging.DEBUG)
    for handler in (file_handler, console):
        logger.addHandler(handler)
        _handlers.append(handler)
    return logger, log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler can't use logging after a hard crash, so it gets its own file
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan and apply game mod installs")
    parser.add_argument("--profiles", default=os.environ.get(PROFILES_ENV),
                        help="JSON file with extra game profiles")
    parser.add_argument("--log-dir")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("games", help="List registered games and their installers")

    for name, help_text in (
        ("test", "Check whether an archive is a supported mod"),
        ("plan", "Print the copy instructions for an archive"),
        ("install", "Apply the copy instructions to a directory"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("archive")
        sub.add_argument("--game", required=True)
        if name != "test":
            sub.add_argument("--destination",
                             help="Staging path the mod name is derived from "
                                  "(default: <archive name>.installing)")
            sub.add_argument("--strict", action="store_true",
                             help="Fail on archives matching several mod layouts")
        if name == "install":
            sub.add_argument("--target", required=True, help="Mod install directory")
    return parser.parse_args(argv)


def load_registry(profiles_file: str | None) -> GameRegistry:
    if not profiles_file:
        return default_registry()
    profiles = parse_profiles(Path(profiles_file).read_bytes())
    logging.getLogger(__name__).info("Loaded %d profile(s) from %s", len(profiles), profiles_file)
    return default_registry(profiles)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def run(args: argparse.Namespace, registry: GameRegistry) -> int:
    if args.command == "games":
        for game in registry.games:
            installers = ", ".join(i.id for i in registry.installers_for(game.id)) or "-"
            print(f"{game.id:<30} {game.name:<35} {installers}")
        return 0

    archive = Path(args.archive)
    if archive.suffix.lower() not in SUPPORTED_EXTENSIONS:
        print(f"Unsupported archive format: {archive.suffix}", file=sys.stderr)
        return 2
    files = list_archive(archive)

    if args.command == "test":
        result = registry.test(files, args.game)
        _print_json(result.model_dump(by_alias=True))
        return 0 if result.supported else 1

    destination = args.destination or archive.stem + INSTALLING_SUFFIX
    installer = registry.find_installer(files, args.game, strict=args.strict)
    if installer is None:
        raise NoAnchorFound(args.game, archive.name)
    result = installer.install(files, destination, game_id=args.game, archive=archive.name)
    mod_type = registry.mod_type_for(args.game, result.instructions)

    if args.command == "plan":
        _print_json({
            "installer": installer.id,
            "mod_type": mod_type.id if mod_type else None,
            "instructions": [inst.model_dump() for inst in result.instructions],
        })
        return 0

    if mod_type is not None:
        logging.getLogger(__name__).warning(
            "%s is a %s mod; its default folder is %s/%s",
            archive.name, mod_type.id, mod_type.target.base, mod_type.target.path,
        )
    written = apply_plan(archive, result.instructions, args.target)
    print(f"Installed {len(written)} file(s) into {args.target}")
    return 0


def main(argv: list[str] | None = None, crash_handler: bool = False) -> int:
    args = parse_args(argv)
    logger, log_dir = setup_logging(args.log_dir, args.verbose)
    if crash_handler:
        install_crash_handler(logger, log_dir)
    try:
        registry = load_registry(args.profiles)
        return run(args, registry)
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.error("Invalid profile file %s: %s", args.profiles, exc)
        return 2
    except (InstallerError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main(crash_handler=True))
