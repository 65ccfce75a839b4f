"""Command line front end of the patcher.

    mod-injector [--game-location PATH] [--no-interactive] [-f|--force]
                 [--profile HOST.yml] [--log-level LEVEL]

Interactive mode warns about save backups, asks for the install location until
an existing directory is given, patches, and waits for Enter before exiting.
Do not run two patchers against the same installation at once.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from mod_injector.core.config import HostProfile, load_profile, settings
from mod_injector.core.logging_config import configure_logging
from mod_injector.errors import PatchError, TargetNotFound
from mod_injector.locations import assume_location, locate_package, save_location
from mod_injector.patcher import PatchOutcome, PatchResult, patch, stage, write_loader_settings

_log = logging.getLogger(__name__)


def _say(line: str) -> None:
    print(line, flush=True)


def blinking(text: str) -> str:
    # Windows consoles print the escape codes literally.
    if sys.platform.startswith('win'):
        return text
    return f"\x1b[5m{text}\x1b[25m"


def start_patching(install_root: Path, profile: HostProfile, force: bool = False,
                   out: Callable[[str], None] = _say) -> PatchResult:
    """Stage the loader into the host and patch its target module."""
    install_root = Path(install_root)
    if not install_root.is_dir():
        raise TargetNotFound(f"install location does not exist: {install_root}")
    modules_dir = profile.modules_path(install_root)
    target = profile.target_path(install_root)
    if not target.is_file():
        raise TargetNotFound(f"{profile.target_module} not found in {modules_dir}")

    hook = locate_package(settings.hook_package)
    dependencies = [locate_package(name) for name in settings.support_libraries]

    mods_root = profile.mods_path(install_root)
    mods_root.mkdir(parents=True, exist_ok=True)

    out("Copying needed libraries over.")
    staged = stage(hook, dependencies, modules_dir)
    write_loader_settings(staged[0], mods_root)

    out(f"Checking to see if {profile.target_module} is patched.")
    result = patch(target, staged[0], [modules_dir], force=force,
                   injection_site=profile.injection_site)
    if result.outcome == PatchOutcome.already_patched:
        out(f"{profile.target_module} is already patched.")
    else:
        out(f"Patched {profile.target_module}.")
    return result


def _pause(prompt: str = "Press Enter to continue. . .") -> None:
    try:
        input(prompt)
    except EOFError:
        pass


def interactive(location: str, profile: HostProfile, force: bool) -> PatchResult:
    print(f"Welcome to the {profile.name} Mod Patcher.", flush=True)
    saves = save_location(profile)
    warning = "Back up your save files before doing this."
    if saves:
        warning += f"\nLocation is `{saves}`"
    print(f"\x1b[31m{blinking(warning)}\x1b[0m", flush=True)
    _pause()

    loc = location
    while not loc or not loc.strip() or not Path(loc).is_dir():
        example = assume_location(profile) or '/path/to/host'
        try:
            loc = input(f"Please enter the full location of the host. Example: {example}\n").strip()
        except EOFError:
            raise TargetNotFound("no install location given") from None

    result = start_patching(Path(loc), profile, force=force)
    print("Injecting complete, have fun modding.", flush=True)
    _pause()
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='mod-injector', description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('--game-location', dest='location', default=None,
                        help='Install root of the host (defaults to the usual location for this platform)')
    parser.add_argument('--no-interactive', dest='interactive', action='store_false',
                        help='Do not prompt; --game-location must be an existing directory')
    parser.add_argument('-f', '--force', action='store_true', help='Patch again even if already patched')
    parser.add_argument('--profile', default=settings.profile_path,
                        help='Host profile YAML describing where the host keeps its modules')
    parser.add_argument('--log-level', default=settings.log_level, help='Logging level (default %(default)s)')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        profile = load_profile(args.profile)
    except (OSError, ValueError) as exc:
        print(f"Could not read host profile {args.profile}: {exc}", file=sys.stderr, flush=True)
        return 1
    location = args.location if args.location is not None else assume_location(profile)
    _log.debug("mod-injector %s location=%s force=%s", settings.version, location, args.force)

    try:
        if args.interactive:
            result = interactive(location, profile, args.force)
        else:
            if not location or not Path(location).is_dir():
                raise TargetNotFound(
                    "The provided directory does not exist. Please make sure you pointed the program to the proper place."
                )
            result = start_patching(Path(location), profile, force=args.force)
    except PatchError as exc:
        print(f"Patching failed: {exc}", file=sys.stderr, flush=True)
        _log.debug("patch failure", exc_info=True)
        return 1
    print(result.describe(), flush=True)
    return 0
