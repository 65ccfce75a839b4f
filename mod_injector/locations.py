from __future__ import annotations

import importlib.util
import logging
from pathlib import Path

from mod_injector.core.config import HostProfile
from mod_injector.errors import MissingDependency

_log = logging.getLogger(__name__)


def assume_location(profile: HostProfile) -> str:
    """Best guess of the install root on this platform ('' when unknown)."""
    return profile.install_location.current()


def save_location(profile: HostProfile) -> str:
    return profile.save_location.current()


def locate_package(name: str) -> Path:
    """Path of an importable package (its directory) or single-file module.

    The loader files ship in the same environment as the patcher, so they are
    found through the patcher's own import system.
    """
    try:
        spec = importlib.util.find_spec(name)
    except (ImportError, ValueError) as exc:
        raise MissingDependency(f"{name} is not installed alongside the patcher") from exc
    if spec is None or spec.origin in (None, 'built-in', 'frozen'):
        raise MissingDependency(f"{name} is not installed alongside the patcher")
    if spec.submodule_search_locations:
        path = Path(next(iter(spec.submodule_search_locations)))
    else:
        path = Path(spec.origin)
    _log.debug("located package=%s path=%s", name, path)
    return path

