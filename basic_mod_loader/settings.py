"""Where the Mods Root is.

Env vars:
  BASIC_MOD_LOADER_MODS_DIR  - explicit Mods Root, wins over everything else

Otherwise ``loader_settings.json`` written by the patcher next to this file
names the Mods Root relative to the host module directory. Without it the
Mods Root is two levels above the module directory.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

_log = logging.getLogger(__name__)

ENV_MODS_DIR = 'BASIC_MOD_LOADER_MODS_DIR'
SETTINGS_FILE = 'loader_settings.json'
PACKAGE_DIR = Path(__file__).resolve().parent


def _configured_mods_root(package_dir: Path) -> Path | None:
    cfg = package_dir / SETTINGS_FILE
    if not cfg.is_file():
        return None
    try:
        data = json.loads(cfg.read_text(encoding='utf-8'))
    except (OSError, ValueError) as exc:
        _log.warning("ignoring unreadable %s: %s", cfg, exc)
        return None
    relative = data.get('mods_root') if isinstance(data, dict) else None
    if not relative:
        return None
    return (package_dir.parent / relative).resolve()


def mods_root(package_dir: Path = PACKAGE_DIR) -> Path:
    """Resolve the Mods Root and create it if it does not exist yet."""
    env = os.getenv(ENV_MODS_DIR)
    if env:
        folder = Path(env)
    else:
        folder = _configured_mods_root(package_dir) or (package_dir.parent.parent / 'Mods').resolve()
    folder.mkdir(parents=True, exist_ok=True)
    return folder
