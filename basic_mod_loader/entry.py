from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from . import settings
from .loader import MOD_FAILURES, ModLoader
from .state import process_state

_log = logging.getLogger(__name__)

_default_loader: Optional[ModLoader] = None


def default_loader() -> ModLoader:
    global _default_loader
    if _default_loader is None:
        _default_loader = ModLoader(settings.mods_root, process_state)
    return _default_loader


class LoaderEntry:
    """The type the patched host calls into.

    The patcher looks this class and :meth:`begin_mod_loading` up by name, so
    neither may be renamed.
    """

    @staticmethod
    def begin_mod_loading() -> None:
        # Runs inside the host's own start-up; nothing may escape.
        try:
            default_loader().begin()
        except MOD_FAILURES:
            _log.exception("mod loading failed")

    @staticmethod
    def is_loaded() -> bool:
        return default_loader().state.loaded

    @staticmethod
    def mods_folder() -> Path:
        return default_loader().mods_root()
