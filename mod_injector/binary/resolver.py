from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from mod_injector.binary.pyc import CompiledModule
from mod_injector.errors import StructuralMismatch

_log = logging.getLogger(__name__)

# Same preference order as the interpreter's file finder: package, source, bytecode.
_PACKAGE_INITS = ('__init__.py', '__init__.pyc')
_MODULE_SUFFIXES = ('.py', '.pyc')


class ModuleResolver:
    """Find modules by dotted name in an ordered list of directories.

    Only the configured directories are searched, never ``sys.path``: the
    patcher must see the host's modules, not its own environment.
    """

    def __init__(self, search_directories: Iterable[Path | str] = ()):
        self._directories: List[Path] = []
        for directory in search_directories:
            self.add_search_directory(directory)

    def add_search_directory(self, directory: Path | str) -> None:
        path = Path(directory)
        if path not in self._directories:
            self._directories.append(path)

    @property
    def search_directories(self) -> List[Path]:
        return list(self._directories)

    def _find_in(self, root: Path, parts: List[str]) -> Optional[Path]:
        current = root
        for package in parts[:-1]:
            current = current / package
            if not current.is_dir():
                return None
        leaf = current / parts[-1]
        if leaf.is_dir():
            for init in _PACKAGE_INITS:
                if (leaf / init).is_file():
                    return leaf / init
        for suffix in _MODULE_SUFFIXES:
            candidate = current / f"{parts[-1]}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def find(self, name: str) -> Optional[Path]:
        parts = [p for p in name.split('.') if p]
        if not parts:
            return None
        for directory in self._directories:
            found = self._find_in(directory, parts)
            if found is not None:
                _log.debug("resolved module=%s path=%s", name, found)
                return found
        return None

    def resolve(self, name: str) -> Path:
        found = self.find(name)
        if found is None:
            searched = ', '.join(str(d) for d in self._directories) or '(none)'
            raise StructuralMismatch(f"module {name!r} cannot be resolved; searched {searched}")
        return found

    def read_module(self, name: str) -> CompiledModule:
        return CompiledModule.load(self.resolve(name))
