"""Discover and activate mods.

One broken mod must never stop the host or any other mod from starting:
every module file is loaded and activated inside its own error boundary, and
failures are logged and recorded in the :class:`PluginReport`.

Module files of a mod import each other by plain name (``import helper``).
Those imports are answered by :class:`SiblingFinder` with the module the
loader already created for that file, so every file runs exactly once.
"""

from __future__ import annotations

import hashlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Callable, Dict, List, Optional, Set, Tuple

from .markers import forget_module, marked_types, run_class_initializer
from .state import LoadState, process_state

_log = logging.getLogger(__name__)

ASSEMBLIES_DIR = 'Assemblies'
MODULE_PREFIX = 'basic_mod_loader_mods'

# A mod calling sys.exit() must not end the host; KeyboardInterrupt still propagates.
MOD_FAILURES = (Exception, SystemExit)


@dataclass
class PluginReport:
    plugin: str
    modules: List[str] = field(default_factory=list)
    activated: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def _identifier(text: str) -> str:
    cleaned = re.sub(r'\W', '_', text)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    if cleaned != text:
        # "my-mod" and "my_mod" must not share a module name.
        cleaned = f"{cleaned}_{hashlib.sha1(text.encode('utf-8')).hexdigest()[:8]}"
    return cleaned


def module_name_for(plugin: str, path: Path) -> str:
    return f"{MODULE_PREFIX}.{_identifier(plugin)}.{_identifier(path.stem)}"


def module_files(assemblies: Path) -> List[Path]:
    """``.py`` and ``.pyc`` files directly inside ``assemblies``; source wins over bytecode."""
    files = sorted(p for p in assemblies.iterdir() if p.is_file() and p.suffix in ('.py', '.pyc'))
    sources = {p.stem for p in files if p.suffix == '.py'}
    return [p for p in files if p.suffix == '.py' or p.stem not in sources]


class _ExistingModuleLoader(importlib.abc.Loader):
    """Hands an already executed module to the import system under another name."""

    def __init__(self, module: ModuleType):
        self._module = module

    def create_module(self, spec):
        return self._module

    def exec_module(self, module):
        pass


class SiblingFinder(importlib.abc.MetaPathFinder):
    """Resolve plain top-level imports of mod files to the loader's own modules.

    Sits at the end of ``sys.meta_path``, so the standard library and installed
    packages keep precedence over a mod file of the same name. When two mods
    ship a file with the same name, the first registered one wins.
    """

    def __init__(self, loader: "ModLoader"):
        self._loader = loader
        self._files: Dict[str, Tuple[str, Path]] = {}

    def register(self, plugin: str, files: List[Path]) -> None:
        for path in files:
            self._files.setdefault(path.stem, (plugin, path))

    def find_spec(self, fullname, path=None, target=None):
        if path is not None or fullname not in self._files:
            return None
        plugin, file = self._files[fullname]
        module = self._loader.load_file(file, plugin)
        if module is None:
            raise ImportError(f"mod module {fullname!r} failed to load", name=fullname)
        return importlib.util.spec_from_loader(fullname, _ExistingModuleLoader(module))


class ModLoader:
    def __init__(self, mods_root: Path | Callable[[], Path], state: Optional[LoadState] = None):
        self._mods_root = mods_root
        self.state = state if state is not None else process_state
        self.reports: List[PluginReport] = []
        self._reports: Dict[str, PluginReport] = {}
        self._modules: Dict[Path, ModuleType] = {}
        self._attempted: Set[Path] = set()
        self.finder = SiblingFinder(self)

    def mods_root(self) -> Path:
        root = self._mods_root() if callable(self._mods_root) else Path(self._mods_root)
        root.mkdir(parents=True, exist_ok=True)
        return root

    def begin(self) -> List[PluginReport]:
        """Run discovery once per process; later calls return an empty list."""
        with self.state.first_pass() as first:
            if not first:
                _log.debug("mods already loaded (phase=%s)", self.state.phase.value)
                return []
            try:
                root = self.mods_root()
                plugin_dirs = sorted(p for p in root.iterdir() if p.is_dir())
            except Exception:
                _log.exception("Could not read the Mods folder; no mods will be loaded")
                return []
            for plugin_dir in plugin_dirs:
                self.reports.append(self.load_plugin(plugin_dir))
            _log.info("Loaded %d mod folder(s) from %s", len(plugin_dirs), root)
        return list(self.reports)

    def _report_for(self, plugin: str) -> PluginReport:
        if plugin not in self._reports:
            self._reports[plugin] = PluginReport(plugin=plugin)
        return self._reports[plugin]

    def _install_finder(self) -> None:
        if self.finder not in sys.meta_path:
            sys.meta_path.append(self.finder)

    def load_plugin(self, plugin_dir: Path) -> PluginReport:
        report = self._report_for(plugin_dir.name)
        assemblies = plugin_dir / ASSEMBLIES_DIR
        _log.debug("Verifying that the mod folder %s contains assemblies.", plugin_dir)
        if not assemblies.is_dir():
            return report
        try:
            files = module_files(assemblies)
        except OSError:
            _log.exception("Could not list %s", assemblies)
            report.failures[ASSEMBLIES_DIR] = 'unreadable'
            return report

        self.finder.register(plugin_dir.name, files)
        self._install_finder()
        for path in files:
            # A sibling may already have imported it.
            if path not in self._attempted:
                self.load_file(path, plugin_dir.name)
        _log.info("All done loading modules in `%s`.", assemblies)
        return report

    def load_file(self, path: Path, plugin: str) -> Optional[ModuleType]:
        """Load and activate ``path`` once; failures are recorded, never raised.

        Returns the module (even when one of its initializers failed), or
        None when it could not be imported.
        """
        if path in self._attempted:
            return self._modules.get(path)
        self._attempted.add(path)
        report = self._report_for(plugin)
        try:
            module = self.load_module_file(path, plugin)
            self._modules[path] = module
            report.modules.append(module.__name__)
            report.activated.extend(self.activate(module))
        except MOD_FAILURES as exc:
            report.failures[path.name] = f"{type(exc).__name__}: {exc}"
            _log.exception(
                "Failed to load or run `%s` from mod `%s`; continuing with the rest. "
                "Please report the exception below to the author of the mod.",
                path.name, plugin,
            )
        return self._modules.get(path)

    def load_module_file(self, path: Path, plugin: str) -> ModuleType:
        name = module_name_for(plugin, path)
        if path.suffix == '.pyc':
            loader = importlib.machinery.SourcelessFileLoader(name, str(path))
        else:
            loader = importlib.machinery.SourceFileLoader(name, str(path))
        spec = importlib.util.spec_from_file_location(name, str(path), loader=loader)
        if spec is None:
            raise ImportError(f"cannot build an import spec for {path}")
        module = importlib.util.module_from_spec(spec)

        forget_module(name)
        sys.modules[name] = module
        try:
            loader.exec_module(module)
        except BaseException:
            sys.modules.pop(name, None)
            forget_module(name)
            raise
        _log.info("Looking at module `%s` (%s).", name, path)
        return module

    def activate(self, module: ModuleType) -> List[str]:
        """Run the initializer of every marked class in ``module``."""
        activated: List[str] = []
        for cls in marked_types(module):
            if run_class_initializer(cls):
                activated.append(f"{module.__name__}.{cls.__qualname__}")
        return activated
