"""Stage the loader next to the host modules and patch the host's start-up type.

Running two patchers against the same installation at the same time is not
supported; the operator is responsible for running one at a time.
"""

from __future__ import annotations

import enum
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Sequence

from pydantic import BaseModel

from mod_injector.binary.injection import HookCall, inject_call
from mod_injector.binary.pyc import CompiledModule
from mod_injector.binary.resolver import ModuleResolver
from mod_injector.core.config import settings
from mod_injector.errors import IOFailure, MissingDependency, StructuralMismatch, TargetNotFound

_log = logging.getLogger(__name__)

LOADER_SETTINGS_FILE = 'loader_settings.json'


class PatchOutcome(str, enum.Enum):
    patched = 'patched'
    repatched = 'repatched'
    already_patched = 'already_patched'


class PatchResult(BaseModel):
    outcome: PatchOutcome
    target: Path
    injection_site: str
    hook: str

    def describe(self) -> str:
        if self.outcome == PatchOutcome.already_patched:
            return f"{self.target.name} is already patched."
        return f"{self.target.name} patched: {self.injection_site} now calls {self.hook}."


def default_hook_call() -> HookCall:
    return HookCall(settings.hook_module, settings.hook_type, settings.hook_method)


# --- staging -------------------------------------------------------

def _copy_entry(source: Path, destination_dir: Path) -> Path:
    destination = destination_dir / source.name
    if source.is_dir():
        if destination.exists():
            shutil.rmtree(destination)
        shutil.copytree(source, destination, ignore=shutil.ignore_patterns('__pycache__', '*.pyc'))
    else:
        shutil.copy2(source, destination)
    return destination


def stage(hook_path: Path | str, dependency_paths: Iterable[Path | str], destination_dir: Path | str) -> List[Path]:
    """Copy the hook package and its support libraries into the host module directory.

    Existing copies are overwritten. A failure part way leaves whatever was
    already copied in place; running again copies everything again.
    """
    destination_dir = Path(destination_dir)
    sources = [Path(hook_path)] + [Path(p) for p in dependency_paths]
    for source in sources:
        if not source.exists():
            raise MissingDependency(f"cannot stage missing file: {source}")
    staged: List[Path] = []
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        for source in sources:
            staged.append(_copy_entry(source, destination_dir))
            _log.info("staged %s -> %s", source, destination_dir)
    except OSError as exc:
        raise IOFailure(f"staging into {destination_dir} failed: {exc}") from exc
    return staged


def write_loader_settings(staged_hook: Path | str, mods_root: Path | str) -> Path:
    """Record where the Mods Root lives, relative to the host module directory."""
    staged_hook = Path(staged_hook)
    modules_dir = staged_hook.parent
    relative = os.path.relpath(Path(mods_root), modules_dir)
    path = staged_hook / LOADER_SETTINGS_FILE
    try:
        path.write_text(json.dumps({'mods_root': relative}, indent=2), encoding='utf-8')
    except OSError as exc:
        raise IOFailure(f"could not write {path}: {exc}") from exc
    return path


# --- patching ------------------------------------------------------

def is_already_patched(target: CompiledModule, hook_name: str) -> bool:
    """True iff the target imports ``hook_name`` (or one of its submodules) anywhere."""
    for reference in target.references:
        if reference == hook_name or reference.split('.', 1)[0] == hook_name:
            return True
    return False


def _verify_entry_point(resolver: ModuleResolver, call: HookCall) -> None:
    with resolver.read_module(call.module) as hook:
        entry = hook.find_type(call.type_name)
        if entry is None:
            raise StructuralMismatch(f"{call.module} does not define {call.type_name}")
        if not entry.has_method(call.method):
            raise StructuralMismatch(f"{call.module}.{call.type_name} has no method {call.method}")


def patch(
    target_module_path: Path | str,
    hook_module_path: Path | str,
    search_directories: Sequence[Path | str],
    force: bool = False,
    injection_site: str | None = None,
    call: HookCall | None = None,
) -> PatchResult:
    """Make ``injection_site`` in the target module call the hook entry point.

    ``hook_module_path`` is the staged hook package; its parent directory is
    searched after ``search_directories`` so the hook always resolves.
    Nothing is written unless every lookup succeeds.
    """
    target_path = Path(target_module_path)
    if not target_path.is_file():
        raise TargetNotFound(f"module to patch not found: {target_path}")
    call = call or default_hook_call()
    site = injection_site or 'Application'

    resolver = ModuleResolver(search_directories)
    resolver.add_search_directory(Path(hook_module_path).parent)

    with CompiledModule.read(target_path) as target:
        already = is_already_patched(target, call.package)
        if already and not force:
            _log.info("target already references %s; skipping", call.package)
            return PatchResult(outcome=PatchOutcome.already_patched, target=target_path,
                               injection_site=site, hook=f"{call.type_name}.{call.method}")

        _verify_entry_point(resolver, call)

        typedef = target.find_type(site)
        if typedef is None:
            raise StructuralMismatch(f"type {site!r} not found in {target_path.name}")

        new_body = inject_call(typedef.code, call, replace_existing=True)
        target.replace_type_code(typedef.qualname, new_body)
        target.write(target_path)

    outcome = PatchOutcome.repatched if already else PatchOutcome.patched
    _log.info("patched target=%s site=%s outcome=%s", target_path, site, outcome.value)
    return PatchResult(outcome=outcome, target=target_path, injection_site=site,
                       hook=f"{call.type_name}.{call.method}")
