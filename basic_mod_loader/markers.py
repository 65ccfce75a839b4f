"""The ``run_on_load`` marker and class initializers.

Decorating a class registers it under its defining module. The loader asks
the registry for a module's marked classes instead of scanning attributes, so
a marked class is found even if the module later rebinds its name.

The marker is not inherited: a subclass of a marked class is not marked.
"""

from __future__ import annotations

import logging
import threading
import weakref
from types import ModuleType
from typing import Dict, List, TypeVar

_log = logging.getLogger(__name__)

MARKER_ATTRIBUTE = '__run_on_load__'
INITIALIZER = 'on_load'

T = TypeVar('T', bound=type)

_registry: Dict[str, List[type]] = {}
_registry_lock = threading.Lock()

_initialized: "weakref.WeakSet[type]" = weakref.WeakSet()
_initializer_lock = threading.RLock()


def run_on_load(cls: T) -> T:
    """Mark ``cls`` so the loader runs its ``on_load()`` right after importing it."""
    if not isinstance(cls, type):
        raise TypeError(f"run_on_load can only decorate classes, got {cls!r}")
    setattr(cls, MARKER_ATTRIBUTE, True)
    with _registry_lock:
        _registry.setdefault(cls.__module__, []).append(cls)
    return cls


def is_marked(cls: type) -> bool:
    return cls.__dict__.get(MARKER_ATTRIBUTE) is True


def marked_types(module: ModuleType) -> List[type]:
    with _registry_lock:
        registered = list(_registry.get(module.__name__, ()))
    return [cls for cls in registered if is_marked(cls)]


def forget_module(name: str) -> None:
    with _registry_lock:
        _registry.pop(name, None)


def run_class_initializer(cls: type) -> bool:
    """Run ``cls.on_load()`` unless it already ran in this process.

    Only an ``on_load`` defined on ``cls`` itself counts. A class is marked as
    initialized before its initializer runs, so one that raises is not retried.
    Returns False when the class had already been initialized.

    ``on_load()`` runs under a process-wide lock (see ``LoadState``).
    """
    with _initializer_lock:
        if cls in _initialized:
            return False
        _initialized.add(cls)
        if INITIALIZER not in cls.__dict__:
            _log.debug("%s has no %s(); nothing to run", cls.__qualname__, INITIALIZER)
            return True
        getattr(cls, INITIALIZER)()
    return True
