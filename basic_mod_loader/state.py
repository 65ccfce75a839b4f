from __future__ import annotations

import enum
import threading
from contextlib import contextmanager
from typing import Iterator


class LoadPhase(str, enum.Enum):
    not_loaded = 'not_loaded'
    loading = 'loading'
    loaded = 'loaded'


class LoadState:
    """Process-wide progress of mod discovery: not_loaded -> loading -> loaded.

    There is no way back to ``not_loaded`` and no failed phase; a pass that hit
    errors still ends ``loaded``. The whole pass runs under a re-entrant lock,
    so other threads wait for it and a mod calling back into the loader from
    its own ``on_load()`` sees ``loading`` and returns.

    The lock is held while mod code runs. A mod that starts a thread and
    joins it from ``on_load()`` deadlocks if that thread calls
    ``LoaderEntry.begin_mod_loading()`` or ``run_class_initializer()``.
    """

    def __init__(self) -> None:
        self._phase = LoadPhase.not_loaded
        self._lock = threading.RLock()

    @property
    def phase(self) -> LoadPhase:
        return self._phase

    @property
    def loaded(self) -> bool:
        return self._phase == LoadPhase.loaded

    @contextmanager
    def first_pass(self) -> Iterator[bool]:
        """Yield True to the single caller that should run discovery."""
        with self._lock:
            if self._phase != LoadPhase.not_loaded:
                yield False
                return
            self._phase = LoadPhase.loading
            try:
                yield True
            finally:
                self._phase = LoadPhase.loaded


# One per host process.
process_state = LoadState()
