"""Bootstrap that the patched host imports during start-up.

Mods live in ``Mods/<mod name>/Assemblies/`` next to the host. Every ``.py``
or ``.pyc`` file in an ``Assemblies`` folder is imported once per process and
each class decorated with :func:`run_on_load` gets its ``on_load()`` called.

This package only depends on the standard library and ``wrapt`` (staged next
to it) because it runs inside the host's interpreter.
"""

from .markers import run_on_load, run_class_initializer
from .entry import LoaderEntry

__all__ = ["LoaderEntry", "run_on_load", "run_class_initializer"]
