"""Non-destructive runtime patching for mods.

Mods usually need to hook into host functions. Editing the host again is what
the patcher does once; everything after that should wrap functions in memory:

    from basic_mod_loader.patching import patches

    @patches('hostcore', 'Application.quit')
    def log_quit(wrapped, instance, args, kwargs):
        print("quitting")
        return wrapped(*args, **kwargs)
"""

import logging

import wrapt

_log = logging.getLogger(__name__)


def patch_function(target, name, wrapper):
    """Wrap ``target.name`` with ``wrapper(wrapped, instance, args, kwargs)``.

    ``target`` is a module, a class or a module name; ``name`` may be dotted
    (``"Class.method"``). Returns the installed wrapper object.
    """
    installed = wrapt.wrap_function_wrapper(target, name, wrapper)
    _log.debug("patched %s.%s with %s", getattr(target, '__name__', target), name,
               getattr(wrapper, '__qualname__', wrapper))
    return installed


def patches(target, name):
    """Decorator form of :func:`patch_function`."""
    def decorator(wrapper):
        patch_function(target, name, wrapper)
        return wrapper
    return decorator
