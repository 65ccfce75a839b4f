"""Failure taxonomy for a single patch run.

Every error here is terminal for the run that raised it: nothing is retried
automatically and the CLI turns any of them into a non-zero exit status.
"""

from __future__ import annotations


class PatchError(Exception):
    """Base class for everything the patcher reports to the operator."""

    hint: str = ""

    def __str__(self) -> str:
        base = super().__str__()
        if self.hint:
            return f"{base} ({self.hint})"
        return base


class MissingDependency(PatchError):
    """The hook package or its support library is not next to the patcher."""

    hint = "reinstall the patcher so the loader files ship with it"


class TargetNotFound(PatchError):
    """The host installation path, or the module to patch inside it, does not exist."""

    hint = "check --game-location"


class StructuralMismatch(PatchError):
    """An expected type, method or module format is absent from a compiled module.

    Usually means the host was updated to a version this patcher was not
    built for.
    """

    hint = "the host version is not supported by this patcher"


class IOFailure(PatchError):
    """Copying or writing failed. The operator may simply run the patcher again."""

    hint = "re-run the patcher once the file is writable"
