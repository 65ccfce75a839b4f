"""In-memory model of a compiled Python module (``.pyc``).

A ``.pyc`` file is a 16 byte header followed by a marshalled code object. The
code object is a tree: the module code owns class-body code objects through
``co_consts``, class bodies own their methods and nested classes the same way.
:class:`CompiledModule` exposes that tree as type definitions and a reference
table (every module name imported anywhere in the tree) and lets callers swap
one class body for an edited copy before writing the whole module back.
"""

from __future__ import annotations

import dis
import importlib.util
import inspect
import logging
import marshal
import os
import shutil
import tempfile
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from mod_injector.errors import IOFailure, StructuralMismatch, TargetNotFound

_log = logging.getLogger(__name__)

HEADER_SIZE = 16


@dataclass(frozen=True)
class PycHeader:
    magic: bytes
    flags: int
    # Source mtime + size, or the source hash for hash-based pycs.
    validation: bytes

    @classmethod
    def parse(cls, data: bytes) -> "PycHeader":
        if len(data) < HEADER_SIZE:
            raise StructuralMismatch(f"truncated pyc header ({len(data)} bytes)")
        return cls(
            magic=bytes(data[:4]),
            flags=int.from_bytes(data[4:8], 'little'),
            validation=bytes(data[8:16]),
        )

    @classmethod
    def for_running_interpreter(cls) -> "PycHeader":
        return cls(magic=importlib.util.MAGIC_NUMBER, flags=0, validation=b'\x00' * 8)

    def to_bytes(self) -> bytes:
        return self.magic + self.flags.to_bytes(4, 'little') + self.validation


@dataclass(frozen=True)
class TypeDefinition:
    """A class defined at module level, or nested inside another class."""

    name: str
    qualname: str
    code: types.CodeType
    methods: Tuple[str, ...]

    def has_method(self, name: str) -> bool:
        return name in self.methods


def _is_function(code: types.CodeType) -> bool:
    return bool(code.co_flags & inspect.CO_OPTIMIZED)


def _is_class_body(code: types.CodeType) -> bool:
    # Class bodies run unoptimized (LOAD_NAME/STORE_NAME) and always bind
    # __module__ and __qualname__ first.
    if _is_function(code):
        return False
    return '__module__' in code.co_names and '__qualname__' in code.co_names


def _nested_code(code: types.CodeType) -> Iterator[Tuple[int, types.CodeType]]:
    for index, const in enumerate(code.co_consts):
        if isinstance(const, types.CodeType):
            yield index, const


def _walk(code: types.CodeType) -> Iterator[types.CodeType]:
    yield code
    for _, child in _nested_code(code):
        yield from _walk(child)


def imported_names(code: types.CodeType) -> Set[str]:
    """Every module name passed to an import anywhere below ``code``."""
    names: Set[str] = set()
    for each in _walk(code):
        for instr in dis.get_instructions(each):
            if instr.opname == 'IMPORT_NAME':
                names.add(instr.argval)
    return names


class CompiledModule:
    """A parsed ``.pyc`` (or compiled source) file.

    Use it as a context manager so the code graph is released on every exit
    path; a closed module refuses further access.
    """

    def __init__(self, header: PycHeader, code: types.CodeType, path: Optional[Path] = None):
        self.header = header
        self.path = path
        self._code: Optional[types.CodeType] = code

    # --- loading -----------------------------------------------------
    @classmethod
    def read(cls, path: Path | str) -> "CompiledModule":
        path = Path(path)
        try:
            with open(path, 'rb') as fh:
                data = fh.read()
        except FileNotFoundError as exc:
            raise TargetNotFound(f"compiled module not found: {path}") from exc
        except OSError as exc:
            raise IOFailure(f"could not read {path}: {exc}") from exc
        header = PycHeader.parse(data)
        if header.magic != importlib.util.MAGIC_NUMBER:
            raise StructuralMismatch(
                f"{path.name} was compiled for a different interpreter "
                f"(magic {header.magic.hex()}, expected {importlib.util.MAGIC_NUMBER.hex()})"
            )
        try:
            code = marshal.loads(data[HEADER_SIZE:])
        except (EOFError, ValueError, TypeError) as exc:
            raise StructuralMismatch(f"{path.name} does not contain valid bytecode: {exc}") from exc
        if not isinstance(code, types.CodeType):
            raise StructuralMismatch(f"{path.name} does not hold a module code object")
        _log.debug("read compiled module path=%s flags=%d", path, header.flags)
        return cls(header, code, path)

    @classmethod
    def from_source(cls, path: Path | str) -> "CompiledModule":
        """Compile a ``.py`` file in memory. Used to inspect, never written back."""
        path = Path(path)
        try:
            source = path.read_bytes()
        except OSError as exc:
            raise IOFailure(f"could not read {path}: {exc}") from exc
        try:
            code = compile(source, str(path), 'exec', dont_inherit=True)
        except (SyntaxError, ValueError) as exc:
            raise StructuralMismatch(f"{path.name} does not compile: {exc}") from exc
        return cls(PycHeader.for_running_interpreter(), code, path)

    @classmethod
    def load(cls, path: Path | str) -> "CompiledModule":
        path = Path(path)
        if path.suffix == '.py':
            return cls.from_source(path)
        return cls.read(path)

    # --- lifecycle ---------------------------------------------------
    def close(self) -> None:
        self._code = None

    @property
    def closed(self) -> bool:
        return self._code is None

    def __enter__(self) -> "CompiledModule":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def code(self) -> types.CodeType:
        if self._code is None:
            raise ValueError("compiled module is closed")
        return self._code

    # --- graph views -------------------------------------------------
    @property
    def references(self) -> Set[str]:
        return imported_names(self.code)

    @property
    def types(self) -> List[TypeDefinition]:
        found: List[TypeDefinition] = []

        def visit(code: types.CodeType, prefix: str) -> None:
            for _, child in _nested_code(code):
                if not _is_class_body(child):
                    continue
                qualname = f"{prefix}.{child.co_name}" if prefix else child.co_name
                methods = tuple(c.co_name for _, c in _nested_code(child) if _is_function(c))
                found.append(TypeDefinition(child.co_name, qualname, child, methods))
                visit(child, qualname)

        visit(self.code, '')
        return found

    def find_type(self, qualname: str) -> Optional[TypeDefinition]:
        for typedef in self.types:
            if typedef.qualname == qualname:
                return typedef
        return None

    # --- editing -----------------------------------------------------
    def replace_type_code(self, qualname: str, new_code: types.CodeType) -> None:
        """Swap the body of ``qualname`` and rebuild every enclosing code object."""

        def rebuild(code: types.CodeType, path: List[str]) -> types.CodeType:
            for index, child in _nested_code(code):
                if child.co_name != path[0] or not _is_class_body(child):
                    continue
                replacement = new_code if len(path) == 1 else rebuild(child, path[1:])
                consts = list(code.co_consts)
                consts[index] = replacement
                return code.replace(co_consts=tuple(consts))
            raise StructuralMismatch(f"type {qualname!r} not found")

        self._code = rebuild(self.code, qualname.split('.'))

    # --- serialization -----------------------------------------------
    def to_bytes(self) -> bytes:
        return self.header.to_bytes() + marshal.dumps(self.code)

    def write(self, path: Path | str | None = None) -> Path:
        """Write the module atomically: temp file in the same directory, then rename."""
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ValueError("no output path for compiled module")
        payload = self.to_bytes()
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix='.tmp', dir=str(target.parent))
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, 'wb') as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            if target.exists():
                shutil.copymode(target, tmp_path)
            os.replace(tmp_path, target)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise IOFailure(f"could not write {target}: {exc}") from exc
        _log.debug("wrote compiled module path=%s bytes=%d", target, len(payload))
        return target
