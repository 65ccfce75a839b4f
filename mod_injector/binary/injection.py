"""Synthesis and splicing of the hook call into a class body.

A class body is the Python counterpart of a type initializer: the interpreter
runs it exactly once, when the defining module is imported. The hook call is
inserted right after the body's bookkeeping prologue so everything the class
originally did still runs, in the original order, after the call.

The call block is produced by compiling a three line snippet for the running
interpreter and lifting its instructions, which keeps the emitted opcodes
correct across bytecode versions.
"""

from __future__ import annotations

import logging
import types
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from bytecode import Bytecode, Instr, SetLineno

_log = logging.getLogger(__name__)

HOOK_ALIAS = '_mod_loader_hook'

# Names a class body binds before its first user statement.
_PROLOGUE_NAMES = frozenset({'__module__', '__qualname__', '__firstlineno__', '__doc__'})
_PROLOGUE_OPS = frozenset({
    'RESUME', 'NOP', 'MAKE_CELL', 'COPY_FREE_VARS',
    'LOAD_NAME', 'LOAD_CONST', 'LOAD_SMALL_INT', 'LOAD_LOCALS', 'STORE_DEREF', 'STORE_NAME',
})


@dataclass(frozen=True)
class HookCall:
    """``from <module> import <type_name>`` then ``<type_name>.<method>()``."""

    module: str
    type_name: str
    method: str

    @property
    def package(self) -> str:
        return self.module.split('.', 1)[0]

    def source(self, first_line: int = 1) -> str:
        return (
            '\n' * max(first_line - 1, 0)
            + f"from {self.module} import {self.type_name} as {HOOK_ALIAS}\n"
            + f"{HOOK_ALIAS}.{self.method}()\n"
            + f"del {HOOK_ALIAS}\n"
        )

    def instructions(self, first_line: int = 1) -> List[Instr]:
        code = compile(self.source(first_line), '<hook-call>', 'exec', dont_inherit=True)
        body = [item for item in Bytecode.from_code(code) if isinstance(item, Instr)]
        while body and body[0].name == 'RESUME':
            body.pop(0)
        if body and body[-1].name == 'RETURN_CONST':
            body.pop()
        elif body and body[-1].name == 'RETURN_VALUE':
            body.pop()
            if body and body[-1].name == 'LOAD_CONST' and body[-1].arg is None:
                body.pop()
        return body


def _signature(instrs: Sequence[Instr]) -> List[Tuple[str, object]]:
    return [(instr.name, instr.arg) for instr in instrs]


def _find_block(items: Sequence[object], signature: List[Tuple[str, object]]) -> int:
    size = len(signature)
    for start in range(len(items) - size + 1):
        window = items[start:start + size]
        if all(isinstance(item, Instr) for item in window) and _signature(window) == signature:
            return start
    return -1


def prologue_end(bytecode: Bytecode) -> int:
    """Index of the first item after the class-body bookkeeping stores."""
    end = 0
    for index, item in enumerate(bytecode):
        if not isinstance(item, Instr):
            if isinstance(item, SetLineno):
                continue
            break
        if item.name not in _PROLOGUE_OPS:
            break
        if item.name in ('RESUME', 'MAKE_CELL', 'COPY_FREE_VARS'):
            end = index + 1
            continue
        if item.name == 'STORE_NAME':
            if item.arg not in _PROLOGUE_NAMES:
                break
            end = index + 1
    return end


def count_calls(code: types.CodeType, call: HookCall) -> int:
    """How many copies of the hook block a class body holds."""
    items = list(Bytecode.from_code(code))
    signature = _signature(call.instructions(code.co_firstlineno))
    found = 0
    while True:
        start = _find_block(items, signature)
        if start < 0:
            return found
        found += 1
        del items[start:start + len(signature)]


def inject_call(code: types.CodeType, call: HookCall, *, replace_existing: bool = True) -> types.CodeType:
    """Return a copy of the class body ``code`` that calls the hook first.

    With ``replace_existing`` any block injected by an earlier run is removed
    before the new one is inserted, so the body always holds a single call.
    """
    bytecode = Bytecode.from_code(code)
    block = call.instructions(code.co_firstlineno)
    if replace_existing:
        signature = _signature(block)
        while True:
            start = _find_block(bytecode, signature)
            if start < 0:
                break
            _log.info("removing previous hook call from %s", code.co_name)
            del bytecode[start:start + len(signature)]
    at = prologue_end(bytecode)
    bytecode[at:at] = [instr.copy() for instr in block]
    _log.debug("inserted %d instructions into %s at %d", len(block), code.co_name, at)
    return bytecode.to_code()
