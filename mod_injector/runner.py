"""Run the patcher as a child process for a front end.

A GUI must not block its own event loop while the patcher works. It starts a
:class:`PatcherRunner` as an asyncio task, receives every stdout/stderr line
through ``on_line`` and re-enables its controls once :meth:`run` returns the
exit code. Cancelling the task terminates the child.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

_log = logging.getLogger(__name__)

LineCallback = Callable[[str, str], None]  # (stream, line)


def build_command(location: Path | str, force: bool = False, profile: Path | str | None = None,
                  python: str | None = None) -> List[str]:
    cmd = [python or sys.executable, '-m', 'mod_injector', '--no-interactive', '--game-location', str(location)]
    if force:
        cmd.append('--force')
    if profile:
        cmd.extend(['--profile', str(profile)])
    return cmd


class PatcherRunner:
    def __init__(self, command: List[str], on_line: LineCallback, *, terminate_timeout: float = 5.0):
        self.command = command
        self._on_line = on_line
        self._terminate_timeout = terminate_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self.returncode: Optional[int] = None

    def _emit(self, stream: str, line: str) -> None:
        try:
            self._on_line(stream, line)
        except Exception:
            _log.exception("line callback failed stream=%s", stream)

    async def _pump(self, reader: Optional[asyncio.StreamReader], stream: str) -> None:
        if reader is None:
            return
        while True:
            raw = await reader.readline()
            if not raw:
                return
            self._emit(stream, raw.decode(errors='replace').rstrip('\r\n'))

    async def _terminate(self) -> None:
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), self._terminate_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()

    async def run(self) -> int:
        _log.info("launching patcher: %s", ' '.join(self.command))
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            await asyncio.gather(
                self._pump(self._process.stdout, 'stdout'),
                self._pump(self._process.stderr, 'stderr'),
            )
            self.returncode = await self._process.wait()
        except asyncio.CancelledError:
            _log.info("patcher run cancelled; terminating pid=%s", self._process.pid)
            await self._terminate()
            raise
        _log.info("patcher exited code=%s", self.returncode)
        return self.returncode
