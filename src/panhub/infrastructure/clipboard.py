"""System clipboard access via platform copy commands."""

from __future__ import annotations

import asyncio
import shutil
import sys

import structlog

log = structlog.get_logger(__name__)

# First available command wins.
_CANDIDATES: tuple[tuple[str, ...], ...] = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)


class ClipboardUnavailableError(RuntimeError):
    pass


def detect_copy_command() -> tuple[str, ...] | None:
    for cmd in _CANDIDATES:
        if shutil.which(cmd[0]):
            return cmd
    return None


class CommandClipboard:
    """Implements ``ClipboardPort`` by piping text into a copy command."""

    def __init__(self, command: tuple[str, ...] | None = None, *, timeout: float = 2.0) -> None:
        self._command = command if command is not None else detect_copy_command()
        self._timeout = timeout

    @property
    def available(self) -> bool:
        return self._command is not None

    async def copy(self, text: str) -> None:
        if self._command is None:
            raise ClipboardUnavailableError(f"no clipboard command found on {sys.platform}")

        proc = await asyncio.create_subprocess_exec(
            *self._command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            await asyncio.wait_for(proc.communicate(text.encode("utf-8")), self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode != 0:
            raise ClipboardUnavailableError(
                f"{self._command[0]} exited with status {proc.returncode}"
            )
        log.debug("clipboard_copied", command=self._command[0], length=len(text))
