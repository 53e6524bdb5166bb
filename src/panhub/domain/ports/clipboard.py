"""Port for the best-effort copy-to-clipboard utility."""

from __future__ import annotations

from typing import Protocol


class ClipboardPort(Protocol):
    async def copy(self, text: str) -> None:
        """Copy *text* to the system clipboard. May raise on failure."""
        ...
