"""Monotonic generation counter used to discard stale async results."""

from __future__ import annotations


class GenerationCounter:
    """Identifies the current logical search.

    Every concurrent operation closes over the token it was spawned under
    and must check ``is_current`` right before touching shared state.
    Tokens are never reused for the lifetime of the counter.
    """

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def begin(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current
