"""In-process store for tests and embedding; versions are a counter."""

from __future__ import annotations

import threading

from reftask.refstore.base import AtomicStore


class MemoryStore(AtomicStore):
    name = "memory"

    def __init__(self, text: str = "") -> None:
        self._lock = threading.Lock()
        self._text = text
        self._version: int | None = 1 if text else None
        self.swaps = 0

    def read(self) -> tuple[str, str | None]:
        with self._lock:
            return self._text, self._current()

    def compare_and_swap(self, expected: str | None, text: str) -> bool:
        with self._lock:
            if self._current() != expected:
                return False
            self._version = (self._version or 0) + 1
            self._text = text
            self.swaps += 1
            return True

    def _current(self) -> str | None:
        return None if self._version is None else str(self._version)
