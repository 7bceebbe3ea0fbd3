"""Atomic pointer store: the only persistence seam of the task collection."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AtomicStore(ABC):
    """A named pointer to one snapshot text, updated by compare-and-swap.

    ``version`` is opaque to callers; ``None`` means the pointer does not
    exist yet (an empty collection).
    """

    name: str = "base"

    @abstractmethod
    def read(self) -> tuple[str, str | None]:
        """Return ``(snapshot_text, version)``."""
        ...

    @abstractmethod
    def compare_and_swap(self, expected: str | None, text: str) -> bool:
        """Point at *text* only if the current version is still *expected*.

        Returns ``False`` when the pointer moved since *expected* was read.
        """
        ...

    def describe(self) -> str:
        return self.name
