"""Base class for executor adapters: turn a prompt into a headless command line."""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod

from reftask.errors import ExecutorMissing


class EngineBase(ABC):
    """Abstract executor adapter.  Subclasses implement ``build_cmd``.

    The prompt is always the final argument and the only input payload.
    """

    name: str = "base"
    install_hint: str = ""

    def __init__(self, model: str = "") -> None:
        self.model = model

    @abstractmethod
    def build_cmd(self, prompt: str) -> list[str]:
        """Return the CLI command list for the given prompt."""
        ...

    def executable(self) -> str:
        return self.build_cmd("test")[0]

    def check_available(self) -> str | None:
        """Return an error message if the executor is not available, else None."""
        exe = self.executable()
        if not shutil.which(exe):
            return f"{exe} not found in PATH"
        return None

    def ensure_available(self) -> None:
        if self.check_available():
            raise ExecutorMissing(self.executable(), self.install_hint)

    def display_cmd(self, placeholder: str = "<prompt>") -> str:
        """Human-readable command line with the prompt elided."""
        parts = self.build_cmd(placeholder)
        return " ".join(f'"{p}"' if p == placeholder or " " in p else p for p in parts)
