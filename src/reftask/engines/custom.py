"""Raw command override (``--runner`` / ``REFTASK_AGENT_CMD``)."""

from __future__ import annotations

import shlex

from reftask.engines.base import EngineBase


class CustomEngine(EngineBase):
    """Run an arbitrary command with the prompt appended; nothing else is added."""

    name = "custom"

    def __init__(self, command: str, model: str = "") -> None:
        super().__init__(model=model)
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("runner command cannot be empty")

    def build_cmd(self, prompt: str) -> list[str]:
        return [*self.argv, prompt]
