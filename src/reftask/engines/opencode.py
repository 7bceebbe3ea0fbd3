"""OpenCode engine adapter."""

from __future__ import annotations

import shutil

from reftask.engines.base import EngineBase


class OpenCodeEngine(EngineBase):
    name = "opencode"
    install_hint = "Install OpenCode from https://opencode.ai"

    def build_cmd(self, prompt: str) -> list[str]:
        opencode = shutil.which("opencode") or "opencode"
        cmd = [opencode, "run"]
        if self.model:
            cmd += ["-m", self.model]
        cmd.append(prompt)
        return cmd
