"""Codex CLI engine adapter."""

from __future__ import annotations

import shutil

from reftask.engines.base import EngineBase


class CodexEngine(EngineBase):
    name = "codex"
    install_hint = "Install with: npm install -g @openai/codex"

    def build_cmd(self, prompt: str) -> list[str]:
        codex = shutil.which("codex") or "codex"
        cmd = [codex, "exec"]
        if self.model:
            cmd += ["-m", self.model]
        cmd.append(prompt)
        return cmd
