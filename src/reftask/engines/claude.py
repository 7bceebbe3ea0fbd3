"""Claude Code engine adapter."""

from __future__ import annotations

import shutil

from reftask.engines.base import EngineBase


class ClaudeEngine(EngineBase):
    name = "claude"
    install_hint = "Install Claude Code from https://github.com/anthropics/claude-code"

    def build_cmd(self, prompt: str) -> list[str]:
        # Resolved path so the child gets an absolute executable on every platform.
        claude = shutil.which("claude") or "claude"
        cmd = [claude, "-p"]
        if self.model:
            cmd += ["--model", self.model]
        cmd.append(prompt)
        return cmd
