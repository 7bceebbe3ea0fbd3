"""Engine registry: pick the adapter for a selector or a raw command."""

from __future__ import annotations

from reftask.engines.base import EngineBase
from reftask.engines.claude import ClaudeEngine
from reftask.engines.codex import CodexEngine
from reftask.engines.custom import CustomEngine
from reftask.engines.opencode import OpenCodeEngine


def get_engine(name: str, *, model: str = "", agent_cmd: str = "") -> EngineBase:
    """Return an engine for *name*; a non-empty *agent_cmd* always wins."""
    if agent_cmd:
        return CustomEngine(agent_cmd, model=model)
    match name:
        case "claude":
            return ClaudeEngine(model=model)
        case "opencode":
            return OpenCodeEngine(model=model)
        case "codex":
            return CodexEngine(model=model)
        case _:
            raise ValueError(f"Unknown executor: {name}")


ENGINE_NAMES = ("claude", "opencode", "codex")
