"""Configuration defaults, env vars, and runtime options for reftask."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path


_TRUE_VALUES = {"1", "true", "yes", "on"}

DEFAULT_EXECUTOR = "claude"
DEFAULT_LOG_DIR = ".reftask/logs"

# Environment signals. They are read once, at the CLI boundary.
ENV_AGENT_MODE = "REFTASK_AGENT_MODE"
ENV_CLAUDECODE = "CLAUDECODE"
ENV_EXECUTOR = "REFTASK_AGENT"
ENV_AGENT_CMD = "REFTASK_AGENT_CMD"
ENV_STORE_FILE = "REFTASK_STORE_FILE"


def _truthy(raw: str | None) -> bool:
    return raw is not None and raw.strip().lower() in _TRUE_VALUES


@dataclass
class Config:
    """Runtime configuration handed to the store and the runner at construction."""

    # Agent mode: edit/delete are refused and the author is recorded as "agent"
    agent_mode: bool = False
    author: str = ""

    # Executor
    executor: str = DEFAULT_EXECUTOR
    agent_cmd: str = ""
    model: str = ""

    # Loop
    once: bool = False
    dry_run: bool = False
    delay: float = 2.0
    max_tasks: int = 0
    max_failures: int = 3
    log_dir: str = DEFAULT_LOG_DIR

    # Store
    store_file: str = ""
    max_write_attempts: int = 5
    max_id_attempts: int = 8

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.author:
            self.author = "agent" if self.agent_mode else _default_author()
        if self.max_write_attempts < 1:
            self.max_write_attempts = 1
        if self.max_id_attempts < 1:
            self.max_id_attempts = 1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "Config":
        """Build a Config from environment signals, then apply explicit *overrides*."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "agent_mode": _truthy(env.get(ENV_AGENT_MODE)) or env.get(ENV_CLAUDECODE) == "1",
            "executor": (env.get(ENV_EXECUTOR) or DEFAULT_EXECUTOR).strip().lower(),
            "agent_cmd": (env.get(ENV_AGENT_CMD) or "").strip(),
            "store_file": (env.get(ENV_STORE_FILE) or "").strip(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


def _default_author() -> str:
    """Return ``git config user.name`` or the login name."""
    try:
        result = subprocess.run(
            ["git", "config", "user.name"],
            capture_output=True,
            text=True,
            check=True,
        )
        name = result.stdout.strip()
        if name:
            return name
    except (subprocess.CalledProcessError, FileNotFoundError):
        pass
    return os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"


def resolve_repo_root() -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path.cwd()
