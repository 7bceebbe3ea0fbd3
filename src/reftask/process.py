"""Process-runner capability: spawn one headless child, stream its output, await exit."""

from __future__ import annotations

import subprocess
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

from reftask import log
from reftask.io_utils import open_text

SPAWN_FAILED = 127


class ProcessRunner(ABC):
    """Narrow seam between the agent loop and real processes."""

    @abstractmethod
    def run(self, cmd: list[str], *, log_file: Path | None = None, cwd: Path | None = None) -> int:
        """Run *cmd* to completion and return its exit code."""
        ...


class SubprocessRunner(ProcessRunner):
    """Runs the child with no stdin; tees stdout+stderr to the terminal and a log file."""

    def __init__(self, out: IO[str] | None = None) -> None:
        self._out = out

    def run(self, cmd: list[str], *, log_file: Path | None = None, cwd: Path | None = None) -> int:
        out = self._out or sys.stdout
        log_fh = open_text(log_file, "a", errors="replace") if log_file else None
        try:
            if log_fh:
                log_fh.write(f"--- {_stamp()} spawn: {cmd[0]}\n")
                log_fh.flush()
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    cwd=cwd,
                )
            except (FileNotFoundError, PermissionError) as e:
                log.error(f"Could not start {cmd[0]}: {e}")
                if log_fh:
                    log_fh.write(f"--- {_stamp()} spawn failed: {e}\n")
                return SPAWN_FAILED

            assert proc.stdout is not None
            for line in proc.stdout:
                out.write(line)
                out.flush()
                if log_fh:
                    log_fh.write(line)
                    log_fh.flush()
            rc = proc.wait()
            if log_fh:
                log_fh.write(f"--- {_stamp()} exit code {rc}\n")
            return rc
        finally:
            if log_fh:
                log_fh.close()


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
