"""Shared fixtures for reftask tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Core logic runs against MemoryStore; git and file backends get their own tests.
"""

from __future__ import annotations

import itertools
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from reftask.config import Config
from reftask.process import ProcessRunner
from reftask.refstore import MemoryStore
from reftask.tasks.model import Task, TaskStatus
from reftask.tasks.store import TaskStore

T0 = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register opt-in switch for tests that spawn real processes."""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run end-to-end tests marked with 'e2e'.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip e2e tests unless explicitly enabled."""
    if config.getoption("--run-e2e"):
        return

    skip_e2e = pytest.mark.skip(
        reason="E2E tests are skipped by default. Use --run-e2e to include them.",
    )
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo for testing."""
    subprocess.run(["git", "init", "-b", "main"], cwd=tmp_path, capture_output=True, check=True)
    subprocess.run(
        ["git", "config", "user.name", "Test"], cwd=tmp_path, capture_output=True
    )
    subprocess.run(
        ["git", "config", "user.email", "test@test"], cwd=tmp_path, capture_output=True
    )
    (tmp_path / "README.md").write_text("# Test", encoding="utf-8")
    subprocess.run(["git", "add", "README.md"], cwd=tmp_path, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial"], cwd=tmp_path, capture_output=True
    )
    return tmp_path


@pytest.fixture
def clock():
    """Deterministic clock: each call is one second after the previous."""
    ticks = itertools.count()
    return lambda: T0 + timedelta(seconds=next(ticks))


@pytest.fixture
def cfg() -> Config:
    return Config(author="tester")


@pytest.fixture
def make_store(clock):
    """Factory fixture for a TaskStore over a fresh MemoryStore."""

    def _make(cfg: Config | None = None, backend: MemoryStore | None = None, **kwargs) -> TaskStore:
        kwargs.setdefault("clock", clock)
        return TaskStore(backend or MemoryStore(), cfg or Config(author="tester"), **kwargs)

    return _make


@pytest.fixture
def store(make_store) -> TaskStore:
    return make_store()


def _make_task(
    id: str,
    content: str = "",
    done: bool = False,
    after: str | None = None,
) -> Task:
    return Task(
        id=id,
        content=content or f"Task {id}",
        created_at=T0,
        created_by="tester",
        status=TaskStatus.DONE if done else TaskStatus.PENDING,
        after=after,
        closed_at=T0 if done else None,
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


class FakeProcessRunner(ProcessRunner):
    """Records every command; ``on_run(cmd)`` plays the agent and returns an exit code."""

    def __init__(self, on_run=None) -> None:
        self.calls: list[list[str]] = []
        self.log_files: list[Path | None] = []
        self._on_run = on_run

    def run(self, cmd: list[str], *, log_file: Path | None = None, cwd: Path | None = None) -> int:
        self.calls.append(list(cmd))
        self.log_files.append(log_file)
        if self._on_run is None:
            return 0
        return self._on_run(cmd)


@pytest.fixture
def fake_runner():
    """Factory fixture for FakeProcessRunner."""
    return FakeProcessRunner
