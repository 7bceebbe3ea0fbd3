"""Tests for reftask.runner.AgentRunner against a fake process runner."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

from reftask.config import Config
from reftask.engines.base import EngineBase
from reftask.errors import ExecutorMissing
from reftask.refstore import MemoryStore
from reftask.runner import AgentRunner, StopReason, build_task_prompt, skip_note
from reftask.tasks.model import Snapshot, Task, TaskStatus
from reftask.tasks.store import TaskStore


# ── Helpers ──────────────────────────────────────────────────────────


class FakeEngine(EngineBase):
    name = "fake"

    def __init__(self, available: bool = True) -> None:
        super().__init__()
        self.available = available

    def build_cmd(self, prompt: str) -> list[str]:
        return ["fake-agent", prompt]

    def check_available(self) -> str | None:
        return None if self.available else "fake-agent not found in PATH"


class FreezableStore(MemoryStore):
    """MemoryStore whose swaps all lose once *frozen* is set."""

    frozen = False

    def compare_and_swap(self, expected, text):
        if self.frozen:
            return False
        return super().compare_and_swap(expected, text)


def _prompted_id(cmd: list[str]) -> str:
    m = re.search(r"working on task (\w+)", cmd[-1])
    assert m, cmd
    return m.group(1)


def agent_that_completes(store: TaskStore, *, fail_ids: set[str] = frozenset(), rc: int = 0):
    """Plays an agent that closes its task unless the id is in *fail_ids*."""

    def _on_run(cmd: list[str]) -> int:
        task_id = _prompted_id(cmd)
        if task_id in fail_ids:
            return 1
        store.mark_done(task_id)
        return rc

    return _on_run


@pytest.fixture
def make_runner(store, fake_runner, tmp_path: Path):
    """Build an AgentRunner over the shared store; returns (runner, fake process runner, sleeps)."""

    def _make(on_run=None, engine: EngineBase | None = None, **cfg_fields):
        cfg_fields.setdefault("delay", 0)
        cfg = Config(author="tester", **cfg_fields)
        proc = fake_runner(on_run)
        sleeps: list[float] = []
        runner = AgentRunner(
            cfg,
            store,
            engine or FakeEngine(),
            proc,
            log_dir=tmp_path / "logs",
            sleep=sleeps.append,
        )
        return runner, proc, sleeps

    return _make


# ── Prompt ───────────────────────────────────────────────────────────


class TestPrompt:
    def test_prompt_names_task_and_rules(self):
        prompt = build_task_prompt("abc123", "Write the parser")
        assert "abc123" in prompt
        assert "Write the parser" in prompt
        assert "reftask done abc123" in prompt
        assert "NEVER git push" in prompt


# ── Stop conditions ──────────────────────────────────────────────────


class TestStopConditions:
    def test_empty_store_is_all_done(self, make_runner):
        runner, proc, _ = make_runner()
        summary = runner.run()
        assert summary.reason == StopReason.ALL_DONE
        assert proc.calls == []

    def test_works_through_every_ready_task(self, store, make_runner):
        ids = [store.add(f"task {i}").id for i in range(3)]
        runner, proc, _ = make_runner(agent_that_completes(store))
        summary = runner.run()
        assert summary.reason == StopReason.ALL_DONE
        assert summary.completed == ids
        assert [_prompted_id(c) for c in proc.calls] == ids

    def test_follows_dependency_order(self, store, make_runner):
        a = store.add("A")
        c = store.add("C", after=a.id)
        b = store.add("B")
        runner, proc, _ = make_runner(agent_that_completes(store))
        runner.run()
        assert [_prompted_id(x) for x in proc.calls] == [a.id, b.id, c.id]

    def test_max_tasks_limits_dispatches(self, store, make_runner):
        for i in range(3):
            store.add(f"task {i}")
        runner, proc, _ = make_runner(agent_that_completes(store), max_tasks=1)
        summary = runner.run()
        assert summary.reason == StopReason.MAX_TASKS
        assert len(proc.calls) == 1
        assert len(store.list(TaskStatus.PENDING)) == 2

    def test_max_tasks_counts_failed_dispatches(self, store, make_runner):
        t = store.add("stubborn")
        runner, proc, _ = make_runner(agent_that_completes(store, fail_ids={t.id}), max_tasks=2)
        summary = runner.run()
        assert summary.reason == StopReason.MAX_TASKS
        assert summary.dispatched == 2

    def test_once_stops_after_one(self, store, make_runner):
        store.add("a")
        store.add("b")
        runner, proc, _ = make_runner(agent_that_completes(store), once=True)
        summary = runner.run()
        assert summary.reason == StopReason.ONCE
        assert len(proc.calls) == 1

    def test_stop_request_observed_between_iterations(self, store, make_runner):
        store.add("a")
        store.add("b")
        holder = {}

        def on_run(cmd):
            store.mark_done(_prompted_id(cmd))
            holder["runner"].request_stop()
            return 0

        runner, proc, _ = make_runner(on_run)
        holder["runner"] = runner
        summary = runner.run()
        assert summary.reason == StopReason.INTERRUPTED
        assert len(proc.calls) == 1
        # The in-flight task still finished.
        assert summary.completed == [_prompted_id(proc.calls[0])]

    def test_missing_executor_fails_before_loop(self, store, make_runner):
        store.add("a")
        runner, proc, _ = make_runner(engine=FakeEngine(available=False))
        with pytest.raises(ExecutorMissing):
            runner.run()
        assert proc.calls == []


# ── Failure policy ───────────────────────────────────────────────────


class TestSkipPolicy:
    def test_skip_after_three_failures(self, store, make_runner):
        t = store.add("never finishes")
        runner, proc, _ = make_runner(agent_that_completes(store, fail_ids={t.id}))
        summary = runner.run()

        assert len(proc.calls) == 3
        assert summary.reason == StopReason.NO_ELIGIBLE_WORK
        assert summary.skipped == [t.id]
        current = store.get(t.id)
        assert current.status == TaskStatus.PENDING
        assert [n.text for n in current.notes] == [skip_note(3)]
        assert skip_note(3) == "skipped: agent failed 3 times"

    def test_skipped_task_does_not_block_others(self, store, make_runner):
        bad = store.add("bad")
        good = store.add("good")
        runner, proc, _ = make_runner(agent_that_completes(store, fail_ids={bad.id}))
        summary = runner.run()
        assert summary.completed == [good.id]
        assert summary.skipped == [bad.id]
        assert summary.reason == StopReason.NO_ELIGIBLE_WORK

    def test_exit_code_alone_is_not_success(self, store, make_runner):
        t = store.add("claims success")
        runner, proc, _ = make_runner(lambda cmd: 0, max_tasks=1)
        runner.run()
        assert runner.failures == {t.id: 1}

    def test_nonzero_exit_with_task_done_is_success(self, store, make_runner):
        t = store.add("done but noisy")
        runner, _, _ = make_runner(agent_that_completes(store, rc=2))
        summary = runner.run()
        assert summary.completed == [t.id]
        assert runner.failures == {}

    def test_success_resets_counter(self, store, make_runner):
        t = store.add("flaky")
        attempts = []

        def on_run(cmd):
            attempts.append(1)
            if len(attempts) == 3:
                store.mark_done(t.id)
            return 0

        runner, proc, _ = make_runner(on_run)
        summary = runner.run()
        assert summary.completed == [t.id]
        assert summary.skipped == []
        assert t.id not in runner.failures
        assert store.get(t.id).notes == ()

    def test_other_task_closed_does_not_count(self, store, make_runner):
        a = store.add("a")
        b = store.add("b")

        def on_run(cmd):
            # Closes the wrong task.
            if _prompted_id(cmd) == a.id and not store.get(b.id).is_done:
                store.mark_done(b.id)
            return 0

        runner, _, _ = make_runner(on_run, max_tasks=1)
        runner.run()
        assert runner.failures == {a.id: 1}

    def test_unwritable_skip_note_still_skips(self, clock, fake_runner, tmp_path: Path):
        backend = FreezableStore()
        store = TaskStore(backend, Config(author="tester"), clock=clock)
        a = store.add("first")
        b = store.add("second")
        backend.frozen = True
        proc = fake_runner(lambda cmd: 1)
        runner = AgentRunner(
            Config(author="tester", delay=0),
            store,
            FakeEngine(),
            proc,
            log_dir=tmp_path / "logs",
            sleep=lambda _: None,
        )

        summary = runner.run()

        assert summary.reason == StopReason.NO_ELIGIBLE_WORK
        assert summary.skipped == [a.id, b.id]
        assert len(proc.calls) == 6
        assert store.get(a.id).notes == ()

    def test_empty_content_task_is_dispatched(self, clock, fake_runner, tmp_path: Path):
        blank = Task(id="abc123", content="", created_at=clock(), created_by="tester")
        store = TaskStore(MemoryStore(Snapshot([blank]).dumps()), Config(author="tester"), clock=clock)
        proc = fake_runner(lambda cmd: 1)
        runner = AgentRunner(
            Config(author="tester", delay=0, max_tasks=1),
            store,
            FakeEngine(),
            proc,
            log_dir=tmp_path / "logs",
            sleep=lambda _: None,
        )

        summary = runner.run()

        assert summary.dispatched == 1
        assert runner.failures == {"abc123": 1}
        assert "start abc123: \n" in (tmp_path / "logs" / "agent.log").read_text(encoding="utf-8")

    def test_task_deleted_mid_run(self, store, make_runner):
        t = store.add("vanishes")

        def on_run(cmd):
            store.delete(t.id)
            return 0

        runner, _, _ = make_runner(on_run)
        summary = runner.run()
        assert summary.reason == StopReason.ALL_DONE
        assert summary.completed == []


# ── Delay and logs ───────────────────────────────────────────────────


class TestDelayAndLogs:
    def test_delay_between_iterations_not_after_last(self, store, make_runner):
        for i in range(3):
            store.add(f"task {i}")
        runner, _, sleeps = make_runner(agent_that_completes(store), delay=1.5)
        runner.run()
        assert sleeps == [1.5, 1.5]

    def test_no_delay_when_zero(self, store, make_runner):
        store.add("a")
        store.add("b")
        runner, _, sleeps = make_runner(agent_that_completes(store), delay=0)
        runner.run()
        assert sleeps == []

    def test_per_task_log_path(self, store, make_runner, tmp_path: Path):
        t = store.add("a")
        runner, proc, _ = make_runner(agent_that_completes(store))
        runner.run()
        assert proc.log_files == [tmp_path / "logs" / f"{t.id}.log"]

    def test_audit_log_written(self, store, make_runner, tmp_path: Path):
        t = store.add("a")
        runner, _, _ = make_runner(agent_that_completes(store))
        runner.run()
        audit = (tmp_path / "logs" / "agent.log").read_text(encoding="utf-8")
        assert f"start {t.id}" in audit
        assert f"done {t.id}" in audit


# ── Dry run ──────────────────────────────────────────────────────────


class TestDryRun:
    def test_dry_run_changes_nothing(self, store, make_runner):
        a = store.add("A")
        store.add("B", after=a.id)
        before = store.snapshot().dumps()
        runner, proc, _ = make_runner(dry_run=True)
        summary = runner.run()
        assert proc.calls == []
        assert store.snapshot().dumps() == before
        assert summary.dispatched == 2
        assert summary.reason == StopReason.ALL_DONE

    def test_dry_run_honors_max_tasks(self, store, make_runner):
        for i in range(3):
            store.add(f"task {i}")
        runner, _, _ = make_runner(dry_run=True, max_tasks=2)
        summary = runner.run()
        assert summary.dispatched == 2
        assert summary.reason == StopReason.MAX_TASKS

    def test_dry_run_honors_once(self, store, make_runner):
        store.add("a")
        store.add("b")
        runner, _, _ = make_runner(dry_run=True, once=True)
        assert runner.run().dispatched == 1

    def test_dry_run_skips_executor_check(self, store, make_runner):
        store.add("a")
        runner, _, _ = make_runner(dry_run=True, engine=FakeEngine(available=False))
        assert runner.run().dispatched == 1
