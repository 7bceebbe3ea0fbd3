"""Runner: drives a headless agent through the ready queue, one task at a time."""

from __future__ import annotations

import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from reftask import log
from reftask.config import Config
from reftask.engines.base import EngineBase
from reftask.errors import NotFound, TaskError
from reftask.io_utils import open_text
from reftask.process import ProcessRunner, SubprocessRunner
from reftask.tasks import resolver
from reftask.tasks.model import Snapshot, Task, format_ts, utc_now
from reftask.tasks.store import TaskStore


class StopReason(str, Enum):
    ALL_DONE = "all-done"
    NO_ELIGIBLE_WORK = "no-eligible-work"
    MAX_TASKS = "max-tasks"
    ONCE = "once"
    INTERRUPTED = "interrupted"


def skip_note(max_failures: int) -> str:
    return f"skipped: agent failed {max_failures} times"


@dataclass
class RunSummary:
    reason: StopReason
    dispatched: int = 0
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed_attempts: int = 0


def build_task_prompt(task_id: str, content: str) -> str:
    return f"""You are working on task {task_id}.

Task: {content}

Instructions:
1. Read AGENTS.md (if present) for project context and build instructions.
2. Complete this ONE task only.
3. Verify your work (run the tests, check the build).
4. Stage your changes with git add, then commit and close the task in one step:
   reftask done {task_id} --commit "<commit message>"
5. If you learn something the next agent must know, record it:
   reftask note {task_id} "<what you learned>"

Rules:
- NEVER git push (only commit).
- ONLY work on this one task.
- Do not edit or delete tasks; use notes instead.
- Exit when done so the next task can start."""


class AgentRunner:
    """Select -> dispatch -> await exit -> evaluate, until nothing is eligible.

    Failure counts and soft skips live only for this invocation; a skipped
    task keeps its ``pending`` status in the store.
    """

    def __init__(
        self,
        cfg: Config,
        store: TaskStore,
        engine: EngineBase,
        process_runner: ProcessRunner | None = None,
        *,
        log_dir: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.engine = engine
        self.process = process_runner or SubprocessRunner()
        self.log_dir = log_dir if log_dir is not None else Path(cfg.log_dir)
        self._sleep = sleep
        self.failures: dict[str, int] = {}
        self.skipped: set[str] = set()
        self._stop_requested = False
        self._interrupt_count = 0
        self._orig_signal_handlers: dict[int, object] = {}

    # ── selection ────────────────────────────────────────────────

    def select(self, snapshot: Snapshot) -> tuple[Task | None, StopReason | None]:
        """Earliest ready task not soft-skipped, or the reason there is none."""
        candidates = resolver.ready(snapshot)
        if not candidates:
            return None, StopReason.ALL_DONE
        for task in candidates:
            if task.id not in self.skipped:
                return task, None
        return None, StopReason.NO_ELIGIBLE_WORK

    # ── main loop ────────────────────────────────────────────────

    def run(self) -> RunSummary:
        """Execute ready tasks until a stop condition. Never pushes."""
        if self.cfg.dry_run:
            return self.dry_run()

        self.engine.ensure_available()
        self._audit("=== agent loop started ===")
        self._install_signal_handlers()
        try:
            summary = self._main_loop()
        finally:
            self._restore_signal_handlers()
        self._audit(f"=== agent loop stopped: {summary.reason.value}, {summary.dispatched} dispatched ===")
        return summary

    def _main_loop(self) -> RunSummary:
        summary = RunSummary(reason=StopReason.ALL_DONE)
        throttle = False

        while True:
            if self._stop_requested:
                summary.reason = StopReason.INTERRUPTED
                break
            if self.cfg.max_tasks > 0 and summary.dispatched >= self.cfg.max_tasks:
                log.info(f"Reached maximum task limit ({self.cfg.max_tasks})")
                summary.reason = StopReason.MAX_TASKS
                break

            task, reason = self.select(self.store.snapshot())
            if task is None:
                summary.reason = reason or StopReason.ALL_DONE
                break

            if throttle and self.cfg.delay > 0:
                log.info(f"Waiting {self.cfg.delay:g}s before next task...")
                self._sleep(self.cfg.delay)
                throttle = False
                # Re-read: the collection may have changed while waiting.
                continue

            summary.dispatched += 1
            if self._dispatch_and_evaluate(task):
                summary.completed.append(task.id)
            else:
                summary.failed_attempts += 1
                if task.id in self.skipped:
                    summary.skipped.append(task.id)

            if self.cfg.once:
                log.info("Exiting after one task (--once)")
                summary.reason = StopReason.ONCE
                break
            throttle = True

        if summary.reason == StopReason.ALL_DONE:
            log.success("No ready tasks remaining.")
        elif summary.reason == StopReason.NO_ELIGIBLE_WORK:
            log.warn(f"All ready tasks were skipped after {self.cfg.max_failures} failures. Stopping.")
        elif summary.reason == StopReason.INTERRUPTED:
            log.warn("Stopped by operator.")
        return summary

    def _dispatch_and_evaluate(self, task: Task) -> bool:
        """Run one child for *task*; return ``True`` when the task ended up done."""
        prompt = build_task_prompt(task.id, task.content)
        cmd = self.engine.build_cmd(prompt)

        log.task_line("●", task.id, task.content)
        first_line = task.content.splitlines()[0] if task.content.strip() else ""
        self._audit(f"start {task.id}: {first_line}")
        rc = self.process.run(cmd, log_file=self.log_dir / f"{task.id}.log")

        try:
            current = self.store.get(task.id)
        except NotFound:
            log.warn(f"Task {task.id} disappeared while the agent ran")
            self._audit(f"gone {task.id} (exit code {rc})")
            self.failures.pop(task.id, None)
            return False

        if current.is_done:
            self.failures.pop(task.id, None)
            log.task_line("✓", task.id, task.content, style="green")
            self._audit(f"done {task.id} (exit code {rc})")
            return True

        count = self.failures.get(task.id, 0) + 1
        self.failures[task.id] = count
        log.task_line("✗", task.id, task.content, style="red")
        log.warn(f"Task {task.id} not completed (exit code {rc}, {count} consecutive failure(s))")
        self._audit(f"fail {task.id} (exit code {rc}, {count} consecutive)")

        if count >= self.cfg.max_failures:
            self.skipped.add(task.id)
            try:
                self.store.append_note(task.id, skip_note(self.cfg.max_failures))
            except TaskError as e:
                log.warn(f"Could not record skip note on {task.id}: {e}")
            log.warn(f"Skipping {task.id} for the rest of this run")
        return False

    # ── dry run ──────────────────────────────────────────────────

    def dry_run(self) -> RunSummary:
        """Print what would run, projecting each pick as done; writes nothing."""
        projection = self.store.snapshot().copy()
        summary = RunSummary(reason=StopReason.ALL_DONE)
        now = utc_now()

        log.console.print("(dry-run: no commands will be executed)")
        while True:
            if self.cfg.max_tasks > 0 and summary.dispatched >= self.cfg.max_tasks:
                summary.reason = StopReason.MAX_TASKS
                break
            task, reason = self.select(projection)
            if task is None:
                summary.reason = reason or StopReason.ALL_DONE
                break

            summary.dispatched += 1
            log.task_line("○", task.id, task.content)
            log.console.print(f"  Would execute: {self.engine.display_cmd()}")
            log.console.print("[dim]--- prompt ---[/dim]")
            log.console.print(build_task_prompt(task.id, task.content), markup=False)
            log.console.print("[dim]--------------[/dim]")
            projection.replace_task(task.closed(now))

            if self.cfg.once:
                summary.reason = StopReason.ONCE
                break
        return summary

    # ── audit log ────────────────────────────────────────────────

    def _audit(self, msg: str) -> None:
        with open_text(self.log_dir / "agent.log", "a", errors="replace") as fh:
            fh.write(f"{format_ts(utc_now())} {msg}\n")

    # ── signals ──────────────────────────────────────────────────

    def _install_signal_handlers(self) -> None:
        """Ctrl-C stops the loop between tasks; the running agent is left to finish."""
        self._orig_signal_handlers = {}
        signals_to_handle = [signal.SIGINT]
        if hasattr(signal, "SIGBREAK"):
            signals_to_handle.append(signal.SIGBREAK)
        if hasattr(signal, "SIGTERM"):
            signals_to_handle.append(signal.SIGTERM)

        for sig in signals_to_handle:
            try:
                self._orig_signal_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._on_signal)
            except (OSError, RuntimeError, ValueError):
                continue

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._orig_signal_handlers.items():
            try:
                signal.signal(sig, handler)
            except (OSError, RuntimeError, ValueError):
                continue
        self._orig_signal_handlers = {}

    def _on_signal(self, signum: int, _frame: object) -> None:
        self._interrupt_count += 1
        self._stop_requested = True
        if self._interrupt_count == 1:
            log.warn(f"Interrupt received (signal {signum}). Stopping after the current task...")
        else:
            log.warn(f"Interrupt received again (signal {signum}). Waiting for the running agent to exit...")

    def request_stop(self) -> None:
        self._stop_requested = True
