"""TaskStore: every read and write of a branch's task collection.

Writes follow read -> modify a copy -> compare-and-swap. When the pointer
moved in between, the whole mutation is replayed against a fresh
snapshot, up to ``Config.max_write_attempts`` times.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import TypeVar

from reftask import log
from reftask.config import Config
from reftask.errors import (
    AlreadyDone,
    Conflict,
    IdCollision,
    Immutable,
    InvalidContent,
    NotFound,
)
from reftask.refstore.base import AtomicStore
from reftask.tasks.model import Snapshot, Task, TaskStatus, format_ts, utc_now

T = TypeVar("T")

ID_LENGTH = 6

DoneListener = Callable[[Task], None]


def derive_id(content: str, created_at: datetime, salt: str) -> str:
    digest = hashlib.sha256(
        f"{content}\x00{format_ts(created_at)}\x00{salt}".encode("utf-8")
    ).hexdigest()
    return digest[:ID_LENGTH]


class TaskStore:
    """Branch-scoped task collection behind an :class:`AtomicStore`."""

    def __init__(
        self,
        backend: AtomicStore,
        cfg: Config | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        salt: Callable[[], str] = lambda: secrets.token_hex(8),
    ) -> None:
        self.backend = backend
        self.cfg = cfg or Config()
        self._clock = clock
        self._salt = salt
        self._done_listeners: list[DoneListener] = []

    # ── reads ────────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        text, _ = self.backend.read()
        return Snapshot.loads(text)

    def get(self, task_id: str) -> Task:
        task = self.snapshot().get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def list(self, status: TaskStatus | str | None = None) -> list[Task]:
        tasks = self.snapshot().tasks
        if status is None:
            return tasks
        wanted = TaskStatus(status)
        return [t for t in tasks if t.status == wanted]

    # ── writes ───────────────────────────────────────────────────

    def add(self, content: str, after: str | None = None) -> Task:
        content = _clean_content(content)
        now = self._clock()

        def change(snap: Snapshot) -> tuple[Task, bool]:
            if after is not None and after not in snap:
                raise NotFound(after)
            task = Task(
                id=self._new_id(snap, content, now),
                content=content,
                created_at=now,
                created_by=self.cfg.author,
                after=after,
            )
            snap.tasks.append(task)
            return task, True

        task = self._mutate(change)
        log.debug(f"added {task.id} (after={task.after})")
        return task

    def append_note(self, task_id: str, text: str) -> Task:
        text = _clean_content(text, what="note")
        now = self._clock()

        def change(snap: Snapshot) -> tuple[Task, bool]:
            task = _require(snap, task_id).with_note(text, now)
            snap.replace_task(task)
            return task, True

        return self._mutate(change)

    def mark_done(self, task_id: str, note: str | None = None) -> Task:
        note = _clean_content(note, what="note") if note is not None else None
        now = self._clock()

        def change(snap: Snapshot) -> tuple[Task, bool]:
            task = _require(snap, task_id)
            if task.is_done:
                raise AlreadyDone(task_id)
            task = task.closed(now)
            if note:
                task = task.with_note(note, now)
            snap.replace_task(task)
            return task, True

        task = self._mutate(change)
        for listener in list(self._done_listeners):
            listener(task)
        return task

    def link_commit(self, task_id: str, commit: str) -> Task:
        """Record the commit that closed *task_id*; a linked task is left as is."""

        def change(snap: Snapshot) -> tuple[Task, bool]:
            task = _require(snap, task_id)
            if not task.is_done or task.closed_commit:
                return task, False
            task = task.linked(commit)
            snap.replace_task(task)
            return task, True

        return self._mutate(change)

    def edit(self, task_id: str, content: str) -> Task:
        if self.cfg.agent_mode:
            raise Immutable("edit")
        content = _clean_content(content)

        def change(snap: Snapshot) -> tuple[Task, bool]:
            task = replace(_require(snap, task_id), content=content)
            snap.replace_task(task)
            return task, True

        return self._mutate(change)

    def delete(self, task_id: str) -> Task:
        if self.cfg.agent_mode:
            raise Immutable("delete")

        def change(snap: Snapshot) -> tuple[Task, bool]:
            _require(snap, task_id)
            return snap.remove(task_id), True

        return self._mutate(change)

    # ── events ───────────────────────────────────────────────────

    def on_done(self, listener: DoneListener) -> None:
        self._done_listeners.append(listener)

    # ── internals ────────────────────────────────────────────────

    def _mutate(self, change: Callable[[Snapshot], tuple[T, bool]]) -> T:
        attempts = self.cfg.max_write_attempts
        for attempt in range(1, attempts + 1):
            text, version = self.backend.read()
            snap = Snapshot.loads(text)
            result, dirty = change(snap)
            if not dirty:
                return result
            if self.backend.compare_and_swap(version, snap.dumps()):
                return result
            log.debug(
                f"write conflict on {self.backend.describe()} "
                f"(attempt {attempt}/{attempts}); re-reading"
            )
        raise Conflict(attempts)

    def _new_id(self, snap: Snapshot, content: str, now: datetime) -> str:
        taken = snap.ids()
        for _ in range(self.cfg.max_id_attempts):
            candidate = derive_id(content, now, self._salt())
            if candidate not in taken:
                return candidate
        raise IdCollision(self.cfg.max_id_attempts)


def _require(snap: Snapshot, task_id: str) -> Task:
    task = snap.get(task_id)
    if task is None:
        raise NotFound(task_id)
    return task


def _clean_content(text: str, *, what: str = "task content") -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidContent(f"{what} cannot be empty")
    return cleaned
