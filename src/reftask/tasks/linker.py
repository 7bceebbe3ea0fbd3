"""CommitLinker: stamp the next commit onto the task that was just closed."""

from __future__ import annotations

from collections.abc import Callable

from reftask import log
from reftask.tasks.model import Task
from reftask.tasks.store import TaskStore

CommitFn = Callable[[str], str]


class CommitLinker:
    """Remembers the last task closed in this process until the next commit.

    Usage::

        linker = CommitLinker(store, commit_fn=lambda msg: git_ops.commit(msg))
        store.mark_done(tid)            # linker now holds tid
        linker.commit("finish tid")     # tid.closed_commit = new commit id
    """

    def __init__(self, store: TaskStore, commit_fn: CommitFn) -> None:
        self.store = store
        self._commit_fn = commit_fn
        self.pending_link: str | None = None
        store.on_done(self._on_done)

    def _on_done(self, task: Task) -> None:
        self.pending_link = task.id
        log.debug(f"{task.id} will be linked to the next commit")

    def commit(self, message: str) -> str:
        """Create a commit; link it to the pending task, if any.

        The pending link is cleared whether or not the commit succeeds, so
        each closed task gets at most one link attempt. A failed commit
        propagates and leaves the task done but unlinked.
        """
        task_id, self.pending_link = self.pending_link, None
        commit_id = self._commit_fn(message)
        if task_id is not None:
            self.store.link_commit(task_id, commit_id)
            log.debug(f"linked {task_id} -> {commit_id[:12]}")
        return commit_id
