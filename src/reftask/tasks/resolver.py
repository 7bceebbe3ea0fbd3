"""Dependency resolver: which pending tasks are unblocked.

A task carries at most one ``after`` reference, validated to exist when
the task is added, so the graph cannot contain a cycle. A dependency that
has since been deleted no longer blocks anything.
"""

from __future__ import annotations

from reftask.tasks.model import Snapshot, Task


def blocker(snapshot: Snapshot, task: Task) -> str | None:
    """Return the id of the unmet dependency of *task*, or ``None``."""
    if not task.after:
        return None
    dep = snapshot.get(task.after)
    if dep is None or dep.is_done:
        return None
    return dep.id


def is_ready(snapshot: Snapshot, task: Task) -> bool:
    return not task.is_done and blocker(snapshot, task) is None


def ready(snapshot: Snapshot) -> list[Task]:
    """Pending tasks with no unmet dependency, in creation order."""
    return [t for t in snapshot.tasks if is_ready(snapshot, t)]


def blocked(snapshot: Snapshot) -> list[tuple[Task, str]]:
    """Pending tasks still waiting, paired with the id they wait on."""
    out: list[tuple[Task, str]] = []
    for t in snapshot.tasks:
        if t.is_done:
            continue
        dep = blocker(snapshot, t)
        if dep is not None:
            out.append((t, dep))
    return out


def dependents(snapshot: Snapshot, task_id: str) -> list[Task]:
    """Tasks whose ``after`` names *task_id*."""
    return [t for t in snapshot.tasks if t.after == task_id]
