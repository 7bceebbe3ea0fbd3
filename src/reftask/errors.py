"""Error taxonomy shared by the task store, resolver, linker and runner.

Every error carries a stable, human-readable message. ``Conflict`` is the
only kind retried automatically (inside ``TaskStore``); everything else
propagates to the caller.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base class for all reftask errors."""

    kind: str = "error"


class NotFound(TaskError):
    kind = "not-found"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task '{task_id}' not found")


class Conflict(TaskError):
    kind = "conflict"

    def __init__(self, attempts: int = 1) -> None:
        self.attempts = attempts
        super().__init__(
            f"task collection changed concurrently; gave up after {attempts} attempt(s)"
        )


class Immutable(TaskError):
    kind = "immutable"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"{operation} is blocked in agent mode: tasks are immutable "
            "(use 'note' to add information)"
        )


class AlreadyDone(TaskError):
    kind = "already-done"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task '{task_id}' is already done")


class IdCollision(TaskError):
    kind = "id-collision"

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"could not generate a unique task id after {attempts} attempts")


class ExecutorMissing(TaskError):
    kind = "executor-missing"

    def __init__(self, executable: str, hint: str = "") -> None:
        self.executable = executable
        msg = f"executor '{executable}' not found in PATH"
        if hint:
            msg = f"{msg}. {hint}"
        super().__init__(msg)


class InvalidContent(TaskError):
    kind = "invalid-content"

    def __init__(self, reason: str = "task content cannot be empty") -> None:
        super().__init__(reason)


class CorruptSnapshot(TaskError):
    kind = "corrupt-snapshot"

    def __init__(self, line_no: int, detail: str) -> None:
        self.line_no = line_no
        super().__init__(f"corrupt task snapshot at line {line_no}: {detail}")


class LockTimeout(TaskError):
    kind = "lock-timeout"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"timed out waiting for lock on {path}")
