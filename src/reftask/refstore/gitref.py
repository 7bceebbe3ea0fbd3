"""Git-ref store: ``refs/tasks/<branch>`` points at a blob holding the snapshot."""

from __future__ import annotations

from pathlib import Path

from reftask import git_ops
from reftask.refstore.base import AtomicStore


class GitRefStore(AtomicStore):
    name = "git"

    def __init__(self, branch: str | None = None, *, cwd: Path | None = None) -> None:
        self.cwd = cwd
        self.branch = branch or git_ops.current_branch(cwd=cwd)
        self.ref = git_ops.task_ref_name(self.branch)

    def describe(self) -> str:
        return self.ref

    def read(self) -> tuple[str, str | None]:
        oid = git_ops.resolve_ref(self.ref, cwd=self.cwd)
        if oid is None:
            return "", None
        return git_ops.read_blob(oid, cwd=self.cwd), oid

    def compare_and_swap(self, expected: str | None, text: str) -> bool:
        new_oid = git_ops.hash_blob(text, cwd=self.cwd)
        if new_oid == expected:
            # Identical content: the pointer cannot move, but it must still be unchanged.
            return git_ops.resolve_ref(self.ref, cwd=self.cwd) == expected
        return git_ops.update_ref(self.ref, new_oid, expected, cwd=self.cwd)
