"""Git plumbing: branch lookup, blobs, compare-and-swap ref updates, commits."""

from __future__ import annotations

import subprocess
from pathlib import Path

from reftask import log


def _git(
    *args: str,
    cwd: Path | None = None,
    check: bool = False,
    input_text: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a git command, capturing output."""
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=cwd,
        check=check,
        input=input_text,
    )


def is_repo(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--git-dir", cwd=cwd)
    return r.returncode == 0


def current_branch(cwd: Path | None = None) -> str:
    # symbolic-ref also works on an unborn branch (no commits yet)
    r = _git("symbolic-ref", "--short", "-q", "HEAD", cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 and r.stdout.strip() else "main"


def task_ref_name(branch: str) -> str:
    """``refs/tasks/<branch>``; rejects names git would not accept."""
    ref = f"refs/tasks/{branch}"
    r = _git("check-ref-format", ref)
    if r.returncode != 0:
        raise ValueError(f"invalid branch name for task ref: {branch!r}")
    return ref


def resolve_ref(ref: str, cwd: Path | None = None) -> str | None:
    """Return the object id *ref* points at, or ``None`` when it does not exist."""
    r = _git("rev-parse", "-q", "--verify", ref, cwd=cwd)
    if r.returncode != 0:
        return None
    oid = r.stdout.strip()
    return oid or None


def hash_blob(content: str, cwd: Path | None = None) -> str:
    """Write *content* as a blob object and return its id."""
    r = _git("hash-object", "-w", "--stdin", cwd=cwd, input_text=content)
    if r.returncode != 0:
        raise RuntimeError(f"git hash-object failed: {r.stderr.strip()}")
    return r.stdout.strip()


def read_blob(oid: str, cwd: Path | None = None) -> str:
    r = _git("cat-file", "blob", oid, cwd=cwd)
    if r.returncode != 0:
        raise RuntimeError(f"git cat-file failed for {oid}: {r.stderr.strip()}")
    return r.stdout


def update_ref(ref: str, new_oid: str, old_oid: str | None, cwd: Path | None = None) -> bool:
    """Atomically move *ref* to *new_oid* only if it still points at *old_oid*.

    ``old_oid=None`` requires that the ref does not exist yet. Returns
    ``False`` when git rejects the update because the ref moved.
    """
    r = _git("update-ref", "-m", "reftask", ref, new_oid, old_oid or "", cwd=cwd)
    if r.returncode != 0:
        log.debug(f"update-ref {ref} rejected: {r.stderr.strip()}")
        return False
    return True


def head_commit(cwd: Path | None = None) -> str | None:
    return resolve_ref("HEAD", cwd=cwd)


def commit(message: str, *, all_tracked: bool = False, cwd: Path | None = None) -> str:
    """Create a commit from the index and return its id.

    Raises ``RuntimeError`` when git refuses (e.g. nothing to commit).
    """
    args = ["commit", "-m", message]
    if all_tracked:
        args.insert(1, "-a")
    r = _git(*args, cwd=cwd)
    if r.returncode != 0:
        detail = (r.stderr or r.stdout or "").strip().splitlines()
        raise RuntimeError(f"git commit failed: {detail[0] if detail else f'exit code {r.returncode}'}")
    oid = head_commit(cwd=cwd)
    if not oid:
        raise RuntimeError("git commit succeeded but HEAD is unresolved")
    return oid
