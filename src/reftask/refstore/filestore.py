"""Single-file store guarded by an exclusive lock file.

Layout: first line ``version: <n>``, then the snapshot text. The lock is an
``flock`` on ``<file>.lock``, held only for the version check plus the atomic
rename, never while a caller computes its change. The kernel drops it when
the holder exits, so a crashed writer never leaves the store locked.
"""

from __future__ import annotations

import fcntl
import time
from pathlib import Path
from typing import IO

from reftask.errors import CorruptSnapshot, LockTimeout
from reftask.io_utils import read_text, write_text_atomic
from reftask.refstore.base import AtomicStore

_HEADER = "version: "


class FileStore(AtomicStore):
    name = "file"

    def __init__(self, path: Path | str, *, lock_timeout: float = 10.0) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout

    def describe(self) -> str:
        return f"file:{self.path}"

    def read(self) -> tuple[str, str | None]:
        if not self.path.is_file():
            return "", None
        raw = read_text(self.path)
        header, _, body = raw.partition("\n")
        if not header.startswith(_HEADER):
            raise CorruptSnapshot(1, f"{self.path} has no version header")
        return body, header[len(_HEADER):].strip()

    def compare_and_swap(self, expected: str | None, text: str) -> bool:
        lock_fh = self._acquire_lock()
        try:
            _, current = self.read()
            if current != expected:
                return False
            next_version = int(current or 0) + 1
            write_text_atomic(self.path, f"{_HEADER}{next_version}\n{text}")
            return True
        finally:
            self._release_lock(lock_fh)

    # ── locking ──────────────────────────────────────────────────

    def _acquire_lock(self) -> IO[str]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self.lock_path, "a", encoding="utf-8")
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fh
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    fh.close()
                    raise LockTimeout(str(self.lock_path)) from None
                time.sleep(0.05)

    def _release_lock(self, fh: IO[str]) -> None:
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()
