"""Task and Snapshot data models, plus the line-per-record snapshot encoding."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from reftask.errors import CorruptSnapshot


class TaskStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_ts(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_ts(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.strptime(raw, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Note:
    at: datetime
    text: str


@dataclass(frozen=True)
class Task:
    id: str
    content: str
    created_at: datetime
    created_by: str = ""
    status: TaskStatus = TaskStatus.PENDING
    after: str | None = None
    closed_at: datetime | None = None
    closed_commit: str | None = None
    notes: tuple[Note, ...] = ()

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def with_note(self, text: str, at: datetime) -> "Task":
        return replace(self, notes=self.notes + (Note(at=at, text=text),))

    def closed(self, at: datetime) -> "Task":
        return replace(self, status=TaskStatus.DONE, closed_at=at)

    def linked(self, commit: str) -> "Task":
        return replace(self, closed_commit=commit)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "content": self.content,
            "status": self.status.value,
            "created_at": format_ts(self.created_at),
            "created_by": self.created_by,
            "after": self.after,
            "closed_at": format_ts(self.closed_at),
            "closed_commit": self.closed_commit,
            "notes": [{"at": format_ts(n.at), "text": n.text} for n in self.notes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Task":
        raw_notes = data.get("notes") or []
        if not isinstance(raw_notes, list):
            raise ValueError("notes must be a list")
        notes = tuple(
            Note(at=parse_ts(str(n["at"])) or utc_now(), text=str(n["text"]))
            for n in raw_notes
        )
        created_at = parse_ts(_opt_str(data.get("created_at")))
        if created_at is None:
            raise ValueError("created_at is required")
        task_id = _opt_str(data.get("id"))
        if not task_id:
            raise ValueError("id is required")
        return cls(
            id=task_id,
            content=str(data.get("content", "")),
            created_at=created_at,
            created_by=str(data.get("created_by") or ""),
            status=TaskStatus(str(data.get("status") or TaskStatus.PENDING.value)),
            after=_opt_str(data.get("after")),
            closed_at=parse_ts(_opt_str(data.get("closed_at"))),
            closed_commit=_opt_str(data.get("closed_commit")),
            notes=notes,
        )


def _opt_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class Snapshot:
    """All tasks of one branch, in creation order."""

    tasks: list[Task] = field(default_factory=list)

    def get(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    def ids(self) -> set[str]:
        return {t.id for t in self.tasks}

    def pending(self) -> list[Task]:
        return [t for t in self.tasks if not t.is_done]

    def copy(self) -> "Snapshot":
        return Snapshot(tasks=list(self.tasks))

    def replace_task(self, task: Task) -> None:
        for i, t in enumerate(self.tasks):
            if t.id == task.id:
                self.tasks[i] = task
                return
        raise KeyError(task.id)

    def remove(self, task_id: str) -> Task:
        for i, t in enumerate(self.tasks):
            if t.id == task_id:
                return self.tasks.pop(i)
        raise KeyError(task_id)

    # ── encoding ─────────────────────────────────────────────────

    def dumps(self) -> str:
        """One JSON record per line, creation order."""
        lines = [
            json.dumps(t.to_dict(), ensure_ascii=False, separators=(",", ":"))
            for t in self.tasks
        ]
        return "\n".join(lines) + ("\n" if lines else "")

    @classmethod
    def loads(cls, text: str) -> "Snapshot":
        tasks: list[Task] = []
        # Records end at "\n" only: json.dumps leaves U+2028, U+2029 and U+0085
        # unescaped, and str.splitlines would break a record on them.
        for line_no, line in enumerate(text.split("\n"), start=1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError("record is not an object")
                tasks.append(Task.from_dict(data))
            except (ValueError, KeyError, TypeError) as e:
                raise CorruptSnapshot(line_no, str(e)) from None
        return cls(tasks=tasks)
