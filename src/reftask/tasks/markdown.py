"""Markdown in and out: review checklist export and plan-file import."""

from __future__ import annotations

import re

from reftask.tasks import resolver
from reftask.tasks.model import Snapshot, Task

_NUMBERED = re.compile(r"^\d+[.)]\s+(.*)$")
_CHECKBOX = re.compile(r"^[-*]\s+\[[ xX]\]\s+(.*)$")
_BULLET = re.compile(r"^[-*]\s+(.*)$")


def _summary(task: Task) -> str:
    return task.content.splitlines()[0] if task.content else ""


def render_pr(snapshot: Snapshot) -> str:
    """Checklist of every task on the branch plus its dependency edges."""
    if not snapshot.tasks:
        return "## Tasks\n\nNo tasks found.\n"

    done = [t for t in snapshot.tasks if t.is_done]
    pending = [t for t in snapshot.tasks if not t.is_done]
    lines = ["## Tasks", ""]

    if done:
        lines += ["### Completed", ""]
        for t in done:
            suffix = f" ({t.closed_commit[:12]})" if t.closed_commit else ""
            lines.append(f"- [x] `{t.id}` {_summary(t)}{suffix}")
        lines.append("")

    if pending:
        lines += ["### Pending", ""]
        for t in pending:
            lines.append(f"- [ ] `{t.id}` {_summary(t)}")
        lines.append("")

    edges = [t for t in snapshot.tasks if t.after]
    if edges:
        lines += ["### Dependencies", ""]
        for t in edges:
            if t.after in snapshot:
                state = "blocked" if resolver.blocker(snapshot, t) else "satisfied"
                lines.append(f"- `{t.after}` → `{t.id}` ({state})")
            else:
                lines.append(f"- `{t.after}` → `{t.id}` (removed)")
        lines.append("")

    return "\n".join(lines)


def parse_plan(text: str) -> list[str]:
    """Extract task items from numbered, checkbox or bulleted list lines."""
    items: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        for pattern in (_NUMBERED, _CHECKBOX, _BULLET):
            m = pattern.match(line)
            if m:
                item = m.group(1).strip()
                if item:
                    items.append(item)
                break
    return items
