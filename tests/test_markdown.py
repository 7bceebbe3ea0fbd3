"""Tests for the PR checklist renderer and the markdown plan parser."""

from __future__ import annotations

from reftask.tasks.markdown import parse_plan, render_pr
from reftask.tasks.model import Snapshot


class TestRenderPr:
    def test_empty(self):
        assert "No tasks found." in render_pr(Snapshot())

    def test_sections_and_edges(self, make_task):
        snap = Snapshot([
            make_task("aaa111", content="Base", done=True).linked("0123456789abcdef"),
            make_task("bbb222", content="Build on base", after="aaa111"),
            make_task("ccc333", content="Waits", after="bbb222"),
            make_task("ddd444", content="Orphan", after="gone00"),
        ])
        out = render_pr(snap)
        assert "### Completed" in out
        assert "- [x] `aaa111` Base (0123456789ab)" in out
        assert "- [ ] `bbb222` Build on base" in out
        assert "`aaa111` → `bbb222` (satisfied)" in out
        assert "`bbb222` → `ccc333` (blocked)" in out
        assert "`gone00` → `ddd444` (removed)" in out

    def test_first_line_only(self, make_task):
        out = render_pr(Snapshot([make_task("aaa111", content="Title\nlong body")]))
        assert "long body" not in out


class TestParsePlan:
    def test_numbered_checkbox_and_bullets(self):
        text = """# Plan

Some prose that is not a task.

1. First step
2) Second step
- [ ] Third step
- [x] Fourth step
* Fifth step
"""
        assert parse_plan(text) == [
            "First step",
            "Second step",
            "Third step",
            "Fourth step",
            "Fifth step",
        ]

    def test_indented_items_and_blank_bullets(self):
        assert parse_plan("  - nested item\n-   \n") == ["nested item"]

    def test_no_items(self):
        assert parse_plan("Just text.\n## Heading\n") == []
