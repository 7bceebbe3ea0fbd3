"""reftask CLI: branch-scoped task tracking plus a headless agent loop.

Installed as the ``reftask`` console_script.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich.markup import escape

from reftask import __version__
from reftask import log as glog
from reftask.config import Config, resolve_repo_root
from reftask.errors import TaskError
from reftask.io_utils import read_text
from reftask.tasks.model import Task, TaskStatus
from reftask.tasks.store import TaskStore

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


# ── Helpers ──────────────────────────────────────────────────────────


def _dedupe_keep_order(values: tuple[str, ...] | list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def _resolve_cli_executor(engine_flags: tuple[str, ...], runner_cmd: str) -> tuple[str | None, str | None]:
    """Return ``(executor, agent_cmd)`` overrides; ``None`` keeps the environment's value."""
    selected = _dedupe_keep_order(engine_flags)
    if len(selected) > 1:
        raise click.UsageError(
            "Conflicting engine flags selected. Use only one of --claude/--opencode/--codex."
        )
    if selected and runner_cmd:
        raise click.UsageError("Cannot combine --runner with an engine flag. Choose one approach.")
    if runner_cmd:
        return None, runner_cmd
    if selected:
        # An explicit engine flag also beats a raw command from the environment.
        return selected[0], ""
    return None, None


def _engine_options(func):
    """Executor selection shared by ``run`` and ``plan``."""
    options = [
        click.option("--claude", "engine_flags", flag_value="claude", multiple=True, help="Use Claude Code (default)"),
        click.option("--opencode", "engine_flags", flag_value="opencode", multiple=True, help="Use OpenCode"),
        click.option("--codex", "engine_flags", flag_value="codex", multiple=True, help="Use Codex CLI"),
        click.option("--runner", "runner_cmd", default="", help="Raw agent command; the prompt is appended"),
        click.option("--model", default="", help="Model override passed to the executor"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn any ``TaskError`` into ``[ERROR] <message>`` and exit code 1."""
    try:
        yield
    except TaskError as e:
        glog.error(str(e))
        sys.exit(1)


def _open_store(cfg: Config) -> TaskStore:
    from reftask import git_ops
    from reftask.refstore import FileStore, GitRefStore

    if cfg.store_file:
        backend = FileStore(Path(cfg.store_file))
    else:
        root = resolve_repo_root()
        if not git_ops.is_repo(root):
            glog.error("Not a git repository. Set REFTASK_STORE_FILE to use a file store instead.")
            sys.exit(1)
        try:
            backend = GitRefStore(cwd=root)
        except ValueError as e:
            glog.error(str(e))
            sys.exit(1)
    glog.debug(f"store: {backend.describe()}")
    return TaskStore(backend, cfg)


def _cfg(ctx: click.Context) -> Config:
    return ctx.find_root().obj


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _print_task_row(task: Task, blocker: str | None = None) -> None:
    if task.is_done:
        glog.task_line("✓", task.id, task.content, style="green")
    elif blocker:
        glog.task_line("…", task.id, task.content, style="yellow")
        glog.console.print(f"      [dim]after {blocker}[/dim]")
    else:
        glog.task_line("○", task.id, task.content)


def _print_notes(task: Task) -> None:
    for note in task.notes:
        glog.console.print(f"      [dim]{note.at:%Y-%m-%d %H:%M}[/dim] {escape(note.text)}")


# ── Group ────────────────────────────────────────────────────────────


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="reftask")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """reftask: tasks that live in git refs, worked by headless agents.

    Tasks are stored per branch under refs/tasks/<branch>, so they travel
    with the repository but never touch the working tree.

    \b
    EXAMPLES:
      reftask add "Set up the database schema"
      reftask add "Write the migration" --after a1b2c3
      reftask ready
      reftask run --codex --max-tasks 5
      reftask done a1b2c3 --commit "Add schema"
      reftask pr > tasks.md
    """
    glog.set_verbose(verbose)
    ctx.obj = Config.from_env(verbose=verbose)
    if ctx.obj.agent_mode:
        glog.debug("agent mode: edit and delete are disabled")


# ── Task commands ────────────────────────────────────────────────────


@main.command()
@click.argument("content", nargs=-1, required=True)
@click.option("--after", default=None, help="Id of the task this one waits for")
@click.option("--json", "as_json", is_flag=True, help="Print the new record as JSON")
@click.pass_context
def add(ctx: click.Context, content: tuple[str, ...], after: str | None, as_json: bool) -> None:
    """Create a task and print its id."""
    store = _open_store(_cfg(ctx))
    with _reported_errors():
        task = store.add(" ".join(content), after=after)
    if as_json:
        _echo_json(task.to_dict())
    else:
        click.echo(task.id)


@main.command(name="list")
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]), default=None, help="Only tasks with this status")
@click.option("--all", "show_all", is_flag=True, help="Also print notes")
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, status: str | None, show_all: bool, as_json: bool) -> None:
    """List tasks in creation order."""
    from reftask.tasks import resolver

    store = _open_store(_cfg(ctx))
    with _reported_errors():
        snap = store.snapshot()
    tasks = [t for t in snap.tasks if status is None or t.status.value == status]

    if as_json:
        _echo_json([t.to_dict() for t in tasks])
        return
    if not tasks:
        glog.info("No tasks.")
        return

    for t in tasks:
        _print_task_row(t, resolver.blocker(snap, t))
        if show_all:
            _print_notes(t)

    if status is None:
        n_done = sum(1 for t in tasks if t.is_done)
        glog.console.print(f"\n[dim]{len(tasks) - n_done} pending, {n_done} done[/dim]")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON")
@click.pass_context
def ready(ctx: click.Context, as_json: bool) -> None:
    """Pending tasks whose dependency is satisfied."""
    from reftask.tasks import resolver

    store = _open_store(_cfg(ctx))
    with _reported_errors():
        snap = store.snapshot()
    tasks = resolver.ready(snap)
    if as_json:
        _echo_json([t.to_dict() for t in tasks])
        return
    if not tasks:
        glog.info("No ready tasks.")
    for t in tasks:
        _print_task_row(t)
    waiting = resolver.blocked(snap)
    if waiting:
        glog.console.print(f"\n[dim]{len(waiting)} blocked[/dim]")


@main.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Print the record as JSON")
@click.pass_context
def show(ctx: click.Context, task_id: str, as_json: bool) -> None:
    """Show one task in full."""
    store = _open_store(_cfg(ctx))
    with _reported_errors():
        task = store.get(task_id)
    if as_json:
        _echo_json(task.to_dict())
        return

    c = glog.console
    c.print(f"[bold]{task.id}[/bold]  {task.status.value}")
    c.print(escape(task.content))
    c.print()
    c.print(f"Created:  {task.created_at:%Y-%m-%d %H:%M:%S} UTC by {escape(task.created_by or '?')}")
    if task.after:
        c.print(f"After:    {task.after}")
    if task.closed_at:
        c.print(f"Closed:   {task.closed_at:%Y-%m-%d %H:%M:%S} UTC")
    if task.closed_commit:
        c.print(f"Commit:   {task.closed_commit}")
    if task.notes:
        c.print("Notes:")
        _print_notes(task)


@main.command()
@click.argument("task_id")
@click.option("--note", default=None, help="Note to append while closing")
@click.option("--commit", "commit_message", default=None, help="Commit the index with this message and link it")
@click.pass_context
def done(ctx: click.Context, task_id: str, note: str | None, commit_message: str | None) -> None:
    """Mark a task done, optionally committing and linking in one step."""
    from reftask import git_ops
    from reftask.tasks.linker import CommitLinker

    store = _open_store(_cfg(ctx))
    root = resolve_repo_root()
    linker = CommitLinker(store, commit_fn=lambda msg: git_ops.commit(msg, cwd=root))

    with _reported_errors():
        task = store.mark_done(task_id, note=note)
    glog.success(f"Closed {task.id}")

    if commit_message is None:
        return
    try:
        with _reported_errors():
            commit_id = linker.commit(commit_message)
    except RuntimeError as e:
        glog.error(f"{e}. Task {task.id} stays done but is not linked to a commit.")
        sys.exit(1)
    glog.success(f"Linked {task.id} to {commit_id[:12]}")


@main.command()
@click.argument("task_id")
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def note(ctx: click.Context, task_id: str, text: tuple[str, ...]) -> None:
    """Append a note to a task."""
    store = _open_store(_cfg(ctx))
    with _reported_errors():
        task = store.append_note(task_id, " ".join(text))
    glog.success(f"Noted on {task.id} ({len(task.notes)} note(s))")


@main.command()
@click.argument("task_id")
@click.option("--content", required=True, help="Replacement content")
@click.pass_context
def edit(ctx: click.Context, task_id: str, content: str) -> None:
    """Replace a task's content (refused in agent mode)."""
    store = _open_store(_cfg(ctx))
    with _reported_errors():
        task = store.edit(task_id, content)
    glog.success(f"Edited {task.id}")


@main.command()
@click.argument("task_id")
@click.pass_context
def delete(ctx: click.Context, task_id: str) -> None:
    """Delete a task (refused in agent mode)."""
    from reftask.tasks import resolver

    store = _open_store(_cfg(ctx))
    with _reported_errors():
        task = store.delete(task_id)
        glog.success(f"Deleted {task.id}")
        freed = resolver.dependents(store.snapshot(), task.id)
    if freed:
        glog.info(f"No longer waiting on {task.id}: {', '.join(t.id for t in freed)}")


@main.command()
@click.pass_context
def pr(ctx: click.Context) -> None:
    """Print a markdown checklist for a pull request description."""
    from reftask.tasks.markdown import render_pr

    store = _open_store(_cfg(ctx))
    with _reported_errors():
        click.echo(render_pr(store.snapshot()), nl=False)


@main.command(name="import")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Show the tasks without adding them")
@click.pass_context
def import_cmd(ctx: click.Context, plan_file: Path, dry_run: bool) -> None:
    """Add one task per list item of a markdown plan, in order."""
    from reftask.tasks.markdown import parse_plan

    items = parse_plan(read_text(plan_file))
    if not items:
        glog.error(f"No tasks found in {plan_file}")
        sys.exit(1)

    if dry_run:
        glog.info(f"Would add {len(items)} task(s):")
        for i, item in enumerate(items, start=1):
            glog.console.print(f"  {i}. {escape(item)}")
        return

    store = _open_store(_cfg(ctx))
    with _reported_errors():
        for item in items:
            task = store.add(item)
            glog.task_line("+", task.id, task.content)
    glog.success(f"Imported {len(items)} task(s) from {plan_file}")


# ── Agent commands ───────────────────────────────────────────────────


@main.command()
@_engine_options
@click.option("--once", is_flag=True, help="Stop after one task")
@click.option("--dry-run", is_flag=True, help="Show what would run without executing")
@click.option("--delay", type=float, default=None, help="Seconds to wait between tasks (default 2)")
@click.option("--max-tasks", type=int, default=None, help="Stop after N dispatches (0=unlimited)")
@click.pass_context
def run(
    ctx: click.Context,
    engine_flags: tuple[str, ...],
    runner_cmd: str,
    model: str,
    once: bool,
    dry_run: bool,
    delay: float | None,
    max_tasks: int | None,
) -> None:
    """Work through ready tasks with a headless agent, one at a time.

    Each agent commits its own work and closes its task; nothing is pushed.
    Ctrl-C stops the loop after the running agent exits.
    """
    from reftask.runner import AgentRunner

    executor, agent_cmd = _resolve_cli_executor(engine_flags, runner_cmd)
    base = _cfg(ctx)
    cfg = Config.from_env(
        executor=executor,
        agent_cmd=agent_cmd,
        model=model,
        once=once,
        dry_run=dry_run,
        delay=delay,
        max_tasks=max_tasks,
        verbose=base.verbose,
    )

    engine = _build_engine(cfg)
    store = _open_store(cfg)
    agent_runner = AgentRunner(cfg, store, engine, log_dir=resolve_repo_root() / cfg.log_dir)

    with _reported_errors():
        if not cfg.dry_run:
            engine.ensure_available()
        _print_run_banner(cfg, engine.display_cmd(), store)
        summary = agent_runner.run()

    glog.console.print()
    glog.console.print("[bold]============================================[/bold]")
    glog.console.print(
        f"Processed: {summary.dispatched}  "
        f"[green]Completed: {len(summary.completed)}[/green]  "
        f"[yellow]Skipped: {len(summary.skipped)}[/yellow]  "
        f"Stop: {summary.reason.value}"
    )
    for task_id in summary.skipped:
        glog.console.print(f"  [yellow]skipped[/yellow] {task_id}")


def _build_engine(cfg: Config):
    from reftask.engines.registry import ENGINE_NAMES, get_engine

    try:
        return get_engine(cfg.executor, model=cfg.model, agent_cmd=cfg.agent_cmd)
    except ValueError as e:
        glog.error(f"{e}. Valid executors: {', '.join(ENGINE_NAMES)}.")
        sys.exit(1)


def _print_run_banner(cfg: Config, display_cmd: str, store: TaskStore) -> None:
    from reftask.tasks import resolver

    snap = store.snapshot()
    glog.banner("reftask run" + (" (dry run)" if cfg.dry_run else ""))
    glog.console.print(f"Store:     {escape(store.backend.describe())}")
    glog.console.print(f"Executor:  {escape(display_cmd)}")
    glog.console.print(f"Tasks:     {len(snap.pending())} pending, {len(resolver.ready(snap))} ready")
    if cfg.max_tasks:
        glog.console.print(f"Max tasks: {cfg.max_tasks}")
    glog.console.print("[bold]============================================[/bold]")


PLAN_PROMPT = """You are planning work for this repository.

Goal: {description}

Break the goal into small tasks that one agent session can finish and
commit on its own. Record each task with the reftask CLI, in order:

  reftask add "<task description>"

When a task cannot start before another one is finished, pass the id that
the earlier 'reftask add' printed:

  reftask add "<task description>" --after <id>

Rules:
- Read AGENTS.md (if present) and the code before planning.
- Each task must say what to change and how to verify it.
- Do NOT implement anything and do NOT commit; only create tasks.
- Finish with 'reftask list' so the plan is visible."""


@main.command()
@click.argument("description", nargs=-1, required=True)
@_engine_options
@click.option("--dry-run", is_flag=True, help="Show the command and prompt without running")
@click.pass_context
def plan(
    ctx: click.Context,
    description: tuple[str, ...],
    engine_flags: tuple[str, ...],
    runner_cmd: str,
    model: str,
    dry_run: bool,
) -> None:
    """Ask an agent to break a goal into tasks with 'reftask add'.

    \b
    EXAMPLES:
      reftask plan "Add OAuth login"
      reftask plan --codex --dry-run "Split the settings page"
    """
    from reftask.process import SubprocessRunner

    executor, agent_cmd = _resolve_cli_executor(engine_flags, runner_cmd)
    cfg = Config.from_env(executor=executor, agent_cmd=agent_cmd, model=model, verbose=_cfg(ctx).verbose)
    engine = _build_engine(cfg)
    prompt = PLAN_PROMPT.format(description=" ".join(description))

    if dry_run:
        glog.console.print("(dry-run: no commands will be executed)")
        glog.console.print(f"Would execute: {escape(engine.display_cmd())}")
        glog.console.print("[dim]--- prompt ---[/dim]")
        glog.console.print(prompt, markup=False)
        return

    with _reported_errors():
        engine.ensure_available()
    glog.info(f"Planning with {engine.name}…")
    rc = SubprocessRunner().run(engine.build_cmd(prompt), log_file=resolve_repo_root() / cfg.log_dir / "plan.log")
    if rc != 0:
        glog.error(f"Planning session exited with code {rc}")
        sys.exit(1)
    glog.success("Planning session finished. Review with 'reftask list'.")


if __name__ == "__main__":
    main()
