"""Console logging for reftask, rendered with Rich."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False, soft_wrap=True)
_err_console = Console(highlight=False, stderr=True, soft_wrap=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[blue]\\[INFO][/blue] {escape(msg)}")


def success(msg: str) -> None:
    console.print(f"[green]\\[OK][/green] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"[yellow]\\[WARN][/yellow] {escape(msg)}")


def error(msg: str) -> None:
    _err_console.print(f"[red]\\[ERROR][/red] {escape(msg)}")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"[dim]\\[DEBUG] {escape(msg)}[/dim]")


def task_line(marker: str, task_id: str, content: str, *, style: str = "cyan") -> None:
    """Print one compact ``<marker> <id>  <first line of content>`` row."""
    first = content.splitlines()[0] if content else ""
    console.print(f"  [{style}]{escape(marker)}[/{style}] [bold]{escape(task_id)}[/bold]  {escape(first)}")


def banner(title: str) -> None:
    console.print("[bold]============================================[/bold]")
    console.print(f"[bold]{escape(title)}[/bold]")
