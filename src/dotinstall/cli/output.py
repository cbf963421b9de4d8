"""Console output helpers for CLI commands."""

from rich.console import Console
from rich.markup import escape

console = Console(soft_wrap=True, highlight=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False)


def plain(message: str = "") -> None:
    console.print(escape(message))


def muted(message: str) -> None:
    console.print(f"[dim]{escape(message)}[/dim]")


def info(message: str) -> None:
    console.print(f"[cyan]{escape(message)}[/cyan]")


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def warning(message: str) -> None:
    err_console.print(f"[yellow]⚠ {escape(message)}[/yellow]")


def error(message: str) -> None:
    err_console.print(f"[red]✗ {escape(message)}[/red]")
