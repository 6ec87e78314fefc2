"""Shared CLI utilities - colors, console, helpers."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

ELECTRIC_PURPLE = "#e135ff"
NEON_CYAN = "#80ffea"
ELECTRIC_YELLOW = "#f1fa8c"
SUCCESS_GREEN = "#50fa7b"
ERROR_RED = "#ff6363"

# Shared console instance
console = Console()


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[{SUCCESS_GREEN}]✓[/{SUCCESS_GREEN}] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[{ERROR_RED}]✗[/{ERROR_RED}] {message}")


def warn(message: str) -> None:
    """Print a warning message."""
    console.print(f"[{ELECTRIC_YELLOW}]![/{ELECTRIC_YELLOW}] {message}")


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[{NEON_CYAN}]→[/{NEON_CYAN}] {message}")


def hint(message: str) -> None:
    console.print(f"[{ELECTRIC_YELLOW}]Hint:[/{ELECTRIC_YELLOW}] {message}")


def print_store_hint() -> None:
    """Print the common store configuration hint."""
    hint("Are FLITEVAULT_SUPABASE_URL and FLITEVAULT_SUPABASE_KEY set?")


def create_table(title: str | None = None, *columns: str) -> Table:
    """Create a styled table."""
    table = Table(title=title, border_style=NEON_CYAN)
    for i, col in enumerate(columns):
        style = ELECTRIC_PURPLE if i == 0 else NEON_CYAN
        justify = "right" if col.lower() in ("rows", "count") else "left"
        table.add_column(col, style=style, justify=justify)
    return table


def spinner() -> Progress:
    """Create a spinner progress indicator."""
    return Progress(
        SpinnerColumn(style=NEON_CYAN),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    )


def progress_bar() -> Progress:
    """Create a percentage progress bar."""
    return Progress(
        SpinnerColumn(style=NEON_CYAN),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(complete_style=ELECTRIC_PURPLE),
        TaskProgressColumn(),
        console=console,
    )


P = ParamSpec("P")
R = TypeVar("R")


def run_async(func: Callable[P, Awaitable[R]]) -> Callable[P, R]:
    """Decorator to run async functions in sync context (for Typer commands)."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(func(*args, **kwargs))

    return wrapper
