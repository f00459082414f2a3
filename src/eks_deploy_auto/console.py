"""Rich console utilities for styled terminal output.

This module provides a consistent interface for all CLI output using
the Rich library. Debug tracing stays with icecream; everything meant
for the operator goes through here.
"""

from collections.abc import Generator, Iterable
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from eks_deploy_auto.models import ProvisioningStep, ResourceStatus

_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
    }
)

# Shared console instance
console = Console(theme=_THEME)


def info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[info]ℹ[/info] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓[/success] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[error]✗[/error] {message}")


def action(message: str) -> None:
    """Print an action/progress message."""
    console.print(f"[info]→[/info] {message}")


def step(message: str) -> None:
    """Print a sub-step message."""
    console.print(f"[muted]•[/muted] {message}")


def command(argv: list[str]) -> None:
    """Echo a command line about to be run (or printed in dry-run mode).

    Args:
        argv: The command and its arguments.

    """
    console.print(f"[muted]$[/muted] {escape(' '.join(argv))}")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: The text to highlight.

    Returns:
        Text wrapped in Rich markup for highlighting.

    """
    return f"[highlight]{text}[/highlight]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Display a spinner while performing an operation.

    Args:
        message: The status message to display.

    Yields:
        None

    """
    with console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def summary_panel(title: str, items: dict[str, str]) -> None:
    """Print a summary panel with key-value pairs.

    Args:
        title: Title for the panel.
        items: Dictionary of label -> value pairs to display.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    for label, value in items.items():
        table.add_row(f"{label}:", value)

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))


def plan_table(tiers: Iterable[list[ProvisioningStep]], skipped: set[str] | None = None) -> None:
    """Print the provisioning plan grouped by tier.

    Args:
        tiers: Steps grouped so that every tier only depends on earlier ones.
        skipped: Names of steps that will not run with the current settings.

    """
    skipped = skipped or set()
    table = Table(title="Provisioning plan", header_style="bold")
    table.add_column("Tier", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Kind")
    table.add_column("Requires", style="muted")
    table.add_column("Description")

    for index, tier in enumerate(tiers):
        for provisioning_step in tier:
            name = provisioning_step.name
            if name in skipped:
                name = f"[muted]{name} (skipped)[/muted]"
            table.add_row(
                str(index),
                name,
                provisioning_step.kind.value,
                ", ".join(provisioning_step.requires) or "-",
                provisioning_step.description,
            )

    console.print(table)


def status_table(statuses: list[ResourceStatus]) -> None:
    """Print the read-back state of live resources."""
    table = Table(title="Cluster resources", header_style="bold")
    table.add_column("Kind")
    table.add_column("Name", style="cyan")
    table.add_column("State")
    table.add_column("Detail", style="muted")

    for status in statuses:
        state = "[success]ready[/success]" if status.ready else "[error]not ready[/error]"
        table.add_row(status.kind, status.name, state, escape(status.detail))

    console.print(table)


def newline() -> None:
    """Print an empty line."""
    console.print()
