"""Colorized console output for replconfig commands.

Thin wrapper around :mod:`rich`.  Status lines go to stderr so rendered
documents and YAML written to stdout stay clean for piping.
"""

from __future__ import annotations

from typing import Dict, List, Mapping

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from replconfig.config.models import ItemValue

console = Console(stderr=True, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_WARN = "[bold yellow]⚠[/]"

# ── Status lines ───────────────────────────────────────────────────────────


def ok(msg: str) -> None:
    """Green checkmark + message."""
    console.print(f"  {_PASS} {msg}")


def fail(msg: str) -> None:
    """Red cross + message."""
    console.print(f"  {_FAIL} [red]{msg}[/]")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def error_msg(msg: str) -> None:
    """Bold red error message (not indented)."""
    console.print(f"[bold red]ERROR:[/] {msg}", highlight=False)


def error_panel(title: str, body: str) -> None:
    """Red-bordered error panel."""
    console.print(
        Panel(
            body,
            title=f"[bold red]{title}[/]",
            border_style="red",
            padding=(1, 2),
        )
    )


# ── Tables ─────────────────────────────────────────────────────────────────


def values_table(values: Mapping[str, ItemValue]) -> None:
    """Item name / value / default table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Item")
    table.add_column("Value")
    table.add_column("Default", style="dim")
    for name, iv in values.items():
        table.add_row(name, iv.value_str(), iv.default_str())
    console.print(table)


def graph_table(dependencies: Mapping[str, List[str]], batches: List[List[str]]) -> None:
    """Dependencies per item plus the batch in which each item resolves."""
    batch_of: Dict[str, int] = {name: i for i, batch in enumerate(batches) for name in batch}
    table = Table(show_header=True, header_style="bold")
    table.add_column("Batch", justify="right")
    table.add_column("Item")
    table.add_column("Depends on", style="dim")
    for name in sorted(dependencies, key=lambda n: (batch_of.get(n, len(batches)), n)):
        table.add_row(str(batch_of.get(name, "-")), name, ", ".join(dependencies[name]))
    console.print(table)
