"""
CLI utility helpers: target loading and output formatting.
"""

from __future__ import annotations

import importlib
import json
from collections.abc import Iterable
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from cadence.core.errors import CadenceError, ConfigError
from cadence.scheduling import OperationSpec

console = Console()
err_console = Console(stderr=True)


# ── Target loading ───────────────────────────────────────────────────────


def load_target(target: str) -> list[OperationSpec]:
    """Import ``module:attribute`` and return its operations.

    The attribute may be a sequence of ``OperationSpec`` or a zero-argument
    callable returning one.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Target must look like 'package.module:attribute', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import module {module_name!r}: {e}", cause=e) from e

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigError(f"{module_name!r} has no attribute {attr!r}", cause=e) from e

    if callable(obj) and not isinstance(obj, OperationSpec):
        obj = obj()
    if isinstance(obj, OperationSpec):
        obj = [obj]
    if not isinstance(obj, Iterable):
        raise ConfigError(f"{target!r} did not produce a sequence of OperationSpec")

    operations = list(obj)
    bad = [type(op).__name__ for op in operations if not isinstance(op, OperationSpec)]
    if bad:
        raise ConfigError(f"{target!r} contains non-OperationSpec items: {', '.join(bad)}")
    return operations


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: CadenceError) -> typer.Exit:
    """Print *error* and return the ``typer.Exit`` to raise."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    return typer.Exit(code=1)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) if v is not None else "" for v in row.values()))
    console.print(table)
