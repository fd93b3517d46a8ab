"""
CLI: ``cadence run``: run a set of operations until interrupted.
"""

from __future__ import annotations

import asyncio

import typer

from cadence.cli.utils import console, fail, load_target
from cadence.core.errors import CadenceError
from cadence.core.logging import configure_logging
from cadence.core.settings import FailurePolicy, get_settings
from cadence.scheduling import OperationSpec, SchedulingEngine


async def _run_engine(engine: SchedulingEngine, duration: float | None) -> None:
    async with engine:
        if duration is None:
            await engine.join()
        else:
            await asyncio.sleep(duration)
    await engine.drain()


def run(
    target: str = typer.Argument(..., help="Operations to load, as 'module:attribute'"),
    duration: float | None = typer.Option(
        None, "--duration", "-t", min=0, help="Stop after this many seconds"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override CADENCE_LOG_LEVEL"),
    json_logs: bool | None = typer.Option(
        None, "--json-logs/--console-logs", help="Log format (default: JSON when not a TTY)"
    ),
    failure_policy: FailurePolicy | None = typer.Option(None, "--failure-policy"),
    name: str = typer.Option("default", "--name", help="Engine name used in logs"),
) -> None:
    """Run the operations in TARGET until Ctrl+C or --duration elapses.

    Example::

        cadence run myapp.jobs:OPERATIONS
        cadence run myapp.jobs:build_operations --duration 60 --log-level DEBUG
    """
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=json_logs if json_logs is not None else settings.log_json,
        service=settings.service_name,
    )

    try:
        operations: list[OperationSpec] = load_target(target)
        engine = SchedulingEngine(
            operations, failure_policy=failure_policy, settings=settings, name=name
        )
    except CadenceError as e:
        raise fail(e) from e

    console.print(
        f"[bold green]Starting cadence engine[/bold green] {name!r} "
        f"({len(operations)} operations, pools: "
        f"{', '.join(pool.run_mode.value for pool in engine.pools) or 'none'})"
    )
    try:
        asyncio.run(_run_engine(engine, duration))
    except KeyboardInterrupt:
        console.print("\n[yellow]Engine stopped by user[/yellow]")
