"""
CLI: ``cadence next`` and ``cadence inspect``: schedule introspection.
"""

from __future__ import annotations

from datetime import timedelta
from zoneinfo import ZoneInfo

import typer

from cadence.cli.utils import console, fail, load_target, print_json, print_table
from cadence.core.errors import CadenceError
from cadence.core.settings import get_settings
from cadence.core.timestamps import MAX_INSTANT, to_iso8601, utc_now
from cadence.scheduling import CroniterEvaluator, build_pools


def next_occurrences(
    expression: str = typer.Argument(..., help="Cron expression (quote it)"),
    seconds: bool = typer.Option(False, "--seconds", "-s", help="Six fields, seconds first"),
    tz: str | None = typer.Option(None, "--tz", help="IANA time zone (default: settings)"),
    count: int = typer.Option(5, "--count", "-n", min=1, max=1000),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the upcoming occurrences of a cron expression."""
    timezone = tz or get_settings().default_timezone
    evaluator = CroniterEvaluator()
    try:
        evaluator.validate(expression, seconds, timezone)
        upcoming = evaluator.occurrences(expression, seconds, timezone, utc_now(), count)
    except CadenceError as e:
        raise fail(e) from e

    zone = ZoneInfo(timezone)
    rows = [
        {"#": i, "utc": to_iso8601(at), "local": at.astimezone(zone).isoformat()}
        for i, at in enumerate(upcoming, start=1)
    ]
    if json_out:
        print_json({"expression": expression, "timezone": timezone, "occurrences": rows})
        return
    print_table(rows, title=f"{expression}  ({timezone})")
    if len(upcoming) < count:
        console.print("[dim]Expression has no further occurrences.[/dim]")


def inspect_target(
    target: str = typer.Argument(..., help="Operations to load, as 'module:attribute'"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show how a set of operations is partitioned into pools."""
    settings = get_settings()
    boundary = timedelta(seconds=settings.cron_boundary_seconds)
    evaluator = CroniterEvaluator()
    try:
        operations = load_target(target)
        for spec in operations:
            if spec.is_cron:
                evaluator.validate(
                    spec.schedule.expression, spec.schedule.has_seconds, spec.schedule.timezone
                )
        pools = build_pools(operations, utc_now(), evaluator, boundary)
    except CadenceError as e:
        raise fail(e) from e

    rows = []
    for pool in pools:
        for index, state in enumerate(pool.operations):
            group = pool.sync_group_of(index)
            rows.append(
                {
                    "pool": pool.run_mode.value,
                    "operation": state.name,
                    "schedule": state.spec.schedule.describe(),
                    "next_run": None if state.next_run == MAX_INSTANT else to_iso8601(state.next_run),
                    "sync_group": None if group is None else ",".join(
                        pool.operations[i].name for i in group
                    ),
                }
            )
    if json_out:
        print_json(rows)
        return
    print_table(rows, title=f"Operations in {target}")
