"""
Root Typer application for the cadence CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from cadence.cli.run import run
from cadence.cli.schedule import inspect_target, next_occurrences

app = Typer(
    name="cadence",
    help="cadence: recurring-operation scheduling engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from cadence import __version__

        typer.echo(f"cadence {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cadence CLI: inspect schedules and run operation sets."""


# ── Commands ─────────────────────────────────────────────────────────────

app.command("next")(next_occurrences)
app.command("inspect")(inspect_target)
app.command("run")(run)


if __name__ == "__main__":
    app()
