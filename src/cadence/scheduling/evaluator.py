"""Cron schedule evaluation.

The engine never parses cron expressions itself; it asks a
:class:`ScheduleEvaluator` for "the next occurrence after T in zone Z".
:class:`CroniterEvaluator` is the default implementation, backed by
``croniter``.

Field layout
────────────
::

    standard (5 fields)      minute hour day-of-month month day-of-week
    has_seconds (6 fields)   second minute hour day-of-month month day-of-week

Seconds come first when present, e.g. ``"*/10 * * * * *"`` fires every
ten seconds.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

from cadence.core.errors import InvalidScheduleError
from cadence.core.logging import get_logger
from cadence.core.timestamps import ensure_utc

logger = get_logger(__name__)


@runtime_checkable
class ScheduleEvaluator(Protocol):
    """Answers "when does this cron expression fire next?"."""

    def validate(self, expression: str, has_seconds: bool, timezone: str) -> None:
        """Raise :class:`InvalidScheduleError` if the schedule is unusable."""
        ...

    def next_occurrence(
        self,
        expression: str,
        has_seconds: bool,
        timezone: str,
        after: datetime,
    ) -> datetime | None:
        """Return the first occurrence strictly after *after* (UTC), or ``None``."""
        ...


def _resolve_zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidScheduleError(f"Unknown timezone: {timezone!r}", cause=e) from e


class CroniterEvaluator:
    """croniter-backed :class:`ScheduleEvaluator`.

    Expressions are evaluated in the schedule's own timezone so DST
    transitions are honoured, and the result is converted back to UTC.
    """

    name = "croniter"

    def validate(self, expression: str, has_seconds: bool, timezone: str) -> None:
        expected = 6 if has_seconds else 5
        fields = expression.split()
        if len(fields) != expected:
            raise InvalidScheduleError(
                f"Expected {expected} fields for a {'seconds' if has_seconds else 'standard'} "
                f"cron expression, got {len(fields)}",
                expression=expression,
            )
        _resolve_zone(timezone)
        try:
            croniter(expression, datetime.now(UTC), second_at_beginning=has_seconds)
        except (CroniterBadCronError, ValueError, KeyError) as e:
            raise InvalidScheduleError(
                f"Invalid cron expression: {expression!r}", expression=expression, cause=e
            ) from e

    def next_occurrence(
        self,
        expression: str,
        has_seconds: bool,
        timezone: str,
        after: datetime,
    ) -> datetime | None:
        zone = _resolve_zone(timezone)
        start = ensure_utc(after).astimezone(zone)
        try:
            occurrence = croniter(
                expression, start, second_at_beginning=has_seconds
            ).get_next(datetime)
        except CroniterBadDateError:
            logger.debug("evaluator.exhausted", expression=expression, after=after.isoformat())
            return None
        return ensure_utc(occurrence)

    def occurrences(
        self,
        expression: str,
        has_seconds: bool,
        timezone: str,
        after: datetime,
        count: int,
    ) -> list[datetime]:
        """Return up to *count* consecutive occurrences after *after*."""
        result: list[datetime] = []
        cursor = after
        while len(result) < count:
            nxt = self.next_occurrence(expression, has_seconds, timezone, cursor)
            if nxt is None:
                break
            result.append(nxt)
            cursor = nxt
        return result
