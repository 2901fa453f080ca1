"""
Fire specs: absolute one-off deadlines and 5-field crontab expressions.
One-off jobs are never expressed as cron (a date turned into "m h dom mon dow" repeats yearly).
Cron arithmetic is delegated to APScheduler's CronTrigger.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Set, Union

from apscheduler.triggers.cron import CronTrigger

from app.errors import InvalidScheduleError

# Crontab weekdays start at Sunday=0 (7 is Sunday too); APScheduler counts from Monday=0.
# Day-of-week fields are rewritten as names, which both agree on.
_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


@dataclass(frozen=True)
class OneOff:
    """Fire once at an absolute instant."""

    at: datetime

    kind = "one_off"


@dataclass(frozen=True)
class Cron:
    """Fire on every match of a crontab expression (minute hour day-of-month month day-of-week)."""

    expression: str
    timezone: str = "UTC"

    kind = "cron"

    def trigger(self) -> CronTrigger:
        return parse_cron(self.expression, self.timezone)


FireSpec = Union[OneOff, Cron]


def _dow_value(token: str) -> int:
    token = token.strip().lower()
    if token in _DOW_NAMES:
        return _DOW_NAMES.index(token)
    value = int(token)
    if not 0 <= value <= 7:
        raise ValueError(f"day_of_week out of range: {token}")
    return value


def _translate_day_of_week(field: str) -> str:
    if field in ("*", "?"):
        return "*"
    days: Set[int] = set()
    for part in field.split(","):
        span, _, step = part.partition("/")
        step_n = int(step) if step else 1
        if step_n < 1:
            raise ValueError(f"invalid step: {part}")
        if span == "*":
            start, end = 0, 6
        elif "-" in span:
            first, last = span.split("-", 1)
            start, end = _dow_value(first), _dow_value(last)
        else:
            start = _dow_value(span)
            end = 6 if step else start
        if start > end:
            raise ValueError(f"invalid range: {part}")
        days.update(d % 7 for d in range(start, end + 1, step_n))
    return ",".join(_DOW_NAMES[d] for d in sorted(days))


def parse_cron(expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Parse a 5-field crontab expression; InvalidScheduleError if malformed.

    When both day-of-month and day-of-week are restricted, a time matches only if BOTH match
    (CronTrigger semantics). Classic crontab fires when EITHER matches, so "0 9 13 * 5" means
    "Friday the 13th" here, not "every 13th and every Friday". Use two jobs for the OR reading.
    """
    fields = (expression or "").split()
    if len(fields) != 5:
        raise InvalidScheduleError(
            "invalid_cron_expression",
            detail=f"cron expression must have 5 fields, got {len(fields)}",
            expression=expression,
        )
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except (ValueError, TypeError) as e:
        raise InvalidScheduleError(
            "invalid_cron_expression",
            detail=f"invalid cron expression: {e}",
            expression=expression,
        ) from e


def normalize_cron(expression: str) -> str:
    """Validate and return the expression with single spaces between fields."""
    parse_cron(expression)
    return " ".join(expression.split())


def next_fire_time(spec: FireSpec, after: datetime) -> Optional[datetime]:
    """
    Next instant strictly after `after`, or None when the spec never fires again.
    For a one-off that is simply its deadline (if still ahead).
    """
    if isinstance(spec, OneOff):
        return spec.at if spec.at > after else None
    # CronTrigger returns times >= now; nudge past `after` so a fire time is never repeated.
    return spec.trigger().get_next_fire_time(None, after + timedelta(microseconds=1))
