"""
Recurrence rules for periodic jobs.

Supports a restricted five-field cron syntax (minute, hour, day of month,
month, day of week) and fixed intervals. All schedules are evaluated in UTC.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field, model_validator

from verifyflow.v1.core.exceptions import InvalidRecurrenceError

DEFAULT_CRON = "0 2 * * 0"  # Sundays at 02:00

_FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day of month", 1, 31),
    ("month", 1, 12),
    ("day of week", 0, 7),
)

# A satisfiable rule fires within four years of any instant (Feb 29 included).
_SEARCH_HORIZON = timedelta(days=4 * 366)
_VALIDATION_ANCHOR = datetime(2000, 1, 1, tzinfo=UTC)


def _parse_int(value: str, name: str, expression: str) -> int:
    if not value.isdigit():
        raise InvalidRecurrenceError(
            f"Invalid {name} value '{value}' in cron expression '{expression}'",
            {"cron": expression},
        )
    return int(value)


def _parse_field(raw: str, name: str, lo: int, hi: int, expression: str) -> frozenset[int]:
    values: set[int] = set()
    for part in raw.split(","):
        if not part:
            raise InvalidRecurrenceError(
                f"Empty {name} list item in cron expression '{expression}'",
                {"cron": expression},
            )
        base, _, step_raw = part.partition("/")
        step = 1
        if step_raw:
            step = _parse_int(step_raw, name, expression)
            if step == 0:
                raise InvalidRecurrenceError(
                    f"Step must be positive in {name} of cron expression '{expression}'",
                    {"cron": expression},
                )

        if base == "*":
            start, end = lo, hi
        elif "-" in base:
            first, _, last = base.partition("-")
            start = _parse_int(first, name, expression)
            end = _parse_int(last, name, expression)
        else:
            start = _parse_int(base, name, expression)
            # "5/15" means every 15 starting at 5
            end = hi if step_raw else start

        if not (lo <= start <= hi and lo <= end <= hi) or start > end:
            raise InvalidRecurrenceError(
                f"{name.capitalize()} '{part}' out of range {lo}-{hi} "
                f"in cron expression '{expression}'",
                {"cron": expression},
            )
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]
    dom_restricted: bool
    dow_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        fields = expression.split()
        if len(fields) != 5:
            raise InvalidRecurrenceError(
                f"Cron expression '{expression}' must have 5 fields, got {len(fields)}",
                {"cron": expression},
            )

        parsed = [
            _parse_field(raw, name, lo, hi, expression)
            for raw, (name, lo, hi) in zip(fields, _FIELDS)
        ]
        # 7 is an alias for Sunday
        days_of_week = frozenset(0 if d == 7 else d for d in parsed[4])

        return cls(
            expression=" ".join(fields),
            minutes=parsed[0],
            hours=parsed[1],
            days_of_month=parsed[2],
            months=parsed[3],
            days_of_week=days_of_week,
            dom_restricted=not fields[2].startswith("*"),
            dow_restricted=not fields[4].startswith("*"),
        )

    def _day_matches(self, moment: datetime) -> bool:
        dom_ok = moment.day in self.days_of_month
        dow_ok = moment.isoweekday() % 7 in self.days_of_week
        # Both day fields restricted means either may match; a starred field
        # ("*" or "*/n") still filters through its own values
        if self.dom_restricted and self.dow_restricted:
            return dom_ok or dow_ok
        return dom_ok and dow_ok

    def next_after(self, after: datetime) -> datetime:
        """First matching minute strictly after ``after``."""
        candidate = after.astimezone(UTC).replace(second=0, microsecond=0) + timedelta(
            minutes=1
        )
        horizon = candidate + _SEARCH_HORIZON

        while candidate < horizon:
            if candidate.month not in self.months:
                year = candidate.year + (candidate.month // 12)
                month = candidate.month % 12 + 1
                candidate = candidate.replace(
                    year=year, month=month, day=1, hour=0, minute=0
                )
                continue
            if not self._day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate

        raise InvalidRecurrenceError(
            f"Cron expression '{self.expression}' never fires",
            {"cron": self.expression},
        )


class RecurrenceRule(BaseModel):
    """Either a cron expression or a fixed interval, validated on construction."""

    cron: str | None = Field(default=None, description="Five-field cron expression (UTC)")
    every_ms: int | None = Field(
        default=None, ge=1000, description="Fixed interval in milliseconds"
    )

    @model_validator(mode="after")
    def _check_rule(self) -> "RecurrenceRule":
        if (self.cron is None) == (self.every_ms is None):
            raise InvalidRecurrenceError(
                "Recurrence needs exactly one of 'cron' or 'every_ms'",
                {"cron": self.cron, "every_ms": self.every_ms},
            )
        if self.cron is not None:
            schedule = CronSchedule.parse(self.cron)
            schedule.next_after(_VALIDATION_ANCHOR)
            self.cron = schedule.expression
        return self

    @classmethod
    def weekly_default(cls) -> "RecurrenceRule":
        return cls(cron=DEFAULT_CRON)

    def next_fire(self, after: datetime) -> datetime:
        """Next fire time strictly after ``after``."""
        if self.cron is not None:
            return CronSchedule.parse(self.cron).next_after(after)

        # Intervals align to multiples of the period since the epoch
        after_ms = int(after.timestamp() * 1000)
        next_ms = (after_ms // self.every_ms + 1) * self.every_ms
        return datetime.fromtimestamp(next_ms / 1000, UTC)
