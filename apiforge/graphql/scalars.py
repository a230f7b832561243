"""Custom GraphQL scalars."""

from datetime import timedelta
from typing import NewType

import strawberry
from pydantic import TypeAdapter

_timedelta_adapter = TypeAdapter(timedelta)


def serialize_timespan(value: timedelta) -> str:
    """Render a duration as ISO 8601 (``PT4H``, ``P1DT30M``)."""
    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    date_part = f"{days}D" if days else ""
    time_part = "".join(
        f"{amount}{unit}" for amount, unit in ((hours, "H"), (minutes, "M"), (seconds, "S")) if amount
    )
    if not date_part and not time_part:
        return "PT0S"
    return f"{sign}P{date_part}" + (f"T{time_part}" if time_part else "")


def parse_timespan(value: str) -> timedelta:
    return _timedelta_adapter.validate_python(value)


TimeSpan = strawberry.scalar(
    NewType("TimeSpan", timedelta),
    serialize=serialize_timespan,
    parse_value=parse_timespan,
    description="A duration in ISO 8601 format, e.g. PT4H30M.",
)

__all__ = ["TimeSpan", "parse_timespan", "serialize_timespan"]
