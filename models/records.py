"""Domain models shared across the relays and the aggregation job."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

ONE_HOUR = timedelta(hours=1)


def as_utc(value: datetime) -> datetime:
    """Normalise ``value`` to UTC, treating naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp format: {value!r}") from exc

    return as_utc(parsed)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as an RFC 3339 UTC timestamp with a ``Z`` suffix."""
    return as_utc(value).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class Reading:
    """A single validated reading accepted by a relay."""

    timestamp: datetime
    value: float


@dataclass(slots=True)
class ExportedRow:
    """A reading read back from the analytical store for one window."""

    timestamp: datetime
    value: float

    def to_document(self, value_field: str) -> dict[str, object]:
        return {"timestamp": format_timestamp(self.timestamp), value_field: self.value}


@dataclass(frozen=True, slots=True)
class Window:
    """Half-open hourly interval ``[start, end)`` aligned to the UTC hour."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Window bounds must be timezone-aware.")
        if self.end - self.start != ONE_HOUR:
            raise ValueError(f"Window must span exactly one hour: [{self.start}, {self.end}).")
        end = as_utc(self.end)
        if end != end.replace(minute=0, second=0, microsecond=0):
            raise ValueError(f"Window end {self.end} is not aligned to the hour.")

    def __str__(self) -> str:
        return f"[{format_timestamp(self.start)}, {format_timestamp(self.end)})"


class Watermark(BaseModel):
    """Bounds of the last processed window and when it was processed."""

    model_config = ConfigDict(populate_by_name=True)

    range_start: datetime = Field(..., alias="rangeStart")
    range_end: datetime = Field(..., alias="rangeEnd")
    execution_time: datetime = Field(..., alias="executionTime")

    @field_validator("range_start", "range_end", "execution_time")
    @classmethod
    def _normalise(cls, value: datetime) -> datetime:
        return as_utc(value)

    def to_entity(self) -> dict[str, str]:
        return self.model_dump(mode="json", by_alias=True)
