"""Planning of the next hourly window to aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from models.records import ONE_HOUR, Watermark, Window, as_utc


class NoWindowYet(Exception):
    """The hour following the watermark has not fully elapsed."""

    def __init__(self, next_end: datetime, now: datetime) -> None:
        super().__init__(f"Window ending at {next_end.isoformat()} is not complete at {now.isoformat()}.")
        self.next_end = next_end
        self.now = now


def truncate_to_hour(value: datetime) -> datetime:
    return as_utc(value).replace(minute=0, second=0, microsecond=0)


def compute_next_window(last_watermark: Optional[Watermark], now: datetime) -> Window:
    """Return the window directly after ``last_watermark``.

    Without a watermark the most recent complete hour before ``now`` is
    returned. Raises ``NoWindowYet`` when the next hour ends after ``now``.
    """

    now = as_utc(now)
    if last_watermark is None:
        end = truncate_to_hour(now)
    else:
        end = truncate_to_hour(last_watermark.range_end + ONE_HOUR)
        if end > now:
            raise NoWindowYet(next_end=end, now=now)

    return Window(start=end - ONE_HOUR, end=end)
