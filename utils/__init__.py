"""Utility modules for cross-cutting concerns."""

from utils.timezone import (
    now_utc,
    to_local,
    local_today,
    as_date,
    day_offset,
    add_years,
    format_us_date,
    format_clock_time,
)
