"""Time-of-day helpers for instrumentation log timestamps."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

# Logs carry only the time of day; every instant is anchored on this date.
# Recordings that cross midnight are not supported.
NOMINAL_DATE = date(2014, 1, 1)

_ONE_MICROSECOND = timedelta(microseconds=1)


def parse_timestamp(text: str) -> datetime:
    """Parse an ``HH:MM:SS.mmm`` string into an instant on the nominal date."""
    parsed = datetime.strptime(text.strip(), "%H:%M:%S.%f")
    return datetime.combine(NOMINAL_DATE, parsed.time())


def delta_ms(start: datetime, end: datetime) -> int:
    """Milliseconds from ``start`` to ``end``, truncated toward zero."""
    micros = (end - start) // _ONE_MICROSECOND
    if micros < 0:
        return -(-micros // 1000)
    return micros // 1000


def add_ms(instant: datetime, duration_ms: int | None) -> datetime:
    if duration_ms is None:
        return instant
    return instant + timedelta(milliseconds=duration_ms)


def format_timestamp(instant: datetime | time | None) -> str:
    """Format an instant as ``HH:MM:SS.mmm``."""
    if instant is None:
        return "-"
    return instant.strftime("%H:%M:%S.%f")[:-3]
