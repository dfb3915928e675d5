"""Line classifier for the instrumentation log grammar.

Every log line maps to exactly one event:

- ``>> THREAD <name> <<``                                 -> ThreadStart
- ``HH:MM:SS.mmm <indent>period 12ms 'name' details{``   -> PeriodOpen
- ``HH:MM:SS.mmm <indent>}``                              -> PeriodClose
- ``HH:MM:SS.mmm ... point 'Cache Hits' dbId=1 type=T``   -> CachePoint
- any other timestamped line                              -> TimestampOnly
- everything else                                         -> Unrecognized
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict

from inst_analyze.timestamps import parse_timestamp

INDENT_WIDTH = 3
INCOMPLETE_MARKER = "(incomplete)"

THREAD_PATTERN: re.Pattern[str] = re.compile(r"^>> THREAD\s+(?P<name>.*?)\s+<<")
TIMESTAMP_PATTERN: re.Pattern[str] = re.compile(r"^(?P<timestamp>\d{2}:\d{2}:\d{2}\.\d{3})(?P<rest>.*)")
PERIOD_OPEN_PATTERN: re.Pattern[str] = re.compile(
    r" (?P<indent>\s*)period\s+(?P<duration>\d+ms|\(incomplete\))\s+"
    r"'(?P<name>.*?)'(?P<details>.*)\{"
)
PERIOD_CLOSE_PATTERN: re.Pattern[str] = re.compile(r"^ (?P<indent>\s*)\}\s*$")
CACHE_POINT_PATTERN: re.Pattern[str] = re.compile(
    r"point\s+'Cache (?P<outcome>.+?)'\s+dbId=(?P<db_id>.+?)\s+type=(?P<object_type>.+)\s*$"
)


# ============================================================
# LINE EVENTS
# ============================================================


class ThreadStart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["thread_start"] = "thread_start"
    name: str


class PeriodOpen(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["period_open"] = "period_open"
    timestamp: datetime
    level: int
    duration_ms: int | None
    incomplete: bool
    name: str
    details: str


class PeriodClose(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["period_close"] = "period_close"
    timestamp: datetime


class CachePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cache_point"] = "cache_point"
    timestamp: datetime
    outcome: str
    db_id: str
    object_type: str


class TimestampOnly(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["timestamp_only"] = "timestamp_only"
    timestamp: datetime


class Unrecognized(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unrecognized"] = "unrecognized"


LineEvent: TypeAlias = (
    ThreadStart | PeriodOpen | PeriodClose | CachePoint | TimestampOnly | Unrecognized
)

TimestampedEvent: TypeAlias = PeriodOpen | PeriodClose | CachePoint | TimestampOnly


def classify_line(line: str) -> LineEvent:
    """Classify a raw log line.

    Raises ValueError when a timestamped line carries an invalid time of day.
    """
    line = line.rstrip("\r\n")

    if line.startswith(">>") and (match := THREAD_PATTERN.match(line)):
        return ThreadStart(name=match.group("name"))

    match = TIMESTAMP_PATTERN.match(line)
    if not match:
        return Unrecognized()

    timestamp = parse_timestamp(match.group("timestamp"))
    return classify_timestamped(timestamp, match.group("rest"))


def classify_timestamped(timestamp: datetime, rest: str) -> TimestampedEvent:
    """Classify the part of a timestamped line that follows the timestamp."""
    # Substring guards keep the regexes off the bulk of the lines
    if "period" in rest and (match := PERIOD_OPEN_PATTERN.search(rest)):
        duration = match.group("duration")
        incomplete = duration == INCOMPLETE_MARKER
        return PeriodOpen(
            timestamp=timestamp,
            level=len(match.group("indent")) // INDENT_WIDTH,
            duration_ms=None if incomplete else int(duration.removesuffix("ms")),
            incomplete=incomplete,
            name=match.group("name").strip(),
            details=match.group("details").strip(),
        )

    if "}" in rest and PERIOD_CLOSE_PATTERN.match(rest):
        return PeriodClose(timestamp=timestamp)

    if "point" in rest and (match := CACHE_POINT_PATTERN.search(rest)):
        return CachePoint(
            timestamp=timestamp,
            outcome=match.group("outcome"),
            db_id=match.group("db_id"),
            object_type=match.group("object_type").strip(),
        )

    return TimestampOnly(timestamp=timestamp)
