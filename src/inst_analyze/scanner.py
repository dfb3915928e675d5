"""Single-pass scanner turning an instrumentation log into an InstrumentationLog."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TextIO

from inst_analyze.grammar import (
    CachePoint,
    PeriodClose,
    PeriodOpen,
    ThreadStart,
    TimestampedEvent,
    Unrecognized,
    classify_line,
)
from inst_analyze.models import (
    SELF_PERIOD_NAME,
    CachePointTally,
    InstrumentationLog,
    Period,
    Thread,
)
from inst_analyze.timestamps import add_ms, delta_ms


class ScanError(ValueError):
    """A timestamped line could not be processed; the scan is aborted."""

    def __init__(self, line_number: int, line: str, cause: Exception) -> None:
        self.line_number = line_number
        self.line = line.rstrip("\r\n")
        self.cause = cause
        super().__init__(f"{cause}\nScanning error at line {line_number}, invalid line is: {self.line}")


class ThreadBuilder:
    """Mutable parse context of the thread currently being scanned."""

    def __init__(self, name: str, start_line: int) -> None:
        self.name = name
        self.start_line = start_line
        self.first_timestamp: datetime | None = None
        self.last_timestamp: datetime | None = None
        self.incomplete = False
        self.periods: list[Period] = []
        # Children lists of the open periods; the bottom entry is the thread's root list.
        self.open_containers: list[list[Period]] = [self.periods]
        self.last_instant: datetime | None = None

    @property
    def has_timestamps(self) -> bool:
        return self.first_timestamp is not None

    def touch(self, timestamp: datetime) -> None:
        if self.first_timestamp is None:
            self.first_timestamp = timestamp
        self.last_timestamp = timestamp

    def record_self_period(self, timestamp: datetime) -> None:
        """Emit a #self# period covering the time since the last open/close."""
        if self.last_instant is not None:
            gap = delta_ms(self.last_instant, timestamp)
            if gap > 0:
                self.open_containers[-1].append(
                    Period(
                        timestamp=self.last_instant,
                        duration_ms=gap,
                        name=SELF_PERIOD_NAME,
                        level=len(self.open_containers) - 1,
                    )
                )
        self.last_instant = timestamp

    def open_period(self, event: PeriodOpen) -> None:
        self.record_self_period(event.timestamp)
        if event.incomplete:
            self.incomplete = True
        period = Period(
            timestamp=event.timestamp,
            duration_ms=event.duration_ms,
            name=event.name,
            details=event.details,
            level=event.level,
        )
        self.open_containers[-1].append(period)
        self.open_containers.append(period.children)

    def close_period(self, event: PeriodClose) -> None:
        self.record_self_period(event.timestamp)
        if len(self.open_containers) == 1:
            raise ValueError("closing brace without an open period")
        self.open_containers.pop()

    def build(self, end_line: int) -> Thread:
        if self.first_timestamp is None or self.last_timestamp is None:
            raise ValueError(f"thread {self.name!r} has no timestamped lines")
        return Thread(
            name=self.name,
            start_line=self.start_line,
            end_line=end_line,
            first_timestamp=self.first_timestamp,
            last_timestamp=self.last_timestamp,
            duration_ms=delta_ms(self.first_timestamp, self.last_timestamp),
            incomplete=self.incomplete,
            periods=self.periods,
        )


class LogScanner:
    """Line-by-line state machine building the period trees of every thread."""

    def __init__(self) -> None:
        self.threads: list[Thread] = []
        self.cache_points: CachePointTally = {}
        self.line_number = 0
        self._current: ThreadBuilder | None = None

    def feed(self, line: str) -> None:
        """Process the next line of the log."""
        self.line_number += 1
        try:
            event = classify_line(line)
            if isinstance(event, Unrecognized):
                return
            if isinstance(event, ThreadStart):
                self._close_thread(self.line_number - 1)
                self._current = ThreadBuilder(event.name, self.line_number)
                return
            self._process_timestamped(event)
        except ValueError as e:
            raise ScanError(self.line_number, line, e) from e

    def _process_timestamped(self, event: TimestampedEvent) -> None:
        thread = self._current
        if thread is None:
            raise ValueError("timestamped line outside of any thread")
        thread.touch(event.timestamp)

        if isinstance(event, PeriodOpen):
            thread.open_period(event)
        elif isinstance(event, PeriodClose):
            thread.close_period(event)
        elif isinstance(event, CachePoint):
            self._count_cache_point(event)

    def _count_cache_point(self, event: CachePoint) -> None:
        by_id = self.cache_points.setdefault(event.object_type, {})
        outcomes = by_id.setdefault(event.db_id, {})
        outcomes[event.outcome] = outcomes.get(event.outcome, 0) + 1

    def _close_thread(self, end_line: int) -> None:
        thread = self._current
        if thread is not None and thread.has_timestamps:
            self.threads.append(thread.build(end_line))
        self._current = None

    def finish(self) -> InstrumentationLog:
        """Close the last thread and compute the model-level figures."""
        self._close_thread(self.line_number)

        first_timestamp, last_timestamp = recording_bounds(self.threads)
        total_duration_seconds = 0.0
        if first_timestamp is not None and last_timestamp is not None:
            total_duration_seconds = delta_ms(first_timestamp, last_timestamp) / 1000

        return InstrumentationLog(
            threads=[thread for thread in self.threads if not thread.incomplete],
            cache_points=self.cache_points,
            first_timestamp=first_timestamp,
            last_timestamp=last_timestamp,
            total_duration_seconds=total_duration_seconds,
        )


def recording_bounds(threads: list[Thread]) -> tuple[datetime | None, datetime | None]:
    """Earliest period start and latest period end over all threads.

    Period ends count towards the window, unlike start-only bounds, so a log
    whose last event is a closing brace still covers that time.
    """
    first: datetime | None = None
    last: datetime | None = None
    for thread in threads:
        for period in thread.all_periods() + thread.self_periods:
            end = add_ms(period.timestamp, period.duration_ms)
            if first is None or period.timestamp < first:
                first = period.timestamp
            if last is None or end > last:
                last = end
    return first, last


def scan_lines(lines: Iterable[str]) -> InstrumentationLog:
    scanner = LogScanner()
    for line in lines:
        scanner.feed(line)
    return scanner.finish()


def scan_file(log_file: Path, stream: TextIO | None = None) -> InstrumentationLog:
    """Scan a log file, optionally through an already opened text stream."""
    if stream is not None:
        return scan_lines(stream)
    with log_file.open(encoding="utf-8", errors="replace") as f:
        return scan_lines(f)
