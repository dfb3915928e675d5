"""Pydantic models for the parsed instrumentation log and its statistics."""

from __future__ import annotations

from datetime import datetime
from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ============================================================
# TYPE ALIASES
# ============================================================

SELF_PERIOD_NAME = "#self#"

MillisecondsValue: TypeAlias = int
# object type -> db id -> outcome -> count
CachePointTally: TypeAlias = dict[str, dict[str, dict[str, int]]]


# ============================================================
# PERIOD TREE MODEL
# ============================================================


class Period(BaseModel):
    """A named, timed span recorded within a thread."""

    timestamp: datetime
    duration_ms: MillisecondsValue | None = None
    name: str
    details: str = ""
    level: int = 0
    children: list[Period] = Field(default_factory=list)

    @property
    def group_key(self) -> str:
        """Name plus details, the key periods are aggregated under."""
        if self.details:
            return f"{self.name}, {self.details}"
        return self.name

    @property
    def is_self(self) -> bool:
        return self.name == SELF_PERIOD_NAME


class Thread(BaseModel):
    """One logged unit of work delimited by ``>> THREAD ... <<`` markers.

    Only the period tree is serialized; ``periods_by_level`` and
    ``self_periods`` are indexes over the same Period objects and are rebuilt
    whenever a Thread is validated.
    """

    name: str
    start_line: int
    end_line: int
    first_timestamp: datetime
    last_timestamp: datetime
    duration_ms: MillisecondsValue = 0
    incomplete: bool = False
    periods: list[Period] = Field(default_factory=list)

    periods_by_level: dict[int, list[Period]] = Field(default_factory=dict, exclude=True)
    self_periods: list[Period] = Field(default_factory=list, exclude=True)

    @model_validator(mode="after")
    def _index_periods(self) -> Thread:
        by_level: dict[int, list[Period]] = {}
        self_periods: list[Period] = []
        # Pre-order walk visits periods in the order they were logged.
        stack = list(reversed(self.periods))
        while stack:
            period = stack.pop()
            if period.is_self:
                self_periods.append(period)
            else:
                by_level.setdefault(period.level, []).append(period)
            stack.extend(reversed(period.children))
        self.periods_by_level = dict(sorted(by_level.items()))
        self.self_periods = self_periods
        return self

    def all_periods(self) -> list[Period]:
        """Every explicit (non-self) period of the thread, level by level."""
        return [period for level in self.periods_by_level.values() for period in level]


class InstrumentationLog(BaseModel):
    """The parsed model of one instrumentation log file."""

    threads: list[Thread] = Field(default_factory=list)
    cache_points: CachePointTally = Field(default_factory=dict)
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None
    total_duration_seconds: float = 0.0


# ============================================================
# STATISTICS MODELS
# ============================================================


class GroupStats(BaseModel):
    """Descriptive statistics for periods sharing a group key."""

    model_config = ConfigDict(frozen=True)

    key: str
    count: int
    total: MillisecondsValue
    average: MillisecondsValue
    median: float
    max: MillisecondsValue


class ProfileNode(BaseModel):
    """One line of a hierarchical profile plus the breakdown beneath it."""

    stats: GroupStats
    depth: int
    children: list[ProfileNode] = Field(default_factory=list)


class LevelBreakdown(BaseModel):
    level: int
    total_ms: MillisecondsValue
    groups: list[GroupStats] = Field(default_factory=list)


class ThreadOverview(BaseModel):
    """Summary row of an expensive activity."""

    model_config = ConfigDict(frozen=True)

    name: str
    start_line: int
    duration_ms: MillisecondsValue
    l1_count: int
    l1_time_ms: MillisecondsValue | None
    l2_count: int
    l2_time_ms: MillisecondsValue | None


class CacheRow(BaseModel):
    """Cache outcome totals for an object type or a single object instance."""

    model_config = ConfigDict(frozen=True)

    object_type: str
    db_id: str | None = None
    hits: int = 0
    misses: int = 0
    bypasses: int = 0

    @property
    def label(self) -> str:
        if self.db_id is None:
            return self.object_type
        return f"{self.object_type}.{self.db_id}"


class CacheSummary(BaseModel):
    by_type: list[CacheRow] = Field(default_factory=list)
    by_instance: list[CacheRow] = Field(default_factory=list)
    total_hits: int = 0
    total_misses: int = 0
    total_bypasses: int = 0
    wasted_per_second: float | None = None


class TransactionStats(BaseModel):
    """Statistics row of a named transaction; ``stats`` is None when nothing matched."""

    label: str
    stats: GroupStats | None = None
    tps: float | None = None


# ============================================================
# CONFIGURATION
# ============================================================


class ReportOptions(BaseModel):
    """What the report should contain."""

    top_count: int = Field(default=10, ge=1)
    print_profile: bool = False
    max_depth: int | None = Field(default=None, ge=1)
    print_self_periods: bool = False
    self_period_count: int = Field(default=10, ge=1)
    cache_top_count: int = Field(default=25, ge=1)
    dump_expensive: bool = False
    use_cache: bool = True
    thread_prefixes: list[str] = Field(
        default_factory=lambda: ["WebContainer", "ThreadPool worker"]
    )
