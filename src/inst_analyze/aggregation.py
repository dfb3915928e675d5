"""Read-only queries over a parsed InstrumentationLog.

None of these functions mutate the model, so they can be issued in any order
against a freshly scanned or an index-restored log.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from statistics import median

from pydantic import BaseModel, ConfigDict

from inst_analyze.models import (
    SELF_PERIOD_NAME,
    CacheRow,
    CacheSummary,
    GroupStats,
    InstrumentationLog,
    LevelBreakdown,
    Period,
    ProfileNode,
    Thread,
    ThreadOverview,
    TransactionStats,
)

# ============================================================
# GROUPING
# ============================================================


def round_half_up(value: float) -> int:
    """Round a non-negative figure with .5 going up."""
    return math.floor(value + 0.5)


def summarize(key: str, periods: Sequence[Period]) -> GroupStats:
    """Count/total/average/median/max of a non-empty group of periods."""
    durations = [period.duration_ms or 0 for period in periods]
    total = sum(durations)
    return GroupStats(
        key=key,
        count=len(durations),
        total=total,
        average=round_half_up(total / len(durations)),
        median=median(durations),
        max=max(durations),
    )


def group_by_key(periods: Iterable[Period]) -> dict[str, list[Period]]:
    """Bucket periods by ``name[, details]`` keeping first-seen order."""
    groups: dict[str, list[Period]] = {}
    for period in periods:
        groups.setdefault(period.group_key, []).append(period)
    return groups


def group_periods(periods: Iterable[Period]) -> list[GroupStats]:
    """Group statistics sorted by total duration, largest first."""
    stats = [summarize(key, members) for key, members in group_by_key(periods).items()]
    return sorted(stats, key=lambda s: s.total, reverse=True)


def build_profile(
    periods: Sequence[Period], max_depth: int | None = None, depth: int = 0
) -> list[ProfileNode]:
    """Hierarchical breakdown of a period tree.

    Each level is grouped, and every group is expanded into the union of its
    members' children. A level made only of #self# time is not expanded.
    """
    if max_depth is not None and depth >= max_depth:
        return []
    groups = group_by_key(periods)
    if not groups or list(groups) == [SELF_PERIOD_NAME]:
        return []

    nodes: list[ProfileNode] = []
    for key, members in sorted(
        groups.items(), key=lambda item: sum(p.duration_ms or 0 for p in item[1]), reverse=True
    ):
        nested = [child for member in members for child in member.children]
        nodes.append(
            ProfileNode(
                stats=summarize(key, members),
                depth=depth,
                children=build_profile(nested, max_depth, depth + 1),
            )
        )
    return nodes


def level_breakdowns(thread: Thread, max_depth: int | None = None) -> list[LevelBreakdown]:
    breakdowns = []
    for level, periods in thread.periods_by_level.items():
        if max_depth is not None and level >= max_depth:
            continue
        breakdowns.append(
            LevelBreakdown(
                level=level,
                total_ms=sum(period.duration_ms or 0 for period in periods),
                groups=group_periods(periods),
            )
        )
    return breakdowns


# ============================================================
# RANKING
# ============================================================


def top_threads(log: InstrumentationLog, prefix: str, count: int) -> list[Thread]:
    """The ``count`` longest threads whose name starts with ``prefix``."""
    matching = [thread for thread in log.threads if thread.name.startswith(prefix)]
    return sorted(matching, key=lambda t: t.duration_ms, reverse=True)[:count]


def top_self_periods(thread: Thread, count: int) -> list[Period]:
    return sorted(thread.self_periods, key=lambda p: p.duration_ms or 0, reverse=True)[:count]


def _level_time(periods: list[Period]) -> int | None:
    if not periods:
        return None
    return sum(period.duration_ms or 0 for period in periods)


def thread_overview(thread: Thread) -> ThreadOverview:
    first_level = thread.periods_by_level.get(0, [])
    second_level = thread.periods_by_level.get(1, [])
    return ThreadOverview(
        name=thread.name,
        start_line=thread.start_line,
        duration_ms=thread.duration_ms,
        l1_count=len(first_level),
        l1_time_ms=_level_time(first_level),
        l2_count=len(second_level),
        l2_time_ms=_level_time(second_level),
    )


# ============================================================
# CACHE STATISTICS
# ============================================================


def _per_second(value: float, log: InstrumentationLog) -> float | None:
    if log.total_duration_seconds <= 0:
        return None
    return value / log.total_duration_seconds


def cache_rows(log: InstrumentationLog) -> list[CacheRow]:
    """One row per (object type, db id) in discovery order."""
    return [
        CacheRow(
            object_type=object_type,
            db_id=db_id,
            hits=outcomes.get("Hits", 0),
            misses=outcomes.get("Misses", 0),
            bypasses=outcomes.get("Bypasses", 0),
        )
        for object_type, by_id in log.cache_points.items()
        for db_id, outcomes in by_id.items()
    ]


def cache_summary(log: InstrumentationLog, count: int) -> CacheSummary:
    """Cache outcomes by object type and the top missed object instances."""
    instances = cache_rows(log)

    totals: dict[str, CacheRow] = {}
    for row in instances:
        current = totals.get(row.object_type) or CacheRow(object_type=row.object_type)
        totals[row.object_type] = CacheRow(
            object_type=row.object_type,
            hits=current.hits + row.hits,
            misses=current.misses + row.misses,
            bypasses=current.bypasses + row.bypasses,
        )

    by_type = sorted(totals.values(), key=lambda r: r.misses, reverse=True)
    by_instance = [
        row for row in sorted(instances, key=lambda r: r.misses, reverse=True) if row.misses > 0
    ][:count]

    total_misses = sum(row.misses for row in instances)
    total_bypasses = sum(row.bypasses for row in instances)
    return CacheSummary(
        by_type=by_type,
        by_instance=by_instance,
        total_hits=sum(row.hits for row in instances),
        total_misses=total_misses,
        total_bypasses=total_bypasses,
        wasted_per_second=_per_second(total_misses + total_bypasses, log),
    )


# ============================================================
# NAMED TRANSACTIONS
# ============================================================

PERSISTENCE_OPERATIONS = frozenset(
    {
        "findByPrimaryKey",
        "findQuietlyByPrimaryKey",
        "bulkFindByPrimaryKey",
        "findByFilter",
        "findSingleByFilter",
        "findAll",
        "save",
    }
)

WORKER_PACKAGE = "com.lombardisoftware.component"


class TransactionCategory(BaseModel):
    """Label plus the predicate selecting the periods it covers."""

    model_config = ConfigDict(frozen=True)

    label: str
    name_prefix: str | None = None
    names: frozenset[str] | None = None
    details_marker: str | None = None

    def matches(self, period: Period) -> bool:
        if self.name_prefix is not None and not period.name.startswith(self.name_prefix):
            return False
        if self.names is not None and period.name not in self.names:
            return False
        if self.details_marker is not None and self.details_marker not in period.details:
            return False
        return True


def _worker(label: str, worker_class: str) -> TransactionCategory:
    return TransactionCategory(
        label=f"    - {label}",
        name_prefix="Do Job",
        details_marker=f"Worker={WORKER_PACKAGE}.{worker_class}",
    )


TRANSACTION_CATEGORIES: tuple[TransactionCategory, ...] = (
    TransactionCategory(label="Task: Resume Workflow Engine", name_prefix="Resume Workflow Engine"),
    TransactionCategory(label="Task: Load Execution Context", name_prefix="Load Execution Context"),
    TransactionCategory(label="Task: Save Execution Context", name_prefix="Save Execution Context"),
    TransactionCategory(
        label="BPD: Load Execution Context",
        name_prefix="findByPrimaryKey",
        details_marker="type=BPDInstanceData",
    ),
    TransactionCategory(
        label="BPD: Save Execution Context",
        name_prefix="save",
        details_marker="type=BPDInstanceData",
    ),
    TransactionCategory(label="PersistenceServices (DB Access)", names=PERSISTENCE_OPERATIONS),
    TransactionCategory(label="    - findByPrimaryKey", name_prefix="findByPrimaryKey"),
    TransactionCategory(label="    - bulkFindByPrimaryKey", name_prefix="bulkFindByPrimaryKey"),
    TransactionCategory(label="    - findByFilter", name_prefix="findByFilter"),
    TransactionCategory(label="    - save", name_prefix="save"),
    TransactionCategory(label="Do Job (Service Step Workers)", name_prefix="Do Job"),
    _worker("ScriptWorker", "twscript.worker.ScriptWorker"),
    _worker("SwitchWorker", "twswitch.worker.SwitchWorker"),
    _worker("CoachWorker", "coach.worker.CoachWorker"),
    _worker("CoachNGWorker", "coachng.worker.CoachNGWorker"),
    _worker("SubProcessWorker", "subprocess.worker.SubProcessWorker"),
    _worker("ExitPointWorker", "exitpoint.worker.ExitPointWorker"),
    _worker("JavaConnectorWorker", "javaconnector.worker.JavaConnectorWorker"),
    _worker("WSConnectorWorker", "wsconnector.worker.WSConnectorWorker"),
    _worker("SCAConnectorWorker", "scaconnector.worker.SCAConnectorWorker"),
    _worker("ILOGDecisionWorker", "ilogrule.worker.ILOGDecisionWorker"),
    TransactionCategory(label="Eval Script", name_prefix="Eval Script"),
)


def transaction_stats(
    log: InstrumentationLog, category: TransactionCategory, periods: Sequence[Period]
) -> TransactionStats:
    matching = [period for period in periods if category.matches(period)]
    if not matching:
        return TransactionStats(label=category.label)
    return TransactionStats(
        label=category.label,
        stats=summarize(category.label, matching),
        tps=_per_second(len(matching), log),
    )


def transaction_summary(
    log: InstrumentationLog,
    categories: Sequence[TransactionCategory] = TRANSACTION_CATEGORIES,
) -> list[TransactionStats]:
    """One row per category over every explicit period of every thread."""
    periods = [period for thread in log.threads for period in thread.all_periods()]
    return [transaction_stats(log, category, periods) for category in categories]
