"""Rich rendering of the analysis report."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import TextIO

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from inst_analyze.aggregation import (
    build_profile,
    cache_summary,
    level_breakdowns,
    round_half_up,
    thread_overview,
    top_self_periods,
    transaction_summary,
)
from inst_analyze.models import (
    CacheSummary,
    GroupStats,
    InstrumentationLog,
    LevelBreakdown,
    Period,
    ProfileNode,
    ReportOptions,
    Thread,
    TransactionStats,
)
from inst_analyze.timestamps import add_ms, format_timestamp

PLACEHOLDER = "-"
REPORT_WIDTH = 155

INST_ANALYZE_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)

console = Console(theme=INST_ANALYZE_THEME)


def report_console(file: TextIO) -> Console:
    """Plain-text console writing a fixed-width report into ``file``."""
    return Console(
        file=file,
        theme=INST_ANALYZE_THEME,
        width=REPORT_WIDTH,
        color_system=None,
        force_terminal=False,
        highlight=False,
        emoji=False,
    )


def report_path(log_file: Path) -> Path:
    """``<dir>/<log stem>.report.txt``."""
    return log_file.with_name(log_file.stem + ".report.txt")


# ============================================================
# ROW BUILDERS
# ============================================================


def format_rate(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{value:.3f}"


def format_ms(value: int | float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return str(round_half_up(value))


def build_header_rows(log: InstrumentationLog, log_file: Path) -> list[tuple[str, str]]:
    return [
        ("Instrumentation log", str(log_file)),
        ("Instrumentation log started at", format_timestamp(log.first_timestamp)),
        ("Instrumentation log ended at", format_timestamp(log.last_timestamp)),
        ("Recording duration (secs)", f"{log.total_duration_seconds:.3f}"),
        ("Activities recorded", str(len(log.threads))),
        ("Report generated on", datetime.now().isoformat(timespec="seconds")),
    ]


def build_group_row(stats: GroupStats) -> tuple[str, str, str, str, str, str]:
    return (
        str(stats.total),
        str(stats.average),
        format_ms(stats.median),
        str(stats.max),
        str(stats.count),
        stats.key,
    )


def build_transaction_row(row: TransactionStats) -> tuple[str, ...]:
    if row.stats is None:
        return (row.label, *([PLACEHOLDER] * 6))
    stats = row.stats
    return (
        row.label,
        str(stats.count),
        str(stats.average),
        format_ms(stats.median),
        str(stats.max),
        str(stats.total),
        format_rate(row.tps),
    )


def build_profile_lines(nodes: Sequence[ProfileNode]) -> list[str]:
    """Indented ``total ms - key [cnt,med,max]`` lines, depth first."""
    lines: list[str] = []
    for node in nodes:
        stats = node.stats
        lines.append(
            "|    " * node.depth
            + f"{stats.total} ms - {stats.key} "
            + f"[cnt={stats.count},med={format_ms(stats.median)}ms,max={stats.max}ms]"
        )
        lines.extend(build_profile_lines(node.children))
    return lines


def build_self_period_rows(periods: Sequence[Period]) -> list[tuple[str, str, str]]:
    return [
        (
            format_timestamp(period.timestamp),
            format_timestamp(add_ms(period.timestamp, period.duration_ms)),
            format_ms(period.duration_ms),
        )
        for period in periods
    ]


# ============================================================
# TABLES
# ============================================================


def _add_row(table: Table, *cells: str) -> None:
    # Log text may contain square brackets, keep it out of markup parsing.
    table.add_row(*(Text(cell) for cell in cells))


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        _add_row(table, label, value)
    return table


def create_transactions_table(rows: Sequence[TransactionStats]) -> Table:
    table = Table(title="System transactions summary: Key performance points", title_justify="left")
    table.add_column("Transaction name", style="label", min_width=40)
    for header in ("Count", "Average (ms)", "Median (ms)", "Max (ms)", "Total (ms)", "TPS"):
        table.add_column(header, justify="right", style="metric")
    for row in rows:
        _add_row(table, *build_transaction_row(row))
    return table


def create_cache_type_table(summary: CacheSummary) -> Table:
    table = Table(
        title="Cache Statistics: Summary by persistent object type",
        title_justify="left",
        show_footer=True,
    )
    table.add_column("Object type", footer="- Total -", style="label")
    table.add_column("Cache Misses", footer=str(summary.total_misses), justify="right")
    table.add_column("Cache Bypasses", footer=str(summary.total_bypasses), justify="right")
    table.add_column("Cache Hits", footer=str(summary.total_hits), justify="right")
    for row in summary.by_type:
        _add_row(table, row.label, str(row.misses), str(row.bypasses), str(row.hits))
    return table


def create_cache_instance_table(summary: CacheSummary, count: int) -> Table:
    table = Table(
        title=f"Cache Statistics: Top {count} cache misses by persistent object instances",
        title_justify="left",
    )
    table.add_column("Object ID", style="label", min_width=40)
    for header in ("Cache Misses", "Cache Bypasses", "Cache Hits"):
        table.add_column(header, justify="right")
    for row in summary.by_instance:
        _add_row(table, row.label, str(row.misses), str(row.bypasses), str(row.hits))
    return table


def create_expensive_overview_table(prefix: str, threads: Sequence[Thread], count: int) -> Table:
    table = Table(
        title=f"Top {count} Expensive Activities: Overview for {prefix}", title_justify="left"
    )
    table.add_column("Duration (ms)", justify="right", style="metric")
    table.add_column("Thread Name", style="label")
    for header in ("ActivityID", "L1 Periods", "L1 Time (ms)", "L2 Periods", "L2 Time (ms)"):
        table.add_column(header, justify="right")
    for thread in threads:
        overview = thread_overview(thread)
        _add_row(
            table,
            str(overview.duration_ms),
            overview.name,
            str(overview.start_line),
            str(overview.l1_count),
            format_ms(overview.l1_time_ms),
            str(overview.l2_count),
            format_ms(overview.l2_time_ms),
        )
    return table


def create_level_breakdown_table(breakdown: LevelBreakdown) -> Table:
    table = Table(
        title=(
            f"L{breakdown.level + 1} periods breakdown, "
            f"total recorded duration = {breakdown.total_ms} ms"
        ),
        title_justify="left",
    )
    for header in ("Total", "Average", "Median", "Max", "Count"):
        table.add_column(header, justify="right")
    table.add_column("Details", style="label")
    if not breakdown.groups:
        _add_row(table, *([PLACEHOLDER] * 6))
    for stats in breakdown.groups:
        _add_row(table, *build_group_row(stats))
    return table


def create_self_periods_table(periods: Sequence[Period]) -> Table:
    table = Table()
    table.add_column("Start time")
    table.add_column("End time")
    table.add_column("Duration (ms)", justify="right")
    for row in build_self_period_rows(periods):
        _add_row(table, *row)
    return table


def activity_title(thread: Thread) -> str:
    return f"ActivityID = {thread.start_line}, Thread Name = {thread.name}"


def create_thread_details(thread: Thread, options: ReportOptions) -> RenderableType:
    """Level breakdowns, hierarchical profile and (optionally) top self periods."""
    parts: list[RenderableType] = [
        Rule(Text(f"{thread.duration_ms} ms | {activity_title(thread)}"), align="left")
    ]
    for breakdown in level_breakdowns(thread, options.max_depth):
        parts.append(create_level_breakdown_table(breakdown))

    parts.append(Text(f"\nDetailed profile for {activity_title(thread)}\n", style="header"))
    profile = build_profile(thread.periods, options.max_depth)
    parts.append(Text("\n".join(build_profile_lines(profile))))

    if options.print_self_periods:
        parts.append(
            Text(
                f"\nTop {options.self_period_count} of self periods for {activity_title(thread)}\n",
                style="header",
            )
        )
        parts.append(
            create_self_periods_table(top_self_periods(thread, options.self_period_count))
        )
    return Group(*parts)


# ============================================================
# REPORT
# ============================================================


def render_report(
    out: Console,
    log: InstrumentationLog,
    log_file: Path,
    options: ReportOptions,
    expensive: dict[str, list[Thread]],
) -> None:
    """Render the full report; ``expensive`` maps thread prefixes to ranked threads."""
    out.print(
        Panel(
            create_key_value_table("Instrumentation Log Report", build_header_rows(log, log_file)),
            style="header",
        )
    )
    out.print()

    out.print(create_transactions_table(transaction_summary(log)))
    out.print()

    summary = cache_summary(log, options.cache_top_count)
    out.print(create_cache_type_table(summary))
    out.print(
        create_key_value_table(
            "", [("Wasting DB, transactions/sec", format_rate(summary.wasted_per_second))]
        )
    )
    out.print()
    out.print(create_cache_instance_table(summary, options.cache_top_count))
    out.print()

    for prefix, threads in expensive.items():
        out.print(create_expensive_overview_table(prefix, threads, options.top_count))
        out.print()

    if options.print_profile:
        for prefix, threads in expensive.items():
            out.print(
                Rule(
                    f"Top {options.top_count} Expensive Activities: Details for {prefix}",
                    style="header",
                )
            )
            for thread in threads:
                out.print(create_thread_details(thread, options))
                out.print()
