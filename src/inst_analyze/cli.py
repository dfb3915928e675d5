#!/usr/bin/env python3
"""Instrumentation Log Analyzer for business-process engine traces.

Reads a text instrumentation log and reports:
- Named transaction throughput (workflow engine tasks, persistence, workers)
- Persistence cache efficiency by object type and instance
- The most expensive activities per thread family
- Optional per-activity level breakdowns, hierarchical profiles and self time
- Optional raw-log dumps of the expensive activities

The parsed log is cached beside the input as ``<log>.idx`` and reused until
the log changes.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.text import Text

from inst_analyze import __version__
from inst_analyze.aggregation import top_threads
from inst_analyze.dump import LineRange, dump_threads
from inst_analyze.index_cache import index_path, load_index, save_index
from inst_analyze.models import InstrumentationLog, ReportOptions, Thread
from inst_analyze.report import console, render_report, report_console, report_path
from inst_analyze.scanner import ScanError, scan_file


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    )


def load_or_scan(log_file: Path, options: ReportOptions, verbose: bool = False) -> InstrumentationLog:
    """Restore the model from the index when it is fresh, otherwise scan the log."""
    if options.use_cache:
        cached = load_index(log_file)
        if cached is not None:
            console.print(f"[info]Loaded cached data from {escape(str(index_path(log_file).resolve()))}[/info]")
            return cached
        if verbose:
            console.print("[info]No usable index found, scanning log file[/info]")

    with _progress() as progress:
        with progress.open(
            log_file, "r", encoding="utf-8", errors="replace", description="[cyan]Scanning..."
        ) as stream:
            log = scan_file(log_file, stream)

    try:
        saved = save_index(log_file, log)
        if verbose:
            console.print(f"[info]Index saved to {escape(str(saved))}[/info]")
    except OSError as e:
        console.print(f"[warning]WARNING: could not write index: {escape(str(e))}[/warning]")
    return log


def dump_expensive(log_file: Path, threads: list[Thread]) -> list[Path]:
    ranges = [LineRange(t.start_line, t.end_line, t.name) for t in threads]
    with _progress() as progress:
        task = progress.add_task("[cyan]Dumping...", total=log_file.stat().st_size)
        return dump_threads(log_file, ranges, on_line=lambda size: progress.advance(task, size))


app = typer.Typer(
    name="inst-analyze",
    help="Instrumentation log analyzer: expensive activities, cache statistics and throughput",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.command()
def analyze(
    log_file: Annotated[
        Path,
        typer.Argument(
            help="Instrumentation log file (txt format)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    top: Annotated[
        int,
        typer.Option("--top", "-t", help="Number of Expensive Activities to print", min=1),
    ] = 10,
    prof: Annotated[
        bool,
        typer.Option("--prof", "-p", help="Print Expensive Activities detailed profile"),
    ] = False,
    level: Annotated[
        int | None,
        typer.Option(
            "--level", "-l", help="Expensive Activities detailed profile maximum depth level", min=1
        ),
    ] = None,
    self_periods: Annotated[
        bool,
        typer.Option("--self", "-s", help="Print top self periods"),
    ] = False,
    dump: Annotated[
        bool,
        typer.Option("--dump", "-d", help="Dump each Expensive Activity raw log to separate file"),
    ] = False,
    rescan: Annotated[
        bool,
        typer.Option(
            "--rescan", "-r", help="Do not use cached index and forcibly rescan the log file"
        ),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Report file (default: <log name>.report.txt beside the log)",
            file_okay=True,
            dir_okay=False,
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option("--echo", help="Also print the report to the terminal"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Analyze an instrumentation log file and write a text report."""
    options = ReportOptions(
        top_count=top,
        print_profile=prof,
        max_depth=level,
        print_self_periods=self_periods,
        dump_expensive=dump,
        use_cache=not rescan,
    )

    try:
        log = load_or_scan(log_file, options, verbose)

        if verbose:
            console.print(
                f"[info]{len(log.threads)} complete activities, "
                f"recording duration {log.total_duration_seconds:.3f}s[/info]"
            )

        expensive = {
            prefix: top_threads(log, prefix, options.top_count)
            for prefix in options.thread_prefixes
        }

        target = output or report_path(log_file)
        with target.open("w", encoding="utf-8") as f:
            render_report(report_console(f), log, log_file, options, expensive)
        console.print(f"[success]Report saved to {escape(str(target.resolve()))}[/success]")

        if echo:
            render_report(console, log, log_file, options, expensive)

        if options.dump_expensive:
            selected = [thread for threads in expensive.values() for thread in threads]
            for path in dump_expensive(log_file, selected):
                if verbose:
                    console.print(f"[info]Dumped {escape(str(path))}[/info]")

    except ScanError as e:
        console.print(f"[critical]ERROR: {escape(str(e.cause))}[/critical]")
        console.print(f"[critical]Scanning error at line {e.line_number}, invalid line is:[/critical]")
        console.print(Text(e.line), highlight=False)
        sys.exit(1)
    except Exception as e:
        console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def version() -> None:
    """Display version."""
    console.print(f"inst-analyze {__version__}")


if __name__ == "__main__":
    app()
