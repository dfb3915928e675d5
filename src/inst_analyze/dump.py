"""Copy the raw log lines of selected threads into separate files."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import NamedTuple

_UNSAFE_CHARS = re.compile(r"[^a-z0-9\-]+", re.IGNORECASE)


class LineRange(NamedTuple):
    start_line: int
    end_line: int
    name: str


def thread_dump_path(log_file: Path, name: str, start_line: int) -> Path:
    """``<log file>.<sanitized thread name>.<start line>.thread.txt``."""
    safe_name = _UNSAFE_CHARS.sub("_", name)
    return log_file.with_name(f"{log_file.name}.{safe_name}.{start_line}.thread.txt")


def dump_threads(
    log_file: Path,
    ranges: Iterable[LineRange],
    on_line: Callable[[int], None] | None = None,
) -> list[Path]:
    """Copy every line range into its own file in a single pass over the log.

    ``on_line`` is called with the length of each line read, for progress
    reporting.
    """
    pending = sorted(set(ranges))
    written: list[Path] = []
    if not pending:
        return written

    index = 0
    out = None
    try:
        with log_file.open(encoding="utf-8", errors="replace", newline="") as f:
            for line_number, line in enumerate(f, start=1):
                if on_line is not None:
                    on_line(len(line))
                if index >= len(pending):
                    break
                current = pending[index]
                if line_number < current.start_line:
                    continue
                if out is None:
                    target = thread_dump_path(log_file, current.name, current.start_line)
                    out = target.open("w", encoding="utf-8", newline="")
                    written.append(target)
                out.write(line)
                if line_number >= current.end_line:
                    out.close()
                    out = None
                    index += 1
    finally:
        if out is not None:
            out.close()
    return written
