"""Shared fixtures: sample instrumentation logs written to tmp_path."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from inst_analyze.models import InstrumentationLog
from inst_analyze.scanner import scan_lines

SAMPLE_LOG = """\
>> THREAD WebContainer : 0 <<
10:00:00.000 period 300ms 'Resume Workflow Engine' {
10:00:00.010    period 100ms 'findByPrimaryKey' type=BPDInstanceData{
10:00:00.110    }
10:00:00.120    point 'Cache Misses' dbId=42 type=BPDInstanceData
10:00:00.150    period 50ms 'save' type=BPDInstanceData{
10:00:00.200    }
10:00:00.300 }
>> THREAD ThreadPool worker : 1 <<
10:00:01.000 period 200ms 'Do Job' Worker=com.lombardisoftware.component.twscript.worker.ScriptWorker{
10:00:01.200 }
10:00:01.200 point 'Cache Hits' dbId=42 type=BPDInstanceData
>> THREAD WebContainer : 2 <<
10:00:02.000 period (incomplete) 'findByFilter' type=Task{
"""

RANKING_LOG = """\
>> THREAD WebContainer : 0 <<
10:00:00.000 period 300ms 'a' {
10:00:00.300 }
>> THREAD WebContainer : 1 <<
10:00:01.000 period 100ms 'a' {
10:00:01.100 }
>> THREAD WebContainer : 2 <<
10:00:02.000 period 200ms 'a' {
10:00:02.200 }
"""


def parse(text: str) -> InstrumentationLog:
    return scan_lines(text.splitlines(keepends=True))


@pytest.fixture
def write_log(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write log text to a file whose mtime is safely older than anything written later."""

    def _write(text: str, name: str = "sample.log") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        stat = path.stat()
        os.utime(path, (stat.st_atime - 60, stat.st_mtime - 60))
        return path

    return _write


@pytest.fixture
def sample_log_file(write_log: Callable[[str, str], Path]) -> Path:
    return write_log(SAMPLE_LOG, "sample.log")


@pytest.fixture
def sample_log() -> InstrumentationLog:
    return parse(SAMPLE_LOG)
