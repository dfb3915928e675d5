"""On-disk index of a scanned log, reused while the log is unchanged."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from inst_analyze.models import InstrumentationLog

INDEX_SUFFIX = ".idx"


def index_path(log_file: Path) -> Path:
    """The index artifact lives beside the log: ``<log file>.idx``."""
    return log_file.with_name(log_file.name + INDEX_SUFFIX)


def is_index_fresh(log_file: Path) -> bool:
    """True when an index exists and was written after the log was last modified."""
    index_file = index_path(log_file)
    try:
        return index_file.stat().st_mtime > log_file.stat().st_mtime
    except OSError:
        return False


def load_index(log_file: Path) -> InstrumentationLog | None:
    """Return the cached model, or None when the log has to be rescanned."""
    if not is_index_fresh(log_file):
        return None
    try:
        return InstrumentationLog.model_validate_json(index_path(log_file).read_bytes())
    except (OSError, ValidationError, ValueError):
        return None


def save_index(log_file: Path, log: InstrumentationLog) -> Path:
    """Write the model beside the log. Raises OSError when the directory is not writable."""
    index_file = index_path(log_file)
    index_file.write_text(log.model_dump_json(), encoding="utf-8")
    return index_file
