import pytest

from inst_analyze.grammar import (
    CachePoint,
    PeriodClose,
    PeriodOpen,
    ThreadStart,
    TimestampOnly,
    Unrecognized,
    classify_line,
)
from inst_analyze.timestamps import parse_timestamp


def test_thread_marker():
    event = classify_line(">> THREAD WebContainer : 7 <<\n")
    assert event == ThreadStart(name="WebContainer : 7")


def test_period_open_top_level():
    event = classify_line("10:00:00.000 period 50ms 'findByPrimaryKey' type=Foo{\n")
    assert isinstance(event, PeriodOpen)
    assert event.timestamp == parse_timestamp("10:00:00.000")
    assert event.level == 0
    assert event.duration_ms == 50
    assert not event.incomplete
    assert event.name == "findByPrimaryKey"
    assert event.details == "type=Foo"


def test_period_open_indentation_gives_level():
    event = classify_line("10:00:00.000       period 3ms 'Eval Script' {")
    assert isinstance(event, PeriodOpen)
    assert event.level == 2
    assert event.details == ""


def test_period_open_incomplete():
    event = classify_line("10:00:00.000    period (incomplete) 'X' {")
    assert isinstance(event, PeriodOpen)
    assert event.incomplete
    assert event.duration_ms is None
    assert event.level == 1


def test_period_details_run_to_last_brace():
    event = classify_line("10:00:00.000 period 1ms 'Do Job' args={a=1}, Worker=W{")
    assert isinstance(event, PeriodOpen)
    assert event.details == "args={a=1}, Worker=W"


def test_period_close():
    assert isinstance(classify_line("10:00:00.050    }\n"), PeriodClose)
    assert isinstance(classify_line("10:00:00.050 }"), PeriodClose)


def test_cache_point():
    event = classify_line("10:00:00.010    point 'Cache Misses' dbId=42 type=BPDInstanceData \n")
    assert event == CachePoint(
        timestamp=parse_timestamp("10:00:00.010"),
        outcome="Misses",
        db_id="42",
        object_type="BPDInstanceData",
    )


def test_other_timestamped_line():
    assert isinstance(classify_line("10:00:00.010 something else"), TimestampOnly)


@pytest.mark.parametrize("line", ["", "Instrumentation log v1", "   }", "10:00 period 1ms 'x' {"])
def test_unrecognized(line):
    assert isinstance(classify_line(line), Unrecognized)


def test_invalid_time_of_day_raises():
    with pytest.raises(ValueError):
        classify_line("99:00:00.000 }")
