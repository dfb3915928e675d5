import os

from typer.testing import CliRunner

from inst_analyze.cli import app
from inst_analyze.index_cache import index_path

runner = CliRunner()


def test_analyze_writes_report_and_index(sample_log_file):
    result = runner.invoke(app, ["analyze", str(sample_log_file)])

    assert result.exit_code == 0, result.output
    report = sample_log_file.with_name("sample.report.txt")
    assert report.exists()
    text = report.read_text(encoding="utf-8")
    assert "Resume Workflow Engine" in text
    assert "WebContainer : 0" in text
    assert index_path(sample_log_file).exists()


def test_second_run_uses_the_index(sample_log_file):
    runner.invoke(app, ["analyze", str(sample_log_file)])
    first = sample_log_file.with_name("sample.report.txt").read_text(encoding="utf-8")

    result = runner.invoke(app, ["analyze", str(sample_log_file)])

    assert result.exit_code == 0, result.output
    assert "Loaded cached data" in result.output
    second = sample_log_file.with_name("sample.report.txt").read_text(encoding="utf-8")
    # Only the generation time may differ.
    strip = lambda s: [line for line in s.splitlines() if "Report generated on" not in line]  # noqa: E731
    assert strip(first) == strip(second)


def test_rescan_ignores_the_index(sample_log_file):
    runner.invoke(app, ["analyze", str(sample_log_file)])

    result = runner.invoke(app, ["analyze", str(sample_log_file), "--rescan"])

    assert result.exit_code == 0, result.output
    assert "Loaded cached data" not in result.output


def test_profile_options_and_custom_output(sample_log_file, tmp_path):
    output = tmp_path / "custom.txt"

    result = runner.invoke(
        app,
        ["analyze", str(sample_log_file), "--prof", "--self", "--level", "2", "-t", "1", "-o", str(output)],
    )

    assert result.exit_code == 0, result.output
    text = output.read_text(encoding="utf-8")
    assert "Detailed profile for ActivityID = 9, Thread Name = ThreadPool worker : 1" in text
    assert "Top 10 of self periods" in text


def test_dump_expensive_activities(sample_log_file):
    result = runner.invoke(app, ["analyze", str(sample_log_file), "--dump"])

    assert result.exit_code == 0, result.output
    assert sample_log_file.with_name("sample.log.WebContainer_0.1.thread.txt").exists()
    assert sample_log_file.with_name("sample.log.ThreadPool_worker_1.9.thread.txt").exists()


def test_malformed_line_aborts_without_report(write_log):
    log_file = write_log(">> THREAD A <<\n10:00:00.000 period 1ms 'x' {\n10:00:00.001 }\n10:00:00.002 }\n")

    result = runner.invoke(app, ["analyze", str(log_file)])

    assert result.exit_code == 1
    assert "Scanning error at line 4" in result.output
    assert not log_file.with_name("sample.report.txt").exists()
    assert not index_path(log_file).exists()


def test_missing_file(tmp_path):
    result = runner.invoke(app, ["analyze", str(tmp_path / "missing.log")])

    assert result.exit_code != 0


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "inst-analyze" in result.output


def test_index_newer_than_log_is_trusted(sample_log_file):
    runner.invoke(app, ["analyze", str(sample_log_file)])
    stat = index_path(sample_log_file).stat()
    os.utime(sample_log_file, (stat.st_atime - 5, stat.st_mtime - 5))

    result = runner.invoke(app, ["analyze", str(sample_log_file)])

    assert "Loaded cached data" in result.output


def test_bracketed_paths_are_printed_literally(write_log):
    log_file = write_log(">> THREAD A <<\n10:00:00.000 period 1ms 'x' {\n10:00:00.001 }\n", "run[x].log")

    result = runner.invoke(app, ["analyze", str(log_file)])
    assert result.exit_code == 0, result.output
    assert "run[x].report.txt" in result.output.replace("\n", "")

    result = runner.invoke(app, ["analyze", str(log_file)])
    assert "run[x].log.idx" in result.output.replace("\n", "")
