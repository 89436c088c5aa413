"""Tests for report writing and summaries."""

import logging
from pathlib import Path

from resolver_crosscheck.checker import ComparisonRecord
from resolver_crosscheck.reporting import (
    BenchmarkSummary,
    CsvReportSink,
    load_report,
    print_summary,
    slowest,
    summarize_report,
)


def _record(package: str, classification: str, a: float, b: float) -> ComparisonRecord:
    return ComparisonRecord(
        package=package,
        version="1.0.0",
        engine_a_outcome="solved",
        engine_b_outcome="solved",
        classification=classification,
        engine_a_time=a,
        engine_b_time=b,
    )


def test_report_round_trips_through_pandas(tmp_path: Path) -> None:
    path = tmp_path / "report.csv"
    with CsvReportSink(path) as sink:
        sink.write(_record("a", "agree", 1.0, 2.0))
        sink.write(_record("b", "agree", 0.5, 0.5))
    with CsvReportSink(path) as sink:
        sink.write(_record("c", "disagree", 3.0, 0.0))

    df = load_report(path)
    summary = summarize_report(df)

    assert len(df) == 3
    assert summary.loc["agree", "count"] == 2
    assert summary.loc["agree", "engine_a_time"] == 1.5
    assert summary.loc["disagree", "engine_b_time"] == 0.0
    assert list(slowest(df, n=1)["package"]) == ["c"]


def test_print_summary_logs_timings(caplog) -> None:
    summary = BenchmarkSummary()
    summary.add(_record("a", "agree", 90.0, 0.0))
    summary.add(_record("b", "disagree", 30.0, 0.0))

    with caplog.at_level(logging.INFO, logger="resolver_crosscheck.reporting"):
        print_summary(summary)

    assert "!!!!!!!!!! Timings !!!!!!!!!!" in caplog.text
    assert "Resolvelib CPU time:   120.00s ==   2.00min" in caplog.text
    assert "Reference CPU time: skipped" in caplog.text
    assert "Disagreement: b@1.0.0" in caplog.text
    assert summary.units == 2
