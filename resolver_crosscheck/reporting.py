"""
Reporting and export utilities.
"""

from __future__ import annotations

import csv
import logging
import queue
import threading
import time
from collections import Counter
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .checker import Classification, ComparisonRecord


logger = logging.getLogger(__name__)

REPORT_COLUMNS = [f.name for f in fields(ComparisonRecord)]
TIME_COLUMNS = ["engine_a_time", "engine_b_time", "engine_a_lock_time", "engine_b_lock_time"]


class CsvReportSink:
    """Appends comparison records to a CSV file, writing the header once."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._file = None
        self._writer: Optional[csv.DictWriter] = None

    def open(self) -> "CsvReportSink":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        self._file = open(self.path, "a", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(self._file, fieldnames=REPORT_COLUMNS)
        if write_header:
            self._writer.writeheader()
        return self

    def write(self, record: ComparisonRecord) -> None:
        if self._writer is None:
            raise RuntimeError("Report sink is not open")
        self._writer.writerow(record.as_row())

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None

    def __enter__(self) -> "CsvReportSink":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()


@dataclass
class BenchmarkSummary:
    """Totals accumulated over every record of a run."""

    units: int = 0
    engine_a_time: float = 0.0
    engine_b_time: float = 0.0
    engine_a_lock_time: float = 0.0
    engine_b_lock_time: float = 0.0
    wall_time: float = 0.0
    classifications: Counter = field(default_factory=Counter)
    disagreements: List[str] = field(default_factory=list)

    def add(self, record: ComparisonRecord) -> None:
        self.units += 1
        self.engine_a_time += record.engine_a_time
        self.engine_b_time += record.engine_b_time
        self.engine_a_lock_time += record.engine_a_lock_time
        self.engine_b_lock_time += record.engine_b_lock_time
        self.classifications[record.classification] += 1
        if record.classification == Classification.DISAGREE.value:
            self.disagreements.append(f"{record.package}@{record.version}")

    @property
    def failed(self) -> bool:
        return bool(self.disagreements)


class ReportWriter(threading.Thread):
    """Single consumer of the record queue; the only writer of the sink.

    ``None`` on the queue stops the thread. If the sink fails, the error is
    kept in :attr:`error` and remaining records are drained so producers never
    block on a full queue.
    """

    def __init__(self, records: "queue.Queue[Optional[ComparisonRecord]]", sink: CsvReportSink) -> None:
        super().__init__(name="report-writer", daemon=True)
        self.records = records
        self.sink = sink
        self.summary = BenchmarkSummary()
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        start = time.perf_counter()
        try:
            while True:
                record = self.records.get()
                if record is None:
                    break
                if self.error is not None:
                    continue
                try:
                    self.sink.write(record)
                except OSError as e:
                    logger.error("Failed to write report row: %s", e)
                    self.error = e
                    continue
                self.summary.add(record)
        finally:
            self.summary.wall_time = time.perf_counter() - start


def _format_time(label: str, seconds: float) -> str:
    if seconds > 0:
        return f"{label:>20} time: {seconds:>8.2f}s == {seconds / 60:>6.2f}min"
    return f"{label:>20} time: skipped"


def print_summary(summary: BenchmarkSummary) -> None:
    logger.info("!!!!!!!!!! Timings !!!!!!!!!!")
    logger.info(_format_time("Resolvelib CPU", summary.engine_a_time))
    logger.info(_format_time("Reference CPU", summary.engine_b_time))
    logger.info(_format_time("Resolvelib lock CPU", summary.engine_a_lock_time))
    logger.info(_format_time("Reference lock CPU", summary.engine_b_lock_time))
    logger.info(_format_time("Wall", summary.wall_time))
    for classification in Classification:
        logger.info("%20s: %d", classification.value, summary.classifications.get(classification.value, 0))
    for case in summary.disagreements:
        logger.warning("Disagreement: %s", case)


def load_report(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, keep_default_na=False)
    missing = [c for c in ("package", "version", "classification") if c not in df.columns]
    if missing:
        raise ValueError(f"Not a comparison report, missing columns: {missing}")
    for col in TIME_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
    return df


def summarize_report(df: pd.DataFrame) -> pd.DataFrame:
    """Count and total timings per classification."""
    time_cols = [c for c in TIME_COLUMNS if c in df.columns]
    grouped = df.groupby("classification")
    summary = grouped[time_cols].sum()
    summary.insert(0, "count", grouped.size())
    return summary.sort_index()


def slowest(df: pd.DataFrame, column: str = "engine_a_time", n: int = 10) -> pd.DataFrame:
    return df.sort_values(column, ascending=False).head(n)[["package", "version", column]]
