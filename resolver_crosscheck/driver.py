"""
Benchmark driver: check every (package, version) root of a registry.

Units run on a process pool, or inline with a single worker. Records flow
through a bounded queue to one :class:`ReportWriter` thread, which owns the
report sink and accumulates the totals. At most ``queue_size`` units are in
flight on the pool, so a slow writer throttles resolution.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import FIRST_COMPLETED, Executor, ProcessPoolExecutor, wait
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, TypeVar

from tqdm import tqdm

from .checker import ComparisonRecord, DifferentialChecker
from .config import RunConfig
from .interfaces import Root
from .minimizer import Minimizer, disagreement_predicate
from .registry import Registry
from .reporting import BenchmarkSummary, CsvReportSink, ReportWriter
from .snapshot_io import write_case


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class UnitRunner:
    """Per-worker state: one checker over the shared registry."""

    def __init__(self, registry: Registry, config: RunConfig) -> None:
        self.registry = registry
        self.config = config
        self.checker = DifferentialChecker(
            registry,
            mode=config.mode,
            timeout=config.timeout,
            max_rounds=config.max_rounds,
        )

    def run(self, root: Root) -> ComparisonRecord:
        result = self.checker.check(root)
        record = result.record()
        if result.disagrees:
            logger.warning("%s@%s disagrees: %s", root[0], root[1], result.reason)
            path = self._persist(root)
            record.case_file = str(path) if path is not None else ""
        return record

    def _persist(self, root: Root) -> Optional[Path]:
        """Write the disagreeing case, shrunk first when ``minimize`` is set."""
        if self.config.minimize:
            predicate = disagreement_predicate(
                self.config.mode, self.config.timeout, self.config.max_rounds
            )
            try:
                versions = Minimizer(root, predicate).minimize(self.registry.versions()).versions
            except ValueError as e:
                logger.warning("Not persisting %s@%s: %s", root[0], root[1], e)
                return None
        else:
            reachable = self.registry.reachable_names(root[0])
            versions = [v for v in self.registry.versions() if v.name in reachable]
        path = write_case(self.config.regression_dir, root, versions)
        logger.info("Wrote %s (%d versions)", path, len(versions))
        return path


_RUNNER: Optional[UnitRunner] = None


def _init_worker(registry: Registry, config: RunConfig) -> None:
    global _RUNNER
    _RUNNER = UnitRunner(registry, config)


def _run_unit(root: Root) -> ComparisonRecord:
    return _RUNNER.run(root)


def bounded_map(executor: Executor, fn: Callable[[T], R], items: Iterable[T], window: int) -> Iterator[R]:
    """Like ``executor.map`` with at most ``window`` submitted but unconsumed items.

    Results come back in completion order. Submission only resumes once the
    caller has taken the finished results, so a blocked consumer stops new work.
    """
    pending = set()
    try:
        for item in items:
            pending.add(executor.submit(fn, item))
            if len(pending) >= window:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    yield future.result()
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                yield future.result()
    finally:
        for future in pending:
            future.cancel()


def iter_records(registry: Registry, config: RunConfig, units: List[Root]) -> Iterator[ComparisonRecord]:
    workers = config.worker_count()
    if workers == 1:
        runner = UnitRunner(registry, config)
        for root in units:
            yield runner.run(root)
        return

    with ProcessPoolExecutor(
        max_workers=workers,
        initializer=_init_worker,
        initargs=(registry, config),
    ) as pool:
        yield from bounded_map(pool, _run_unit, units, max(config.queue_size, workers))


def run_benchmark(
    registry: Registry,
    config: RunConfig,
    sink: Optional[CsvReportSink] = None,
    progress: bool = True,
) -> BenchmarkSummary:
    """Check every root and stream one record per root to the report sink."""
    units = registry.roots(config.name_filter)
    logger.info(
        "Checking %d roots in mode %s with %d workers",
        len(units),
        config.mode.value,
        config.worker_count(),
    )

    sink = sink or CsvReportSink(config.output)
    records: "queue.Queue[Optional[ComparisonRecord]]" = queue.Queue(maxsize=config.queue_size)
    with sink:
        writer = ReportWriter(records, sink)
        writer.start()
        try:
            with tqdm(total=len(units), desc="Checking", unit="root", disable=not progress) as bar:
                for record in iter_records(registry, config, units):
                    if writer.error is not None:
                        break
                    records.put(record)
                    bar.update(1)
        finally:
            records.put(None)
            writer.join()

    if writer.error is not None:
        raise writer.error
    return writer.summary
