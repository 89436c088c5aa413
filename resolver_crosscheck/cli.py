"""
Command-line interface for the resolver cross-check tool.
"""

import argparse
import logging
import sys
from pathlib import Path

from .checker import DifferentialChecker
from .config import Mode, RunConfig
from .driver import run_benchmark
from .index import SparseIndexClient, iter_index_dir
from .minimizer import Minimizer, disagreement_predicate
from .registry import Registry
from .regression import has_changes, run_regressions
from .reporting import CsvReportSink, load_report, print_summary, slowest, summarize_report
from .snapshot_io import SnapshotError, read_snapshot, write_case
from .versioning import parse_version


logger = logging.getLogger(__name__)


def _add_engine_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mode",
        choices=[m.value for m in Mode],
        default=Mode.ALL.value,
        help="Which engines to run. 'all' adds lock-file cross checks. Default: all"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-root timeout in seconds. Default: none"
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=200_000,
        help="resolvelib round limit. Default: 200000"
    )


def _add_input_options(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--index-dir", type=Path, help="Local crates.io-index checkout")
    source.add_argument("--snapshot", type=Path, help="Registry snapshot JSON file")
    source.add_argument(
        "--sparse",
        nargs="+",
        metavar="PACKAGE",
        help="Fetch these packages and their dependency closure from the sparse index"
    )
    parser.add_argument(
        "--include-ecosystem",
        action="store_true",
        help="Keep packages whose name contains the excluded ecosystem marker (solana)"
    )
    parser.add_argument(
        "--include-yanked",
        action="store_true",
        help="Keep yanked versions"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resolver-crosscheck",
        description="Differential testing of two dependency resolvers over a package registry"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    bench = commands.add_parser("bench", help="Check every (package, version) root")
    _add_input_options(bench)
    _add_engine_options(bench)
    bench.add_argument("--filter", dest="name_filter", default=None, help="Only names containing this")
    bench.add_argument("--workers", type=int, default=0, help="Worker processes. 0 = CPU count")
    bench.add_argument("--output", type=Path, default=Path("out.csv"), help="Report CSV. Default: out.csv")
    bench.add_argument("--minimize", action="store_true", help="Shrink disagreements before persisting them")
    bench.add_argument(
        "--regression-dir",
        type=Path,
        default=Path("out/index_json"),
        help="Where disagreeing cases are written. Default: out/index_json"
    )
    bench.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    check = commands.add_parser("check", help="Check one root")
    _add_input_options(check)
    _add_engine_options(check)
    check.add_argument("package")
    check.add_argument("version")

    minimize = commands.add_parser("minimize", help="Shrink a disagreeing root and write the case")
    _add_input_options(minimize)
    _add_engine_options(minimize)
    minimize.add_argument("package")
    minimize.add_argument("version")
    minimize.add_argument("--regression-dir", type=Path, default=Path("out/index_json"))

    regress = commands.add_parser("regress", help="Re-check every persisted case")
    _add_engine_options(regress)
    regress.add_argument("directory", type=Path, nargs="?", default=Path("out/index_json"))
    regress.add_argument("--all-versions", action="store_true", help="Check every version in each case")
    regress.add_argument("--minimize", action="store_true", help="Re-minimize disagreeing cases")
    regress.add_argument("--accept", action="store_true", help="Record current classifications")

    summary = commands.add_parser("summary", help="Summarize a report CSV")
    summary.add_argument("report", type=Path)
    summary.add_argument("--top", type=int, default=10, help="Slowest roots to list. Default: 10")
    return parser


def _config(args: argparse.Namespace) -> RunConfig:
    config = RunConfig(
        include_ecosystem=getattr(args, "include_ecosystem", False),
        include_yanked=getattr(args, "include_yanked", False),
        mode=Mode(args.mode),
        timeout=args.timeout,
        max_rounds=args.max_rounds,
    )
    for name in ("workers", "name_filter", "minimize", "regression_dir", "output"):
        if hasattr(args, name):
            setattr(config, name, getattr(args, name))
    return config


def load_registry(args: argparse.Namespace, config: RunConfig) -> Registry:
    if args.snapshot is not None:
        records = [v.to_raw() for v in read_snapshot(args.snapshot)]
    elif args.index_dir is not None:
        records = iter_index_dir(args.index_dir)
    else:
        records = SparseIndexClient().fetch_closure(args.sparse)

    if not config.include_ecosystem:
        logger.info("Excluding packages containing %r", config.ecosystem_marker)
    if not config.include_yanked:
        logger.info("Excluding yanked versions")
    registry = Registry.build(records, config.name_predicate(), config.version_predicate())
    logger.info("Loaded %r", registry)
    return registry


def _root(args: argparse.Namespace):
    return args.package, parse_version(args.version)


def _cmd_bench(args: argparse.Namespace) -> int:
    config = _config(args)
    registry = load_registry(args, config)
    summary = run_benchmark(registry, config, CsvReportSink(config.output), progress=not args.no_progress)
    print_summary(summary)
    return 1 if summary.failed else 0


def _cmd_check(args: argparse.Namespace) -> int:
    config = _config(args)
    registry = load_registry(args, config)
    checker = DifferentialChecker(registry, config.mode, config.timeout, config.max_rounds)
    result = checker.check(_root(args))
    record = result.record()
    for column, value in record.as_row().items():
        logger.info("%20s: %s", column, value)
    return 1 if result.disagrees else 0


def _cmd_minimize(args: argparse.Namespace) -> int:
    config = _config(args)
    registry = load_registry(args, config)
    root = _root(args)
    predicate = disagreement_predicate(config.mode, config.timeout, config.max_rounds)
    result = Minimizer(root, predicate).minimize(registry.versions())
    path = write_case(args.regression_dir, root, result.versions)
    logger.info("Wrote %s with %d of %d versions", path, len(result.versions), result.original_size)
    return 0


def _cmd_regress(args: argparse.Namespace) -> int:
    outcomes = run_regressions(
        args.directory,
        mode=Mode(args.mode),
        timeout=args.timeout,
        max_rounds=args.max_rounds,
        all_versions=args.all_versions,
        minimize=args.minimize,
        accept=args.accept,
    )
    changed = [o for o in outcomes if o.changed]
    logger.info("%d cases checked, %d changed", len(outcomes), len(changed))
    if args.accept:
        return 0
    return 1 if has_changes(outcomes) else 0


def _cmd_summary(args: argparse.Namespace) -> int:
    df = load_report(args.report)
    logger.info("\n%s", summarize_report(df).to_string())
    logger.info("Slowest roots:\n%s", slowest(df, n=args.top).to_string(index=False))
    return 0


COMMANDS = {
    "bench": _cmd_bench,
    "check": _cmd_check,
    "minimize": _cmd_minimize,
    "regress": _cmd_regress,
    "summary": _cmd_summary,
}


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return COMMANDS[args.command](args)
    except (SnapshotError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
