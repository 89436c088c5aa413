#!/usr/bin/env python3
"""
Example script showing how to use the resolver cross-check tool as a library.
"""

from pathlib import Path

from resolver_crosscheck import DifferentialChecker, Mode, Registry, RunConfig
from resolver_crosscheck.driver import run_benchmark
from resolver_crosscheck.minimizer import minimize
from resolver_crosscheck.reporting import print_summary
from resolver_crosscheck.snapshot_io import write_case
from resolver_crosscheck.versioning import parse_version


RECORDS = [
    {"name": "app", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0"}]},
    {"name": "leaf", "vers": "1.0.0", "features": {"bad": ["dep:nothere"]}},
    {"name": "leaf", "vers": "0.9.0"},
    {"name": "unrelated", "vers": "2.0.0"},
]


def example_single_check():
    """Example: Compare both engines on one root."""
    print("="*60)
    print("Example 1: Single Check")
    print("="*60)

    registry = Registry.build(RECORDS)
    result = DifferentialChecker(registry, mode=Mode.ALL).check(("app", parse_version("1.0.0")))

    print(f"Classification: {result.classification.value}")
    print(f"Reason: {result.reason}")


def example_benchmark():
    """Example: Check every root and write a CSV report."""
    print("\n" + "="*60)
    print("Example 2: Benchmark")
    print("="*60)

    config = RunConfig(
        workers=1,
        output=Path("./output/example2.csv"),
        regression_dir=Path("./output/cases"),
    )
    summary = run_benchmark(Registry.build(RECORDS), config)
    print_summary(summary)
    print(f"Disagreements: {summary.disagreements}")


def example_minimize():
    """Example: Shrink a disagreement and persist it as a regression case."""
    print("\n" + "="*60)
    print("Example 3: Minimize")
    print("="*60)

    root = ("app", parse_version("1.0.0"))
    result = minimize(Registry.build(RECORDS).versions(), root)
    path = write_case(Path("./output/cases"), root, result.versions)
    print(f"Kept {len(result.versions)} of {result.original_size} versions in {path}")


if __name__ == "__main__":
    example_single_check()
    example_benchmark()
    example_minimize()
