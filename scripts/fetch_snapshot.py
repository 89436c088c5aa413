#!/usr/bin/env python3
"""Fetch packages and their dependency closure from the sparse index into a snapshot file."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from resolver_crosscheck.config import RunConfig
from resolver_crosscheck.index import SPARSE_INDEX_URL, SparseIndexClient
from resolver_crosscheck.registry import Registry
from resolver_crosscheck.snapshot_io import write_snapshot


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Write a registry snapshot for the given packages and everything they depend on."
    )
    parser.add_argument("packages", nargs="+", help="Root package names")
    parser.add_argument("--output", required=True, help="Path to output snapshot JSON")
    parser.add_argument("--index-url", default=SPARSE_INDEX_URL, help="Sparse index base URL")
    parser.add_argument("--include-yanked", action="store_true", help="Keep yanked versions")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = RunConfig(include_ecosystem=True, include_yanked=args.include_yanked)
    records = SparseIndexClient(base_url=args.index_url).fetch_closure(args.packages)
    registry = Registry.build(records, config.name_predicate(), config.version_predicate())
    write_snapshot(Path(args.output), registry.versions())
    print(f"Wrote {len(registry)} versions of {len(registry.names())} packages to {args.output}")


if __name__ == "__main__":
    main()
