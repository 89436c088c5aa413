"""
Read raw version records from a crates.io index.

Two sources are supported: a local checkout of the git index, and the sparse
HTTP index. Both yield the raw JSON records that :meth:`Registry.build`
consumes.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

import requests


logger = logging.getLogger(__name__)

SPARSE_INDEX_URL = "https://index.crates.io"


def index_path(name: str) -> str:
    """Relative path of a package's file in the index directory layout."""
    name = name.lower()
    if not name:
        raise ValueError("Empty package name")
    if len(name) == 1:
        return f"1/{name}"
    if len(name) == 2:
        return f"2/{name}"
    if len(name) == 3:
        return f"3/{name[0]}/{name}"
    return f"{name[0:2]}/{name[2:4]}/{name}"


def parse_index_lines(text: str, source: str = "") -> List[Dict[str, Any]]:
    """One JSON record per non-empty line. Lines that are not JSON objects are skipped."""
    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping %s:%d: %s", source, lineno, e)
            continue
        if isinstance(raw, dict):
            records.append(raw)
    return records


def iter_index_dir(path: Path) -> Iterator[Dict[str, Any]]:
    """Walk a local index checkout, skipping ``config.json`` and dot-directories."""
    root = Path(path)
    if not root.is_dir():
        raise FileNotFoundError(f"Index directory not found: {root}")
    for file in sorted(root.rglob("*")):
        rel = file.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if not file.is_file() or rel.as_posix() == "config.json":
            continue
        yield from parse_index_lines(file.read_text(encoding="utf-8"), str(rel))


@dataclass
class SparseIndexClient:
    """Fetch index files over HTTP, caching each package's records."""

    base_url: str = SPARSE_INDEX_URL
    timeout: float = 30
    session: requests.Session = field(default_factory=requests.Session)
    cache: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def fetch(self, name: str) -> List[Dict[str, Any]]:
        """Records for ``name``; an unknown package yields an empty list."""
        key = name.lower()
        if key in self.cache:
            logger.debug("Cache hit: index %s", key)
            return self.cache[key]

        url = f"{self.base_url.rstrip('/')}/{index_path(key)}"
        logger.info("Fetching index entry for %s", name)
        with self.session.get(url, timeout=self.timeout) as response:
            if response.status_code == 404:
                records: List[Dict[str, Any]] = []
            else:
                response.raise_for_status()
                records = parse_index_lines(response.text, url)
        self.cache[key] = records
        return records

    def fetch_closure(self, roots: Iterable[str], include_dev: bool = False) -> List[Dict[str, Any]]:
        """Records of ``roots`` and every package any of their versions depends on."""
        seen = set()
        queue = deque()
        for name in roots:
            if name.lower() not in seen:
                seen.add(name.lower())
                queue.append(name)

        records: List[Dict[str, Any]] = []
        while queue:
            name = queue.popleft()
            for raw in self.fetch(name):
                records.append(raw)
                deps = raw.get("deps")
                for dep in deps if isinstance(deps, list) else ():
                    if not isinstance(dep, dict):
                        continue
                    if dep.get("kind") == "dev" and not include_dev:
                        continue
                    target = dep.get("package") or dep.get("package_name") or dep.get("name")
                    if isinstance(target, str) and target and target.lower() not in seen:
                        seen.add(target.lower())
                        queue.append(target)
        logger.info("Fetched %d records for %d packages", len(records), len(seen))
        return records
