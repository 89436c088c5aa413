"""
JSON persistence of registry snapshots and regression case files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Tuple

from .interfaces import Root
from .models import ParseError, Version
from .versioning import SemVer, parse_version


CASE_SUFFIX = ".json"


class SnapshotError(RuntimeError):
    """A persisted snapshot could not be read back."""


def serialize(versions: Iterable[Version]) -> str:
    return json.dumps([v.to_raw() for v in versions], indent=2) + "\n"


def deserialize(text: str) -> List[Version]:
    try:
        records = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"invalid snapshot JSON: {e}") from e
    if not isinstance(records, list):
        raise SnapshotError("snapshot must be a JSON list of version records")
    try:
        return [Version.from_raw(raw) for raw in records]
    except ParseError as e:
        raise SnapshotError(f"invalid version record: {e}") from e


def read_snapshot(path: Path) -> List[Version]:
    try:
        return deserialize(Path(path).read_text(encoding="utf-8"))
    except SnapshotError as e:
        raise SnapshotError(f"{path}: {e}") from e


def write_snapshot(path: Path, versions: Iterable[Version]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize(versions), encoding="utf-8")


def case_file_name(name: str, vers: SemVer) -> str:
    return f"{name}@{vers}{CASE_SUFFIX}"


def case_from_file_name(file_name: str) -> Root:
    """Inverse of :func:`case_file_name`; raises ``ValueError`` on other names."""
    stem = file_name[: -len(CASE_SUFFIX)] if file_name.endswith(CASE_SUFFIX) else ""
    name, sep, vers = stem.rpartition("@")
    if not sep or not name:
        raise ValueError(f"not a case file name: {file_name!r}")
    try:
        return name, parse_version(vers)
    except ValueError as e:
        raise ValueError(f"not a case file name: {file_name!r}") from e


def write_case(directory: Path, root: Root, versions: Iterable[Version]) -> Path:
    path = Path(directory) / case_file_name(*root)
    write_snapshot(path, versions)
    return path


def read_case(path: Path) -> Tuple[Root, List[Version]]:
    path = Path(path)
    return case_from_file_name(path.name), read_snapshot(path)
