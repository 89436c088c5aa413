"""Tests for snapshot persistence."""

import json
from pathlib import Path

import pytest

from resolver_crosscheck.models import Version
from resolver_crosscheck.snapshot_io import (
    SnapshotError,
    case_file_name,
    case_from_file_name,
    deserialize,
    read_case,
    serialize,
    write_case,
)
from resolver_crosscheck.versioning import parse_version


RECORDS = [
    {
        "name": "root",
        "vers": "1.0.0",
        "deps": [
            {"name": "leaf", "req": "^1.0", "features": ["std"], "default_features": False},
            {"name": "alias", "package": "real", "req": "*", "kind": "build", "optional": True},
        ],
        "features": {"default": ["alias"]},
        "links": "z",
    },
    {"name": "leaf", "vers": "1.1.0", "yanked": True, "features": {"std": []}},
    {"name": "real", "vers": "0.1.0", "deps": [], "features": {}, "links": None, "yanked": False},
]


def test_round_trip_is_stable() -> None:
    versions = [Version.from_raw(raw) for raw in RECORDS]

    text = serialize(versions)

    assert deserialize(text) == versions
    assert serialize(deserialize(text)) == text


def test_default_fields_are_omitted() -> None:
    data = json.loads(serialize(Version.from_raw(raw) for raw in RECORDS))

    assert data[2] == {"name": "real", "vers": "0.1.0"}
    assert data[0]["deps"][1] == {
        "name": "alias",
        "package_name": "real",
        "kind": "build",
        "optional": True,
    }
    assert data[0]["deps"][0] == {
        "name": "leaf",
        "req": "^1.0",
        "features": ["std"],
        "default_features": False,
    }
    assert data[1]["yanked"] is True


def test_case_files(tmp_path: Path) -> None:
    versions = [Version.from_raw(raw) for raw in RECORDS]
    root = ("root", parse_version("1.0.0"))

    path = write_case(tmp_path / "cases", root, versions)

    assert path.name == "root@1.0.0.json"
    assert read_case(path) == (root, versions)


def test_prerelease_versions_keep_raw_text(tmp_path: Path) -> None:
    versions = [Version.from_raw({"name": "serde", "vers": "1.0.0-alpha.1"})]

    path = write_case(tmp_path, ("serde", parse_version("1.0.0-alpha.1")), versions)

    assert path.name == "serde@1.0.0-alpha.1.json"
    assert json.loads(path.read_text())[0]["vers"] == "1.0.0-alpha.1"
    assert read_case(path)[1] == versions


def test_case_file_names() -> None:
    assert case_file_name("serde", parse_version("1.0.0-rc.1")) == "serde@1.0.0-rc.1.json"
    assert case_from_file_name("serde@1.0.0-rc.1.json") == ("serde", parse_version("1.0.0-rc.1"))
    for bad in ("accepted.json", "serde@1.0.0.txt", "@1.0.0.json", "serde@nope.json"):
        with pytest.raises(ValueError):
            case_from_file_name(bad)


@pytest.mark.parametrize("text", ["{not json", '{"name": "x"}', '[{"name": "x", "vers": "bad"}]', "[1]"])
def test_invalid_snapshots_raise(text: str) -> None:
    with pytest.raises(SnapshotError):
        deserialize(text)
