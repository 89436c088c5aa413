"""Tests for the command-line interface."""

import json
from pathlib import Path

from resolver_crosscheck.cli import main


def _snapshot(tmp_path: Path) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(
        json.dumps(
            [
                {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0"}]},
                {"name": "leaf", "vers": "1.0.0", "features": {"bad": ["dep:nothere"]}},
                {"name": "leaf", "vers": "0.1.0"},
                {"name": "other", "vers": "9.9.9"},
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_check_command_exit_codes(tmp_path: Path) -> None:
    snapshot = _snapshot(tmp_path)

    assert main(["check", "--snapshot", str(snapshot), "other", "9.9.9"]) == 0
    assert main(["check", "--snapshot", str(snapshot), "root", "1.0.0"]) == 1


def test_bench_then_summary(tmp_path: Path) -> None:
    snapshot = _snapshot(tmp_path)
    output = tmp_path / "out.csv"

    code = main(
        [
            "bench",
            "--snapshot",
            str(snapshot),
            "--workers",
            "1",
            "--output",
            str(output),
            "--regression-dir",
            str(tmp_path / "cases"),
            "--no-progress",
        ]
    )

    assert code == 1
    assert output.exists()
    assert (tmp_path / "cases" / "root@1.0.0.json").exists()
    assert main(["summary", str(output)]) == 0


def test_minimize_and_regress_commands(tmp_path: Path) -> None:
    snapshot = _snapshot(tmp_path)
    cases = tmp_path / "cases"

    assert main(["minimize", "--snapshot", str(snapshot), "--regression-dir", str(cases), "root", "1.0.0"]) == 0
    assert (cases / "root@1.0.0.json").exists()
    assert main(["regress", str(cases)]) == 1
    assert main(["regress", str(cases), "--accept"]) == 0
    assert main(["regress", str(cases)]) == 0


def test_invalid_snapshot_reports_an_error(tmp_path: Path, capsys) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")

    assert main(["check", "--snapshot", str(bad), "root", "1.0.0"]) == 2
    assert "Error:" in capsys.readouterr().err
