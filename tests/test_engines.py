"""Tests for both resolution engines on small registries."""

import time

from resolver_crosscheck.adapters import ReferenceIndex, ReferenceSource, ResolvelibSource
from resolver_crosscheck.engines import run_engine_a, run_engine_b
from resolver_crosscheck.interfaces import EngineOutcome, ResolveErrorKind
from resolver_crosscheck.registry import Registry
from resolver_crosscheck.versioning import parse_version


def _run_both(records, name="root", vers="1.0.0", deadline=None):
    registry = Registry.build(records)
    root = (name, parse_version(vers))
    a = run_engine_a(ResolvelibSource(registry), root, deadline)
    b = run_engine_b(ReferenceSource(registry, ReferenceIndex.build(registry)), root, deadline)
    return a, b


def test_picks_newest_matching_version() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0"}]},
            {"name": "leaf", "vers": "1.0.0"},
            {"name": "leaf", "vers": "1.1.0"},
            {"name": "leaf", "vers": "2.0.0"},
        ]
    )

    for result in (a, b):
        assert result.outcome is EngineOutcome.SOLVED
        assert result.assignment.versions == {
            "root": parse_version("1.0.0"),
            "leaf": parse_version("1.1.0"),
        }
        assert result.duration >= 0


def test_unsatisfiable_requirement_has_no_solution() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^2.0"}]},
            {"name": "leaf", "vers": "1.0.0"},
        ]
    )

    assert a.outcome is EngineOutcome.NO_SOLUTION
    assert b.outcome is EngineOutcome.NO_SOLUTION
    assert "leaf" in a.error
    assert b.error_kind is ResolveErrorKind.NO_SOLUTION


def test_prerelease_of_another_release_is_not_selected() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0.0-alpha"}]},
            {"name": "leaf", "vers": "1.2.0-beta.1"},
        ]
    )

    assert a.outcome is EngineOutcome.NO_SOLUTION
    assert b.outcome is EngineOutcome.NO_SOLUTION

    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0.0-alpha"}]},
            {"name": "leaf", "vers": "1.0.0-alpha.2"},
            {"name": "leaf", "vers": "1.0.0-alpha.10"},
        ]
    )

    for result in (a, b):
        assert result.outcome is EngineOutcome.SOLVED
        assert str(result.assignment.versions["leaf"]) == "1.0.0-alpha.10"


def test_backtracks_over_a_shared_dependency() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "x", "req": "^1"}, {"name": "y", "req": "^1"}]},
            {"name": "x", "vers": "1.0.0", "deps": [{"name": "z", "req": "=1.0.0"}]},
            {"name": "x", "vers": "1.1.0", "deps": [{"name": "z", "req": "=2.0.0"}]},
            {"name": "y", "vers": "1.0.0", "deps": [{"name": "z", "req": "^1"}]},
            {"name": "z", "vers": "1.0.0"},
            {"name": "z", "vers": "2.0.0"},
        ]
    )

    for result in (a, b):
        assert result.outcome is EngineOutcome.SOLVED
        assert result.assignment.versions["x"] == parse_version("1.0.0")
        assert result.assignment.versions["z"] == parse_version("1.0.0")


def test_features_activate_optional_dependencies() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1", "features": ["extra"]}]},
            {
                "name": "leaf",
                "vers": "1.0.0",
                "deps": [{"name": "opt", "req": "^1", "optional": True}],
                "features": {"default": [], "extra": ["dep:opt"]},
            },
            {"name": "opt", "vers": "1.0.0"},
        ]
    )

    assert a.assignment == b.assignment
    assert a.assignment.versions["opt"] == parse_version("1.0.0")
    assert a.assignment.features["leaf"] == frozenset({"default", "extra"})
    assert a.assignment.features["root"] == frozenset()


def test_unused_optional_dependency_is_not_selected() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1"}]},
            {"name": "leaf", "vers": "1.0.0", "deps": [{"name": "opt", "req": "^9", "optional": True}]},
        ]
    )

    for result in (a, b):
        assert result.outcome is EngineOutcome.SOLVED
        assert "opt" not in result.assignment.versions


def test_root_enables_all_of_its_features() -> None:
    a, b = _run_both(
        [
            {
                "name": "root",
                "vers": "1.0.0",
                "deps": [{"name": "opt", "req": "^1", "optional": True}],
                "features": {"fast": []},
            },
            {"name": "opt", "vers": "1.0.0"},
        ]
    )

    for result in (a, b):
        assert result.assignment.features["root"] == frozenset({"fast", "opt"})
        assert "opt" in result.assignment.versions


def test_native_library_is_linked_once() -> None:
    a, b = _run_both(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "a", "req": "^1"}, {"name": "b", "req": "^1"}]},
            {"name": "a", "vers": "1.0.0", "links": "z"},
            {"name": "b", "vers": "1.0.0", "links": "z"},
        ]
    )

    assert a.outcome is EngineOutcome.NO_SOLUTION
    assert b.outcome is EngineOutcome.NO_SOLUTION


def test_reference_engine_rejects_cycles() -> None:
    a, b = _run_both(
        [
            {"name": "a", "vers": "1.0.0", "deps": [{"name": "b", "req": "^1"}]},
            {"name": "b", "vers": "1.0.0", "deps": [{"name": "a", "req": "^1"}]},
        ],
        name="a",
    )

    assert a.outcome is EngineOutcome.SOLVED
    assert b.outcome is EngineOutcome.ERROR
    assert b.error_kind is ResolveErrorKind.CYCLIC
    assert b.is_benign_cycle()


def test_expired_deadline_times_out() -> None:
    a, b = _run_both(
        [{"name": "root", "vers": "1.0.0"}],
        deadline=time.monotonic() - 1,
    )

    assert a.outcome is EngineOutcome.TIMEOUT
    assert b.outcome is EngineOutcome.TIMEOUT
