"""Tests for the differential checker and the consistency check."""

from resolver_crosscheck import checker as checker_module
from resolver_crosscheck.checker import CheckState, Classification, DifferentialChecker
from resolver_crosscheck.config import Mode
from resolver_crosscheck.consistency import check_solution
from resolver_crosscheck.interfaces import Assignment, EngineOutcome, EngineResult
from resolver_crosscheck.registry import Registry
from resolver_crosscheck.versioning import parse_version


ROOT = ("root", parse_version("1.0.0"))


def _registry(*extra) -> Registry:
    return Registry.build(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0"}]},
            {"name": "leaf", "vers": "1.0.0"},
            {"name": "leaf", "vers": "1.1.0"},
            *extra,
        ]
    )


def _disagreeing_registry() -> Registry:
    return Registry.build(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^1.0"}]},
            {"name": "leaf", "vers": "1.0.0", "features": {"bad": ["dep:nothere"]}},
            {"name": "other", "vers": "9.9.9"},
        ]
    )


def test_agreeing_root_runs_lock_checks() -> None:
    result = DifferentialChecker(_registry()).check(ROOT)

    assert result.classification is Classification.AGREE
    assert result.state is CheckState.CLASSIFIED
    assert result.engine_a.assignment.versions["leaf"] == parse_version("1.1.0")
    assert result.lock_a.outcome is EngineOutcome.SOLVED
    assert result.lock_b.outcome is EngineOutcome.SOLVED

    record = result.record()
    assert record.package == "root"
    assert record.version == "1.0.0"
    assert record.classification == "agree"
    assert record.engine_a_outcome == "solved"


def test_both_without_solution_agree() -> None:
    registry = Registry.build(
        [
            {"name": "root", "vers": "1.0.0", "deps": [{"name": "leaf", "req": "^2.0"}]},
            {"name": "leaf", "vers": "1.0.0"},
        ]
    )

    result = DifferentialChecker(registry).check(ROOT)

    assert result.classification is Classification.AGREE
    assert result.engine_a.outcome is EngineOutcome.NO_SOLUTION
    assert result.lock_a is None


def test_different_outcomes_disagree() -> None:
    result = DifferentialChecker(_disagreeing_registry()).check(ROOT)

    assert result.disagrees
    assert result.engine_a.outcome is EngineOutcome.SOLVED
    assert result.engine_b.outcome is EngineOutcome.NO_SOLUTION
    assert "resolvelib solved vs reference no_solution" in result.reason


def test_cyclic_failure_is_skipped() -> None:
    registry = Registry.build(
        [
            {"name": "a", "vers": "1.0.0", "deps": [{"name": "b", "req": "^1"}]},
            {"name": "b", "vers": "1.0.0", "deps": [{"name": "a", "req": "^1"}]},
        ]
    )

    result = DifferentialChecker(registry).check(("a", parse_version("1.0.0")))

    assert result.classification is Classification.SKIPPED
    assert result.reason == "cyclic package dependency"


def test_root_missing_from_reference_index_is_skipped() -> None:
    registry = Registry.build([{"name": "root", "vers": "1.0.0", "features": {"x": ["nope"]}}])

    result = DifferentialChecker(registry).check(ROOT)

    assert result.classification is Classification.SKIPPED
    assert result.engine_b is None
    assert result.record().engine_b_outcome == "not_run"


def test_single_engine_modes_skip_comparison() -> None:
    only_a = DifferentialChecker(_registry(), mode=Mode.ENGINE_A).check(ROOT)
    only_b = DifferentialChecker(_registry(), mode=Mode.ENGINE_B).check(ROOT)
    both = DifferentialChecker(_registry(), mode=Mode.BOTH).check(ROOT)

    assert only_a.classification is Classification.SKIPPED
    assert only_a.engine_b is None
    assert only_b.classification is Classification.SKIPPED
    assert only_b.engine_a is None
    assert both.classification is Classification.AGREE
    assert both.lock_a is None and both.lock_b is None


def test_engine_timeout_is_classified(monkeypatch) -> None:
    def fake_engine_a(source, root, deadline=None, max_rounds=0):
        return EngineResult("resolvelib", EngineOutcome.TIMEOUT, 5.0, error="timed out")

    monkeypatch.setattr(checker_module, "run_engine_a", fake_engine_a)

    result = DifferentialChecker(_registry(), timeout=1.0).check(ROOT)

    assert result.classification is Classification.TIMEOUT
    assert result.record().engine_a_time == 5.0


def test_lock_rejection_disagrees(monkeypatch) -> None:
    real_engine_b = checker_module.run_engine_b
    calls = []

    def engine_b_rejecting_locks(source, root, deadline=None):
        calls.append(source.pins)
        if source.pins is not None:
            return EngineResult("reference", EngineOutcome.NO_SOLUTION, error="locked out")
        return real_engine_b(source, root, deadline)

    monkeypatch.setattr(checker_module, "run_engine_b", engine_b_rejecting_locks)

    result = DifferentialChecker(_registry()).check(ROOT)

    assert result.disagrees
    assert result.reason.startswith("lock: reference rejects the resolvelib solution")
    assert calls[-1] == {"root": parse_version("1.0.0"), "leaf": parse_version("1.1.0")}


def test_inconsistent_solution_disagrees(monkeypatch) -> None:
    def fake_engine_a(source, root, deadline=None, max_rounds=0):
        assignment = Assignment({"root": parse_version("1.0.0"), "leaf": parse_version("2.0.0")})
        return EngineResult("resolvelib", EngineOutcome.SOLVED, assignment=assignment)

    monkeypatch.setattr(checker_module, "run_engine_a", fake_engine_a)

    result = DifferentialChecker(_registry({"name": "leaf", "vers": "2.0.0"})).check(ROOT)

    assert result.disagrees
    assert "inconsistent solution" in result.reason
    assert any("requires leaf ^1.0" in p for p in result.problems)


def test_check_solution_reports_violations() -> None:
    registry = Registry.build(
        [
            {
                "name": "root",
                "vers": "1.0.0",
                "deps": [{"name": "a", "req": "^1", "features": ["fast"]}, {"name": "b", "req": "^1"}],
                "features": {"std": []},
            },
            {"name": "a", "vers": "1.0.0", "links": "z", "features": {"fast": ["turbo"], "turbo": []}},
            {"name": "b", "vers": "1.0.0", "links": "z"},
        ]
    )
    assignment = Assignment(
        {
            "root": parse_version("1.0.0"),
            "a": parse_version("1.0.0"),
            "b": parse_version("1.0.0"),
            "ghost": parse_version("0.1.0"),
        },
        {"a": frozenset({"fast", "unknown"})},
    )

    problems = check_solution(registry, ROOT, assignment)

    assert any("missing features ['std']" in p for p in problems)
    assert any("ghost@0.1.0 is not in the registry" in p for p in problems)
    assert any("both link native library `z`" in p for p in problems)
    assert any("unknown feature `unknown`" in p for p in problems)
    assert any("implies `turbo`" in p for p in problems)


def test_check_solution_accepts_engine_output() -> None:
    registry = _registry()
    result = DifferentialChecker(registry).check(ROOT)

    assert check_solution(registry, ROOT, result.engine_a.assignment) == []
    assert check_solution(registry, ROOT, result.engine_b.assignment) == []
