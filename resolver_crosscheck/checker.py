"""
Differential checker: run both engines on one root and classify the outcome.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .adapters import ReferenceIndex, ReferenceSource, ResolvelibSource
from .config import Mode
from .consistency import check_solution
from .engines import ENGINE_A, ENGINE_B, run_engine_a, run_engine_b
from .interfaces import EngineOutcome, EngineResult, Root
from .registry import Registry


logger = logging.getLogger(__name__)


class Classification(str, Enum):
    AGREE = "agree"
    DISAGREE = "disagree"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class CheckState(str, Enum):
    IDLE = "idle"
    RAN_ENGINE_A = "ran_engine_a"
    RAN_ENGINE_B = "ran_engine_b"
    CLASSIFIED = "classified"


@dataclass
class ComparisonRecord:
    """One report row per (package, version) root."""

    package: str
    version: str
    engine_a_outcome: str
    engine_b_outcome: str
    classification: str
    engine_a_time: float = 0.0
    engine_b_time: float = 0.0
    engine_a_lock_time: float = 0.0
    engine_b_lock_time: float = 0.0
    consistency_time: float = 0.0
    reason: str = ""
    case_file: str = ""

    def as_row(self) -> Dict[str, Any]:
        return asdict(self)


def _duration(result: Optional[EngineResult]) -> float:
    return result.duration if result is not None else 0.0


def _outcome(result: Optional[EngineResult]) -> str:
    return result.outcome.value if result is not None else EngineOutcome.NOT_RUN.value


@dataclass
class CheckResult:
    root: Root
    state: CheckState = CheckState.IDLE
    classification: Optional[Classification] = None
    reason: str = ""
    engine_a: Optional[EngineResult] = None
    engine_b: Optional[EngineResult] = None
    lock_a: Optional[EngineResult] = None
    lock_b: Optional[EngineResult] = None
    problems: List[str] = field(default_factory=list)
    consistency_time: float = 0.0

    @property
    def disagrees(self) -> bool:
        return self.classification is Classification.DISAGREE

    def classify(self, classification: Classification, reason: str = "") -> None:
        self.classification = classification
        self.reason = reason
        self.state = CheckState.CLASSIFIED

    def record(self) -> ComparisonRecord:
        name, vers = self.root
        return ComparisonRecord(
            package=name,
            version=str(vers),
            engine_a_outcome=_outcome(self.engine_a),
            engine_b_outcome=_outcome(self.engine_b),
            classification=self.classification.value if self.classification else "",
            engine_a_time=_duration(self.engine_a),
            engine_b_time=_duration(self.engine_b),
            engine_a_lock_time=_duration(self.lock_a),
            engine_b_lock_time=_duration(self.lock_b),
            consistency_time=self.consistency_time,
            reason=self.reason,
        )


class DifferentialChecker:
    """Runs engine A, then engine B, and classifies the pair of outcomes.

    The registry and the reference index are only read, so one checker can
    serve every root of a worker.
    """

    def __init__(
        self,
        registry: Registry,
        mode: Mode = Mode.ALL,
        timeout: Optional[float] = None,
        max_rounds: int = 200_000,
        index: Optional[ReferenceIndex] = None,
    ) -> None:
        self.registry = registry
        self.mode = mode
        self.timeout = timeout
        self.max_rounds = max_rounds
        self.index = index if index is not None else ReferenceIndex.build(registry)
        self.source_a = ResolvelibSource(registry)
        self.source_b = ReferenceSource(registry, self.index)

    def check(self, root: Root) -> CheckResult:
        deadline = time.monotonic() + self.timeout if self.timeout else None
        result = CheckResult(root)

        if self.mode.runs_engine_a:
            result.engine_a = run_engine_a(self.source_a, root, deadline, self.max_rounds)
            result.state = CheckState.RAN_ENGINE_A
        if self.mode.runs_engine_b and root in self.index:
            result.engine_b = run_engine_b(self.source_b, root, deadline)
            result.state = CheckState.RAN_ENGINE_B

        self._classify(result)
        if (
            self.mode.lock_checks
            and result.classification is Classification.AGREE
            and result.engine_a.solved
            and result.engine_b.solved
        ):
            self._check_locks(result, deadline)

        logger.debug(
            "%s@%s: %s %s", root[0], root[1], result.classification.value, result.reason
        )
        return result

    def _verify(self, result: CheckResult) -> None:
        start = time.perf_counter()
        for engine in (result.engine_a, result.engine_b):
            if engine is not None and engine.solved:
                result.problems.extend(
                    f"{engine.engine}: {problem}"
                    for problem in check_solution(self.registry, result.root, engine.assignment)
                )
        result.consistency_time = time.perf_counter() - start

    def _classify(self, result: CheckResult) -> None:
        a, b = result.engine_a, result.engine_b
        if any(r is not None and r.outcome is EngineOutcome.TIMEOUT for r in (a, b)):
            result.classify(Classification.TIMEOUT, "per-unit timeout")
            return

        self._verify(result)
        if result.problems:
            result.classify(Classification.DISAGREE, "inconsistent solution: " + "; ".join(result.problems))
            return

        if a is None or b is None:
            if b is None and self.mode.runs_engine_b:
                reason = "root missing from reference index"
            else:
                reason = f"{ENGINE_A if a is None else ENGINE_B} not run"
            result.classify(Classification.SKIPPED, reason)
            return

        if a.solved and b.solved:
            result.classify(Classification.AGREE)
        elif a.outcome is EngineOutcome.NO_SOLUTION and b.outcome is EngineOutcome.NO_SOLUTION:
            result.classify(Classification.AGREE)
        elif b.is_benign_cycle():
            result.classify(Classification.SKIPPED, "cyclic package dependency")
        else:
            reason = f"{ENGINE_A} {a.outcome.value} vs {ENGINE_B} {b.outcome.value}"
            detail = "; ".join(r.error for r in (a, b) if r.error)
            if detail:
                reason = f"{reason}: {detail}"
            result.classify(Classification.DISAGREE, reason)

    def _check_locks(self, result: CheckResult, deadline: Optional[float]) -> None:
        """Each engine re-resolves with the other engine's solution as a lock file."""
        root = result.root
        result.lock_a = run_engine_a(
            self.source_a.with_pins(result.engine_b.assignment.versions),
            root,
            deadline,
            self.max_rounds,
        )
        result.lock_b = run_engine_b(
            self.source_b.with_pins(result.engine_a.assignment.versions), root, deadline
        )

        if any(r.outcome is EngineOutcome.TIMEOUT for r in (result.lock_a, result.lock_b)):
            result.classify(Classification.TIMEOUT, "per-unit timeout during lock check")
        elif not result.lock_a.solved:
            result.classify(
                Classification.DISAGREE,
                f"lock: {ENGINE_A} rejects the {ENGINE_B} solution: {result.lock_a.error}",
            )
        elif not result.lock_b.solved and not result.lock_b.is_benign_cycle():
            result.classify(
                Classification.DISAGREE,
                f"lock: {ENGINE_B} rejects the {ENGINE_A} solution: {result.lock_b.error}",
            )
