"""
Timed invocation of both engines, normalized to :class:`EngineResult`.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from resolvelib import InconsistentCandidate, ResolutionError, ResolutionImpossible

from . import provider, reference
from .adapters import ReferenceSource, ResolvelibSource, to_reference_dependency
from .interfaces import (
    Assignment,
    EngineOutcome,
    EngineResult,
    EngineTimeout,
    ResolveErrorKind,
    Root,
)
from .models import Dependency, Version
from .versioning import SemVer, VersionReq


logger = logging.getLogger(__name__)

ENGINE_A = "resolvelib"
ENGINE_B = "reference"


def _describe_impossible(error: ResolutionImpossible) -> str:
    causes = []
    for cause in error.causes:
        requirement = cause.requirement
        text = requirement.identifier
        if isinstance(requirement, provider.Requirement):
            text = f"{text} {requirement.req}"
        parent = cause.parent
        causes.append(f"{text} (required by {parent.identifier if parent else 'root'})")
    return "no solution: " + "; ".join(sorted(set(causes)))


def run_engine_a(
    source: ResolvelibSource,
    root: Root,
    deadline: Optional[float] = None,
    max_rounds: int = 200_000,
) -> EngineResult:
    name, vers = root
    start = time.perf_counter()
    try:
        assignment = provider.resolve(source, name, vers, deadline=deadline, max_rounds=max_rounds)
    except ResolutionImpossible as e:
        return EngineResult(
            ENGINE_A,
            EngineOutcome.NO_SOLUTION,
            time.perf_counter() - start,
            error=_describe_impossible(e),
        )
    except (ResolutionError, InconsistentCandidate) as e:
        logger.debug("resolvelib failed on %s@%s: %r", name, vers, e)
        return EngineResult(
            ENGINE_A, EngineOutcome.ERROR, time.perf_counter() - start, error=repr(e)
        )
    except EngineTimeout as e:
        return EngineResult(ENGINE_A, EngineOutcome.TIMEOUT, time.perf_counter() - start, error=str(e))
    return EngineResult(
        ENGINE_A, EngineOutcome.SOLVED, time.perf_counter() - start, assignment=assignment
    )


def reference_root(name: str, vers: SemVer, root: Optional[Version]) -> reference.Dependency:
    """Root dependency: ``name`` pinned to ``vers`` with default and every declared feature."""
    features = sorted(root.effective_features) if root is not None else []
    return to_reference_dependency(
        Dependency(name=name, package_name=name, req=VersionReq.exact(vers), features=tuple(features))
    )


def _reference_assignment(resolved: reference.Resolve) -> Assignment:
    versions = {}
    features = {}
    for name, summary in resolved.activations.items():
        versions[name] = summary.version
        enabled = resolved.features.get(name, frozenset())
        features[name] = frozenset(f for f in enabled if f in summary.features)
    return Assignment(versions, features)


def run_engine_b(
    source: ReferenceSource,
    root: Root,
    deadline: Optional[float] = None,
) -> EngineResult:
    name, vers = root
    root_dep = reference_root(name, vers, source.registry.lookup(name, vers))
    start = time.perf_counter()
    try:
        resolved = reference.resolve([root_dep], source, deadline=deadline)
    except reference.ResolveError as e:
        outcome = (
            EngineOutcome.NO_SOLUTION
            if e.kind is ResolveErrorKind.NO_SOLUTION
            else EngineOutcome.ERROR
        )
        return EngineResult(
            ENGINE_B, outcome, time.perf_counter() - start, error=str(e), error_kind=e.kind
        )
    except EngineTimeout as e:
        return EngineResult(ENGINE_B, EngineOutcome.TIMEOUT, time.perf_counter() - start, error=str(e))
    return EngineResult(
        ENGINE_B,
        EngineOutcome.SOLVED,
        time.perf_counter() - start,
        assignment=_reference_assignment(resolved),
    )
