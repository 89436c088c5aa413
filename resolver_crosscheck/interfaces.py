"""
Interfaces shared by the resolver adapters, the engines and the checker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .versioning import SemVer, VersionReq


class QueryMode(str, Enum):
    """How a package source filters the versions of a name.

    ``EXACT`` returns only versions matching the requirement; the other modes
    return every version and leave filtering to the calling engine.
    """

    EXACT = "exact"
    ALTERNATIVES = "alternatives"
    NORMALIZED = "normalized"


@runtime_checkable
class PackageSource(Protocol):
    """Synchronous lookup of published versions by name and requirement."""

    def lookup(self, name: str, requirement: Optional[VersionReq], mode: QueryMode) -> List:
        ...


class EngineOutcome(str, Enum):
    SOLVED = "solved"
    NO_SOLUTION = "no_solution"
    ERROR = "error"
    TIMEOUT = "timeout"
    NOT_RUN = "not_run"


class ResolveErrorKind(str, Enum):
    """Structured failure classes reported by the reference engine."""

    NO_SOLUTION = "no_solution"
    CYCLIC = "cyclic"
    INTERNAL = "internal"


CYCLIC_MESSAGE_PREFIX = "cyclic package dependency"


class EngineTimeout(RuntimeError):
    """Raised inside an engine once its per-unit deadline has passed."""


@dataclass(frozen=True)
class Assignment:
    """A resolved graph: one version and a set of enabled features per name."""

    versions: Mapping[str, SemVer]
    features: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.versions)


@dataclass
class EngineResult:
    """Outcome of one engine invocation, timed in seconds."""

    engine: str
    outcome: EngineOutcome
    duration: float = 0.0
    assignment: Optional[Assignment] = None
    error: Optional[str] = None
    error_kind: Optional[ResolveErrorKind] = None

    @property
    def solved(self) -> bool:
        return self.outcome is EngineOutcome.SOLVED

    def is_benign_cycle(self) -> bool:
        """True for the cyclic-dependency failure class the other engine does not model."""
        if self.outcome is not EngineOutcome.ERROR:
            return False
        if self.error_kind is not None:
            return self.error_kind is ResolveErrorKind.CYCLIC
        # TODO: drop the message fallback once every engine error carries a kind.
        return bool(self.error) and self.error.startswith(CYCLIC_MESSAGE_PREFIX)


Root = Tuple[str, SemVer]
