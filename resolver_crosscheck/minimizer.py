"""
Shrink a disagreeing registry snapshot to a small reproduction.

The search is a one-at-a-time fixed point: scan the versions in order, drop
any whose removal keeps the root disagreeing, and repeat until a full pass
removes nothing. Every accepted step keeps the disagreement, so the result is
sound; it is 1-minimal with respect to single removals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .checker import DifferentialChecker
from .config import Mode
from .interfaces import Root
from .models import Version
from .registry import Registry


logger = logging.getLogger(__name__)

Predicate = Callable[[Registry, Root], bool]


def disagreement_predicate(
    mode: Mode = Mode.ALL,
    timeout: Optional[float] = None,
    max_rounds: int = 200_000,
) -> Predicate:
    """True when a fresh checker over the registry classifies the root DISAGREE."""

    def still_disagrees(registry: Registry, root: Root) -> bool:
        checker = DifferentialChecker(registry, mode=mode, timeout=timeout, max_rounds=max_rounds)
        return checker.check(root).disagrees

    return still_disagrees


@dataclass
class MinimizationResult:
    root: Root
    versions: List[Version]
    original_size: int
    checks: int

    @property
    def removed(self) -> int:
        return self.original_size - len(self.versions)

    def registry(self) -> Registry:
        return Registry.from_versions(self.versions)


class Minimizer:
    def __init__(self, root: Root, predicate: Optional[Predicate] = None) -> None:
        self.root = root
        self.predicate = predicate or disagreement_predicate()
        self.checks = 0

    def _disagrees(self, versions: Sequence[Version]) -> bool:
        self.checks += 1
        return self.predicate(Registry.from_versions(versions), self.root)

    def _prune_unreachable(self, versions: List[Version]) -> List[Version]:
        reachable = Registry.from_versions(versions).reachable_names(self.root[0])
        kept = [v for v in versions if v.name in reachable]
        if len(kept) == len(versions):
            return versions
        if self._disagrees(kept):
            logger.info("Dropped %d unreachable versions", len(versions) - len(kept))
            return kept
        return versions

    def minimize(self, versions: Sequence[Version]) -> MinimizationResult:
        """Raises ``ValueError`` if ``versions`` does not disagree on the root."""
        current = list(versions)
        original_size = len(current)
        if not self._disagrees(current):
            name, vers = self.root
            raise ValueError(f"{name}@{vers} does not disagree on the given snapshot")

        current = self._prune_unreachable(current)

        changed = True
        while changed:
            changed = False
            i = 0
            while i < len(current):
                candidate = current[:i] + current[i + 1:]
                if self._disagrees(candidate):
                    logger.debug("Removed %s (%d left)", current[i], len(candidate))
                    current = candidate
                    changed = True
                else:
                    i += 1

        logger.info(
            "Minimized %s@%s from %d to %d versions in %d checks",
            self.root[0],
            self.root[1],
            original_size,
            len(current),
            self.checks,
        )
        return MinimizationResult(self.root, current, original_size, self.checks)


def minimize(
    versions: Sequence[Version],
    root: Root,
    predicate: Optional[Predicate] = None,
) -> MinimizationResult:
    return Minimizer(root, predicate).minimize(versions)
