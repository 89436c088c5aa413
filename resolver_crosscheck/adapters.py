"""
Format bridge between the canonical registry and each engine's package source.

Adapters borrow a :class:`Registry` and never copy it, so one can be built per
worker or per query run for free. They are synchronous: the registry is fully
in memory.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from . import reference
from .interfaces import QueryMode
from .models import Dependency, DependencyKind, Version
from .registry import Registry
from .versioning import SemVer, VersionReq


logger = logging.getLogger(__name__)

Pins = Mapping[str, SemVer]

_DEP_KINDS = {
    DependencyKind.NORMAL: reference.DepKind.Normal,
    DependencyKind.DEV: reference.DepKind.Development,
    DependencyKind.BUILD: reference.DepKind.Build,
}

_QUERY_KINDS = {
    reference.QueryKind.Exact: QueryMode.EXACT,
    reference.QueryKind.Alternatives: QueryMode.ALTERNATIVES,
    reference.QueryKind.Normalized: QueryMode.NORMALIZED,
}


class RegistrySource:
    """Shared lookup logic: name match, requirement filter in EXACT mode, optional pins."""

    def __init__(self, registry: Registry, pins: Optional[Pins] = None) -> None:
        self.registry = registry
        self.pins = pins

    def with_pins(self, pins: Pins):
        """Copy of this adapter where every pinned name only offers its pinned version."""
        locked = copy.copy(self)
        locked.pins = dict(pins)
        return locked

    def _versions(
        self, name: str, requirement: Optional[VersionReq], mode: QueryMode
    ) -> List[Version]:
        found = []
        pinned = self.pins.get(name) if self.pins is not None else None
        for vers, ver in self.registry.get(name).items():
            if pinned is not None and vers != pinned:
                continue
            if mode is QueryMode.EXACT and requirement is not None and not requirement.matches(vers):
                continue
            found.append(ver)
        found.reverse()
        return found


class ResolvelibSource(RegistrySource):
    """Package source for engine A; yields canonical versions newest first."""

    def lookup(
        self, name: str, requirement: Optional[VersionReq], mode: QueryMode
    ) -> List[Version]:
        return self._versions(name, requirement, mode)


def to_reference_dependency(dep: Dependency) -> reference.Dependency:
    return reference.Dependency(
        name_in_toml=reference.intern(dep.name),
        package_name=reference.intern(dep.package_name),
        req=dep.req,
        features=frozenset(reference.intern(f) for f in dep.features),
        uses_default_features=dep.default_features,
        kind=_DEP_KINDS[dep.kind],
        optional=dep.optional,
    )


def to_summary(ver: Version) -> reference.Summary:
    """Translate a canonical version; raises ``reference.FeatureError`` if invalid."""
    return reference.Summary(
        reference.PackageId(reference.intern(ver.name), ver.vers),
        [to_reference_dependency(d) for d in ver.deps],
        {reference.intern(f): [reference.intern(v) for v in implied] for f, implied in ver.features},
        ver.links,
    )


class ReferenceIndex:
    """Engine B's own materialized registry: every version that converts cleanly."""

    def __init__(
        self,
        summaries: Mapping[str, Mapping[SemVer, reference.Summary]],
        excluded: Tuple[Tuple[Version, str], ...] = (),
    ) -> None:
        self.summaries = summaries
        self.excluded = excluded

    @classmethod
    def build(cls, registry: Registry) -> "ReferenceIndex":
        summaries: Dict[str, Dict[SemVer, reference.Summary]] = {}
        excluded: List[Tuple[Version, str]] = []
        for ver in registry.versions():
            try:
                summary = to_summary(ver)
            except reference.FeatureError as e:
                logger.debug("Reference index excludes %s: %s", ver, e)
                excluded.append((ver, str(e)))
                continue
            summaries.setdefault(ver.name, {})[ver.vers] = summary
        return cls(summaries, tuple(excluded))

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        name, vers = key
        return vers in self.summaries.get(name, {})


class ReferenceSource(RegistrySource):
    """Package source for engine B, serving summaries from a :class:`ReferenceIndex`."""

    def __init__(
        self, registry: Registry, index: ReferenceIndex, pins: Optional[Pins] = None
    ) -> None:
        super().__init__(registry, pins)
        self.index = index

    def lookup(
        self, name: str, requirement: Optional[VersionReq], mode: QueryMode
    ) -> List[reference.Summary]:
        summaries = self.index.summaries.get(name, {})
        return [
            summaries[ver.vers]
            for ver in self._versions(name, requirement, mode)
            if ver.vers in summaries
        ]

    def query(
        self,
        dep: reference.Dependency,
        kind: reference.QueryKind,
        f: Callable[[reference.Summary], None],
    ) -> None:
        for summary in self.lookup(dep.package_name, dep.req, _QUERY_KINDS[kind]):
            f(summary)
