"""
resolvelib provider over the canonical registry (engine A).

Identifiers are package names. A feature is its own identifier
``name[feature]`` whose candidates pin the base package to the same version,
the way pip models extras. A native library is the identifier
``links=<lib>``; each linking candidate pins it to itself, so two packages
linking the same library cannot both be selected.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Mapping, Optional, Tuple, Union

from resolvelib import AbstractProvider, BaseReporter, Resolver

from .adapters import ResolvelibSource
from .interfaces import Assignment, EngineTimeout, QueryMode
from .models import Dependency, DependencyKind, Version, parse_feature_entry
from .versioning import SemVer, VersionReq


logger = logging.getLogger(__name__)

LINKS_PREFIX = "links="
DEFAULT_FEATURE = "default"


def _identifier(name: str, feature: Optional[str]) -> str:
    return name if feature is None else f"{name}[{feature}]"


@dataclass(frozen=True)
class Requirement:
    """A version requirement on a package, or on one feature of it."""

    name: str
    req: VersionReq
    feature: Optional[str] = None

    @property
    def identifier(self) -> str:
        return _identifier(self.name, self.feature)


@dataclass(frozen=True)
class LinksRequirement:
    """Claims a native library for the (name, version) that declares it."""

    lib: str
    owner: Tuple[str, SemVer]

    @property
    def identifier(self) -> str:
        return LINKS_PREFIX + self.lib


@dataclass(frozen=True)
class Candidate:
    name: str
    vers: SemVer
    feature: Optional[str] = None
    version: Optional[Version] = field(default=None, compare=False, repr=False)

    @property
    def identifier(self) -> str:
        return _identifier(self.name, self.feature)


@dataclass(frozen=True)
class LinksCandidate:
    lib: str
    owner: Tuple[str, SemVer]

    @property
    def identifier(self) -> str:
        return LINKS_PREFIX + self.lib


AnyRequirement = Union[Requirement, LinksRequirement]
AnyCandidate = Union[Candidate, LinksCandidate]


def dependency_requirements(dep: Dependency) -> List[Requirement]:
    reqs = [Requirement(dep.package_name, dep.req)]
    reqs.extend(Requirement(dep.package_name, dep.req, f) for f in dep.features)
    if dep.default_features:
        reqs.append(Requirement(dep.package_name, dep.req, DEFAULT_FEATURE))
    return reqs


def feature_requirements(ver: Version, feature: str) -> List[Requirement]:
    """Requirements implied by enabling ``feature`` on ``ver`` (weak entries excluded)."""
    reqs = [Requirement(ver.name, VersionReq.exact(ver.vers))]
    for entry in ver.effective_features.get(feature, ()):
        try:
            parsed = parse_feature_entry(entry)
        except ValueError as e:
            logger.debug("Ignoring feature entry of %s: %s", ver, e)
            continue
        if parsed.dep is None:
            reqs.append(Requirement(ver.name, VersionReq.exact(ver.vers), parsed.feature))
            continue
        if parsed.weak:
            continue
        for dep in ver.deps:
            if dep.name != parsed.dep or dep.kind is DependencyKind.DEV:
                continue
            reqs.extend(dependency_requirements(dep))
            if parsed.feature is not None:
                reqs.append(Requirement(dep.package_name, dep.req, parsed.feature))
    return reqs


def root_requirements(name: str, vers: SemVer, root: Optional[Version]) -> List[Requirement]:
    """The root pins ``name`` to ``vers`` with default and every declared feature."""
    pin = VersionReq.exact(vers)
    reqs = [Requirement(name, pin), Requirement(name, pin, DEFAULT_FEATURE)]
    if root is not None:
        reqs.extend(Requirement(name, pin, f) for f in sorted(root.effective_features))
    return reqs


class RegistryProvider(AbstractProvider):
    """resolvelib provider backed by a :class:`ResolvelibSource`."""

    def __init__(self, source: ResolvelibSource) -> None:
        self._source = source

    def identify(self, requirement_or_candidate: Union[AnyRequirement, AnyCandidate]) -> str:
        return requirement_or_candidate.identifier

    def get_preference(self, identifier, resolutions, candidates, information, backtrack_causes):
        """Pin native-library claims first, then go by identifier."""
        return (not identifier.startswith(LINKS_PREFIX), identifier)

    def find_matches(
        self,
        identifier: str,
        requirements: Mapping[str, Iterator[AnyRequirement]],
        incompatibilities: Mapping[str, Iterator[AnyCandidate]],
    ) -> List[AnyCandidate]:
        reqs = list(requirements[identifier])
        bad = set(incompatibilities[identifier])
        if not reqs:
            return []

        if identifier.startswith(LINKS_PREFIX):
            owners = {r.owner for r in reqs}
            if len(owners) != 1:
                return []
            candidate = LinksCandidate(reqs[0].lib, owners.pop())
            return [] if candidate in bad else [candidate]

        first = reqs[0]
        matches: List[AnyCandidate] = []
        for ver in self._source.lookup(first.name, first.req, QueryMode.EXACT):
            if not all(r.req.matches(ver.vers) for r in reqs[1:]):
                continue
            if (
                first.feature is not None
                and first.feature != DEFAULT_FEATURE
                and first.feature not in ver.effective_features
            ):
                continue
            candidate = Candidate(ver.name, ver.vers, first.feature, ver)
            if candidate not in bad:
                matches.append(candidate)
        return matches

    def is_satisfied_by(self, requirement: AnyRequirement, candidate: AnyCandidate) -> bool:
        if isinstance(requirement, LinksRequirement):
            return isinstance(candidate, LinksCandidate) and candidate.owner == requirement.owner
        return (
            isinstance(candidate, Candidate)
            and candidate.name == requirement.name
            and requirement.req.matches(candidate.vers)
        )

    def get_dependencies(self, candidate: AnyCandidate) -> List[AnyRequirement]:
        if isinstance(candidate, LinksCandidate):
            return []
        ver = candidate.version
        if candidate.feature is not None:
            return feature_requirements(ver, candidate.feature)

        deps: List[AnyRequirement] = []
        for dep in ver.deps:
            if dep.kind is DependencyKind.DEV or dep.optional:
                continue
            deps.extend(dependency_requirements(dep))
        if ver.links is not None:
            deps.append(LinksRequirement(ver.links, ver.key))
        return deps


class DeadlineReporter(BaseReporter):
    """Aborts a resolution once the monotonic ``deadline`` has passed."""

    def __init__(self, deadline: Optional[float] = None) -> None:
        self.deadline = deadline
        self.rounds = 0

    def starting_round(self, index: int) -> None:
        self.rounds = index
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise EngineTimeout(f"resolvelib timed out after {index} rounds")


def to_assignment(mapping: Mapping[str, AnyCandidate]) -> Assignment:
    versions = {}
    features = {}
    for candidate in mapping.values():
        if isinstance(candidate, LinksCandidate):
            continue
        if candidate.feature is None:
            versions[candidate.name] = candidate.vers
            features.setdefault(candidate.name, set())
        elif (
            candidate.feature != DEFAULT_FEATURE
            or DEFAULT_FEATURE in candidate.version.effective_features
        ):
            features.setdefault(candidate.name, set()).add(candidate.feature)
    return Assignment(versions, {name: frozenset(fs) for name, fs in features.items()})


def resolve(
    source: ResolvelibSource,
    name: str,
    vers: SemVer,
    deadline: Optional[float] = None,
    max_rounds: int = 200_000,
) -> Assignment:
    """Resolve ``name@vers`` with resolvelib; resolvelib exceptions propagate."""
    requirements = root_requirements(name, vers, source.registry.lookup(name, vers))
    reporter = DeadlineReporter(deadline)
    resolver = Resolver(RegistryProvider(source), reporter)
    result = resolver.resolve(requirements, max_rounds=max_rounds)
    logger.debug("resolvelib resolved %s@%s in %d rounds", name, vers, reporter.rounds)
    return to_assignment(result.mapping)
