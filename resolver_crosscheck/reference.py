"""
Reference resolver (engine B).

A cargo-style resolver: dependencies are activated depth first, candidates
are tried newest first, and a conflict backtracks to the most recent choice
that still has untried candidates. Each package name is activated at most
once, a native library may be linked by at most one package, and a solved
graph that contains a cycle is rejected as a cyclic package dependency.

The engine has its own summary types and string pool; it only talks to a
registry through :meth:`Registry.query`.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
    Union,
)

from .interfaces import CYCLIC_MESSAGE_PREFIX, EngineTimeout, ResolveErrorKind
from .versioning import SemVer, VersionReq


logger = logging.getLogger(__name__)


class InternPool:
    """String interning domain private to this engine."""

    def __init__(self) -> None:
        self._strings: Dict[str, str] = {}

    def __call__(self, value: str) -> str:
        return self._strings.setdefault(value, value)

    def __len__(self) -> int:
        return len(self._strings)


intern = InternPool()


class DepKind(Enum):
    Normal = "normal"
    Development = "development"
    Build = "build"


class QueryKind(Enum):
    Exact = "exact"
    Alternatives = "alternatives"
    Normalized = "normalized"


@dataclass(frozen=True)
class PackageId:
    name: str
    version: SemVer

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"


@dataclass(frozen=True)
class Dependency:
    name_in_toml: str
    package_name: str
    req: VersionReq
    features: FrozenSet[str] = frozenset()
    uses_default_features: bool = True
    kind: DepKind = DepKind.Normal
    optional: bool = False

    def matches_id(self, package_id: PackageId) -> bool:
        return package_id.name == self.package_name and self.req.matches(package_id.version)

    def matches(self, summary: "Summary") -> bool:
        return self.matches_id(summary.package_id)


@dataclass(frozen=True)
class FeatureName:
    name: str


@dataclass(frozen=True)
class DepName:
    dep_name: str


@dataclass(frozen=True)
class DepFeature:
    dep_name: str
    dep_feature: str
    weak: bool = False


FeatureValue = Union[FeatureName, DepName, DepFeature]


class FeatureError(ValueError):
    """A summary's feature table is inconsistent with its dependencies."""


def parse_feature_value(value: str) -> FeatureValue:
    if value.startswith("dep:"):
        dep_name = value[4:]
        if not dep_name or "/" in dep_name:
            raise FeatureError(f"invalid feature value `{value}`")
        return DepName(intern(dep_name))
    if "/" in value:
        dep_name, dep_feature = value.split("/", 1)
        weak = dep_name.endswith("?")
        dep_name = dep_name[:-1] if weak else dep_name
        if not dep_name or not dep_feature or "/" in dep_feature:
            raise FeatureError(f"invalid feature value `{value}`")
        return DepFeature(intern(dep_name), intern(dep_feature), weak)
    return FeatureName(intern(value))


class Summary:
    """Validated metadata of one package version."""

    def __init__(
        self,
        package_id: PackageId,
        dependencies: Sequence[Dependency],
        features: Mapping[str, Sequence[str]],
        links: Optional[str] = None,
    ) -> None:
        self.package_id = package_id
        self.dependencies: Tuple[Dependency, ...] = tuple(dependencies)
        self.links = intern(links) if links else None
        self.features = self._build_feature_map(features)

    def _build_feature_map(
        self, features: Mapping[str, Sequence[str]]
    ) -> Dict[str, Tuple[FeatureValue, ...]]:
        by_name: Dict[str, List[Dependency]] = {}
        for dep in self.dependencies:
            by_name.setdefault(dep.name_in_toml, []).append(dep)

        parsed = {
            intern(name): tuple(parse_feature_value(v) for v in values)
            for name, values in features.items()
        }
        explicit = {
            fv.dep_name for values in parsed.values() for fv in values if isinstance(fv, DepName)
        }
        for dep in self.dependencies:
            if dep.optional and dep.name_in_toml not in explicit and dep.name_in_toml not in parsed:
                parsed[dep.name_in_toml] = (DepName(dep.name_in_toml),)

        for name, values in parsed.items():
            for fv in values:
                if isinstance(fv, FeatureName):
                    if fv.name not in parsed:
                        raise FeatureError(
                            f"feature `{name}` includes `{fv.name}` which is neither "
                            f"a dependency nor another feature"
                        )
                elif isinstance(fv, DepName):
                    deps = by_name.get(fv.dep_name, [])
                    if not any(d.optional for d in deps):
                        raise FeatureError(
                            f"feature `{name}` includes `dep:{fv.dep_name}`, but "
                            f"`{fv.dep_name}` is not an optional dependency"
                        )
                elif fv.dep_name not in by_name:
                    raise FeatureError(
                        f"feature `{name}` includes `{fv.dep_name}/{fv.dep_feature}`, but "
                        f"`{fv.dep_name}` is not a dependency"
                    )
        return parsed

    @property
    def name(self) -> str:
        return self.package_id.name

    @property
    def version(self) -> SemVer:
        return self.package_id.version

    def __repr__(self) -> str:
        return f"Summary({self.package_id})"


class Registry(Protocol):
    def query(
        self, dep: Dependency, kind: QueryKind, f: Callable[[Summary], None]
    ) -> None:
        ...


class ResolveError(Exception):
    def __init__(self, kind: ResolveErrorKind, message: str) -> None:
        self.kind = kind
        super().__init__(message)


@dataclass
class Resolve:
    """A successful resolution."""

    activations: Dict[str, Summary]
    features: Dict[str, FrozenSet[str]]
    graph: Dict[PackageId, Set[PackageId]] = field(default_factory=dict)


@dataclass(frozen=True)
class _State:
    activations: Mapping[str, Summary]
    features: Mapping[str, FrozenSet[str]]
    links: Mapping[str, PackageId]
    edges: FrozenSet[Tuple[PackageId, PackageId]]


# ("dep", parent, dependency) or ("feature", package name, feature)
_Work = Tuple
_Step = Tuple[_State, Tuple[_Work, ...]]


class Resolver:
    """Backtracking resolver over one :class:`Registry`."""

    def __init__(self, registry: Registry, deadline: Optional[float] = None) -> None:
        self.registry = registry
        self.deadline = deadline
        self._last_conflict = "no candidates"
        self.steps = 0

    def resolve(self, root_deps: Iterable[Dependency]) -> Resolve:
        state = _State({}, {}, {}, frozenset())
        pending: Tuple[_Work, ...] = tuple(("dep", None, dep) for dep in reversed(list(root_deps)))
        frames: List[Tuple[Iterator[_Step], Tuple[_Work, ...]]] = []

        while pending:
            self._check_deadline()
            self.steps += 1
            item, rest = pending[-1], pending[:-1]
            frames.append((self._expand(state, item), rest))
            while True:
                if not frames:
                    raise ResolveError(
                        ResolveErrorKind.NO_SOLUTION,
                        f"failed to select a version: {self._last_conflict}",
                    )
                alternatives, rest = frames[-1]
                step = next(alternatives, None)
                if step is None:
                    frames.pop()
                    continue
                state, new_items = step
                pending = rest + tuple(reversed(new_items))
                break

        graph: Dict[PackageId, Set[PackageId]] = {
            s.package_id: set() for s in state.activations.values()
        }
        for parent, child in state.edges:
            graph[parent].add(child)
        self._check_cycles(graph)
        return Resolve(dict(state.activations), dict(state.features), graph)

    def _check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise EngineTimeout(f"reference resolver timed out after {self.steps} steps")

    def _expand(self, state: _State, item: _Work) -> Iterator[_Step]:
        if item[0] == "feature":
            _, name, feature = item
            step = self._enable(state, state.activations[name], {feature})
            if step is not None:
                yield step
            return

        _, parent, dep = item
        requested = set(dep.features)
        if dep.uses_default_features:
            requested.add("default")

        existing = state.activations.get(dep.package_name)
        if existing is not None:
            if not dep.matches(existing):
                self._last_conflict = (
                    f"`{dep.package_name}` {dep.req} conflicts with activated {existing.package_id}"
                )
                return
            step = self._enable(self._with_edge(state, parent, existing), existing, requested)
            if step is not None:
                yield step
            return

        candidates: List[Summary] = []
        self.registry.query(dep, QueryKind.Exact, candidates.append)
        if not candidates:
            self._last_conflict = f"no version of `{dep.package_name}` matches {dep.req}"
        candidates.sort(key=lambda s: s.version, reverse=True)

        for summary in candidates:
            if summary.links is not None and summary.links in state.links:
                self._last_conflict = (
                    f"{summary.package_id} links to `{summary.links}` already linked by "
                    f"{state.links[summary.links]}"
                )
                continue
            activated = _State(
                {**state.activations, summary.name: summary},
                {**state.features, summary.name: frozenset()},
                {**state.links, summary.links: summary.package_id}
                if summary.links is not None
                else state.links,
                state.edges,
            )
            activated = self._with_edge(activated, parent, summary)
            deps = tuple(
                ("dep", summary, d)
                for d in summary.dependencies
                if d.kind is not DepKind.Development and not d.optional
            )
            step = self._enable(activated, summary, requested)
            if step is None:
                continue
            enabled, feature_items = step
            yield enabled, deps + feature_items

    @staticmethod
    def _with_edge(state: _State, parent: Optional[Summary], child: Summary) -> _State:
        if parent is None:
            return state
        return dataclasses.replace(state, edges=state.edges | {(parent.package_id, child.package_id)})

    def _enable(self, state: _State, summary: Summary, requested: Set[str]) -> Optional[_Step]:
        current = state.features.get(summary.name, frozenset())
        new = requested - current
        if not new:
            return state, ()

        items: List[_Work] = []
        for feature in sorted(new):
            if feature not in summary.features:
                if feature == "default":
                    continue
                self._last_conflict = f"{summary.package_id} has no feature `{feature}`"
                return None
            for fv in summary.features[feature]:
                if isinstance(fv, FeatureName):
                    items.append(("feature", summary.name, fv.name))
                elif isinstance(fv, DepName):
                    items.extend(
                        ("dep", summary, d)
                        for d in summary.dependencies
                        if d.name_in_toml == fv.dep_name and d.kind is not DepKind.Development
                    )
                elif not fv.weak:
                    items.extend(
                        ("dep", summary, dataclasses.replace(d, features=d.features | {fv.dep_feature}))
                        for d in summary.dependencies
                        if d.name_in_toml == fv.dep_name and d.kind is not DepKind.Development
                    )

        features = {**state.features, summary.name: current | new}
        return dataclasses.replace(state, features=features), tuple(items)

    @staticmethod
    def _check_cycles(graph: Mapping[PackageId, Set[PackageId]]) -> None:
        visiting: List[PackageId] = []
        on_path: Set[PackageId] = set()
        done: Set[PackageId] = set()

        def visit(node: PackageId) -> None:
            visiting.append(node)
            on_path.add(node)
            for child in sorted(graph.get(node, ()), key=lambda p: p.name):
                if child in on_path:
                    cycle = visiting[visiting.index(child):] + [child]
                    path = "\n".join(f"    package `{p}`" for p in cycle)
                    raise ResolveError(
                        ResolveErrorKind.CYCLIC,
                        f"{CYCLIC_MESSAGE_PREFIX}: package `{child}` depends on itself. "
                        f"Cycle:\n{path}",
                    )
                if child not in done:
                    visit(child)
            visiting.pop()
            on_path.discard(node)
            done.add(node)

        for node in sorted(graph, key=lambda p: p.name):
            if node not in done:
                visit(node)


def resolve(
    root_deps: Iterable[Dependency],
    registry: Registry,
    deadline: Optional[float] = None,
) -> Resolve:
    """Resolve ``root_deps`` against ``registry``; raises :class:`ResolveError`."""
    resolver = Resolver(registry, deadline=deadline)
    result = resolver.resolve(root_deps)
    logger.debug("Reference resolution finished in %d steps", resolver.steps)
    return result
