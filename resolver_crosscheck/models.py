"""
Canonical registry data model.

Every value here is immutable and hashable. Names, feature names and feature
sets are interned, versions and requirements are memoized by
:mod:`resolver_crosscheck.versioning`, so equal content shares one object.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from functools import cached_property, lru_cache
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from .versioning import ANY, SemVer, VersionReq, parse_requirement, parse_version


FeatureSet = Tuple[str, ...]
FeatureTable = Tuple[Tuple[str, FeatureSet], ...]


class ParseError(ValueError):
    """A raw registry record could not be parsed."""

    def __init__(self, field: str, value: Any, reason: str = "") -> None:
        self.field = field
        self.value = value
        self.reason = reason
        message = f"Invalid {field}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DependencyKind(str, Enum):
    NORMAL = "normal"
    DEV = "dev"
    BUILD = "build"


def _typed(raw: Mapping[str, Any], key: str, kind: Union[type, Tuple[type, ...]], default: Any = None) -> Any:
    """Return ``raw[key]``, or ``default`` when absent or null; raise on a wrong type."""
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ParseError(key, value, "wrong type")
    return value


def _string_list(key: str, value: Any) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ParseError(key, value, "expected a list of strings")
    return value


def _feature_table(key: str, value: Any) -> Dict[str, List[str]]:
    if not isinstance(value, Mapping):
        raise ParseError(key, value, "expected a table")
    table = {}
    for feature, implied in value.items():
        if not isinstance(feature, str) or not feature:
            raise ParseError(f"{key} name", feature)
        table[feature] = _string_list(f"{key}.{feature}", implied)
    return table


@lru_cache(maxsize=None)
def _intern_feature_set(features: FeatureSet) -> FeatureSet:
    return features


def intern_features(features: Iterable[str]) -> FeatureSet:
    """Return the shared, sorted and deduplicated tuple for ``features``."""
    return _intern_feature_set(tuple(sorted({sys.intern(str(f)) for f in features})))


class FeatureEntry(NamedTuple):
    """One entry of a feature's implication list.

    ``g`` enables feature ``g`` of the same package, ``dep:d`` activates the
    optional dependency ``d``, ``d/x`` activates ``d`` and its feature ``x``,
    and ``d?/x`` enables ``x`` only if ``d`` is activated by something else.
    """

    feature: Optional[str]
    dep: Optional[str] = None
    weak: bool = False


@lru_cache(maxsize=None)
def parse_feature_entry(entry: str) -> FeatureEntry:
    if entry.startswith("dep:"):
        dep = entry[len("dep:"):]
        if not dep or "/" in dep:
            raise ValueError(f"Malformed feature entry: {entry!r}")
        return FeatureEntry(None, sys.intern(dep))
    if "/" in entry:
        dep, _, feature = entry.partition("/")
        weak = dep.endswith("?")
        dep = dep.rstrip("?")
        if not dep or not feature or "/" in feature or dep.startswith("dep:"):
            raise ValueError(f"Malformed feature entry: {entry!r}")
        return FeatureEntry(sys.intern(feature), sys.intern(dep), weak)
    if not entry:
        raise ValueError("Empty feature entry")
    return FeatureEntry(sys.intern(entry))


@dataclass(frozen=True)
class Dependency:
    """A dependency edge as declared by one published version."""

    name: str
    package_name: str
    req: VersionReq = ANY
    features: FeatureSet = ()
    default_features: bool = True
    kind: DependencyKind = DependencyKind.NORMAL
    optional: bool = False

    @property
    def sort_key(self) -> Tuple:
        return (
            self.package_name,
            self.name,
            self.kind.value,
            self.req.text,
            self.optional,
            self.default_features,
            self.features,
        )

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Dependency":
        if not isinstance(raw, Mapping):
            raise ParseError("dependency", raw)
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ParseError("dependency name", name)
        package_name = (
            _typed(raw, "package_name", str) or _typed(raw, "package", str) or name
        )

        req_text = _typed(raw, "req", str, "*")
        try:
            req = parse_requirement(req_text)
        except ValueError as e:
            raise ParseError("requirement", req_text, str(e)) from e

        kind_text = _typed(raw, "kind", str) or DependencyKind.NORMAL.value
        try:
            kind = DependencyKind(kind_text)
        except ValueError as e:
            raise ParseError("dependency kind", kind_text) from e

        return cls(
            name=sys.intern(name),
            package_name=sys.intern(package_name),
            req=req,
            features=intern_features(_string_list("features", raw.get("features") or [])),
            default_features=_typed(raw, "default_features", bool, True),
            kind=kind,
            optional=_typed(raw, "optional", bool, False),
        )

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"name": self.name}
        if self.package_name != self.name:
            raw["package_name"] = self.package_name
        if self.req != ANY:
            raw["req"] = self.req.text
        if self.features:
            raw["features"] = list(self.features)
        if not self.default_features:
            raw["default_features"] = False
        if self.kind is not DependencyKind.NORMAL:
            raw["kind"] = self.kind.value
        if self.optional:
            raw["optional"] = True
        return raw


@dataclass(frozen=True)
class Version:
    """One published release of a package."""

    name: str
    vers: SemVer
    deps: Tuple[Dependency, ...] = ()
    features: FeatureTable = ()
    links: Optional[str] = None
    yanked: bool = False

    @property
    def key(self) -> Tuple[str, SemVer]:
        return (self.name, self.vers)

    def __str__(self) -> str:
        return f"{self.name}@{self.vers}"

    @cached_property
    def effective_features(self) -> Dict[str, FeatureSet]:
        """Feature table including the implicit feature of each optional dependency."""
        table = dict(self.features)
        explicit = set()
        for entries in table.values():
            for entry in entries:
                if entry.startswith("dep:"):
                    explicit.add(entry[len("dep:"):])
        for dep in self.deps:
            if dep.optional and dep.name not in explicit and dep.name not in table:
                table[dep.name] = (f"dep:{dep.name}",)
        return table

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Version":
        """Build a canonical version from an index line or a persisted record.

        Raises :class:`ParseError` if any field is invalid; nothing is
        partially built.
        """
        if not isinstance(raw, Mapping):
            raise ParseError("record", raw)
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ParseError("package name", name)

        vers_text = raw.get("vers")
        if not isinstance(vers_text, str):
            raise ParseError("version", vers_text)
        try:
            vers = parse_version(vers_text)
        except ValueError as e:
            raise ParseError("version", vers_text, str(e)) from e

        deps = sorted(
            (Dependency.from_raw(d) for d in _typed(raw, "deps", list, [])),
            key=lambda d: d.sort_key,
        )

        table: Dict[str, List[str]] = {}
        for key in ("features", "features2"):
            if raw.get(key) is not None:
                table.update(_feature_table(key, raw[key]))
        features = tuple(
            (sys.intern(feature), intern_features(implied))
            for feature, implied in sorted(table.items())
        )

        links = _typed(raw, "links", str)
        return cls(
            name=sys.intern(name),
            vers=vers,
            deps=tuple(deps),
            features=features,
            links=sys.intern(links) if links else None,
            yanked=_typed(raw, "yanked", bool, False),
        )

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"name": self.name, "vers": str(self.vers)}
        if self.deps:
            raw["deps"] = [d.to_raw() for d in self.deps]
        if self.features:
            raw["features"] = {f: list(implied) for f, implied in self.features}
        if self.links is not None:
            raw["links"] = self.links
        if self.yanked:
            raw["yanked"] = True
        return raw

