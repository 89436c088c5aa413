"""
Immutable registry snapshot built from raw version records.
"""

from __future__ import annotations

import logging
from collections import deque
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .interfaces import Root
from .models import DependencyKind, ParseError, Version
from .versioning import SemVer


logger = logging.getLogger(__name__)

NamePredicate = Callable[[str], bool]
VersionPredicate = Callable[[Version], bool]


class Registry:
    """Package name -> ordered mapping of version number -> :class:`Version`.

    Instances are never mutated after construction. Shrinking returns a new
    registry and leaves the original usable by other comparisons.
    """

    def __init__(
        self,
        packages: Mapping[str, Mapping[SemVer, Version]],
        errors: Iterable[ParseError] = (),
    ) -> None:
        self._packages: Mapping[str, Mapping[SemVer, Version]] = MappingProxyType(
            {
                name: MappingProxyType(dict(sorted(by_version.items())))
                for name, by_version in sorted(packages.items())
                if by_version
            }
        )
        self.errors: Tuple[ParseError, ...] = tuple(errors)

    @classmethod
    def build(
        cls,
        records: Iterable[Mapping[str, Any]],
        name_predicate: Optional[NamePredicate] = None,
        version_predicate: Optional[VersionPredicate] = None,
    ) -> "Registry":
        """Parse raw records, dropping invalid ones and those failing a predicate.

        Later records for the same (name, version) overwrite earlier ones.
        """
        packages: Dict[str, Dict[SemVer, Version]] = {}
        errors: List[ParseError] = []
        for raw in records:
            name = raw.get("name") if isinstance(raw, Mapping) else None
            if name_predicate is not None and isinstance(name, str) and not name_predicate(name):
                continue
            try:
                ver = Version.from_raw(raw)
            except ParseError as e:
                logger.debug("Skipping record for %s: %s", name, e)
                errors.append(e)
                continue
            if version_predicate is not None and not version_predicate(ver):
                continue
            packages.setdefault(ver.name, {})[ver.vers] = ver

        if errors:
            logger.warning("Skipped %d unparseable records", len(errors))
        return cls(packages, errors)

    @classmethod
    def from_versions(cls, versions: Iterable[Version]) -> "Registry":
        packages: Dict[str, Dict[SemVer, Version]] = {}
        for ver in versions:
            packages.setdefault(ver.name, {})[ver.vers] = ver
        return cls(packages)

    @property
    def packages(self) -> Mapping[str, Mapping[SemVer, Version]]:
        return self._packages

    def names(self) -> List[str]:
        return list(self._packages)

    def get(self, name: str) -> Mapping[SemVer, Version]:
        return self._packages.get(name, MappingProxyType({}))

    def lookup(self, name: str, vers: SemVer) -> Optional[Version]:
        return self.get(name).get(vers)

    def versions(self) -> List[Version]:
        """All versions flattened in (name, version) order."""
        return [ver for by_version in self._packages.values() for ver in by_version.values()]

    def roots(self, name_filter: Optional[str] = None) -> List[Root]:
        return [
            (name, vers)
            for name, by_version in self._packages.items()
            if name_filter is None or name_filter in name
            for vers in by_version
        ]

    def reachable_names(self, root_name: str) -> Set[str]:
        """Names reachable from ``root_name`` through any version's non-dev dependencies."""
        seen = {root_name}
        queue = deque([root_name])
        while queue:
            name = queue.popleft()
            for ver in self.get(name).values():
                for dep in ver.deps:
                    if dep.kind is DependencyKind.DEV or dep.package_name in seen:
                        continue
                    seen.add(dep.package_name)
                    queue.append(dep.package_name)
        return seen

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        name, vers = key
        return vers in self.get(name)

    def __iter__(self) -> Iterator[Version]:
        return iter(self.versions())

    def __len__(self) -> int:
        return sum(len(by_version) for by_version in self._packages.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Registry):
            return NotImplemented
        return {n: dict(v) for n, v in self._packages.items()} == {
            n: dict(v) for n, v in other._packages.items()
        }

    def __repr__(self) -> str:
        return f"Registry({len(self._packages)} packages, {len(self)} versions)"

    def __reduce__(self):
        return (Registry.from_versions, (self.versions(),))
