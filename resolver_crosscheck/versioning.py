"""
Cargo-style version requirements over semantic versions.

Registry versions are SemVer 2.0 strings and are parsed with :mod:`semver`.
Requirements use cargo's syntax (``^1.2``, ``~1.2.3``, ``=1.0.0``,
``>=1, <2``, ``1.*``, ``*``) and follow cargo's matching rules, including the
pre-release rule: a pre-release only matches when some comparator names a
pre-release of the same ``major.minor.patch``. Parsed requirements are
memoized, so every occurrence of the same requirement text shares one
:class:`VersionReq`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import NamedTuple, Optional, Tuple

from semver import Version as SemVer


_NUMBER = r"0|[1-9]\d*"

_COMPARATOR = re.compile(
    rf"""
    ^(?P<op>=|>=|<=|>|<|~|\^)?\s*
    (?P<major>{_NUMBER}|\*|x|X)
    (?:\.(?P<minor>{_NUMBER}|\*|x|X))?
    (?:\.(?P<patch>{_NUMBER}|\*|x|X))?
    (?:-(?P<pre>[0-9A-Za-z.-]+))?
    (?:\+[0-9A-Za-z.-]+)?$
    """,
    re.VERBOSE,
)

_WILDCARDS = {"*", "x", "X"}


def _part(value: Optional[str]) -> Optional[int]:
    if value is None or value in _WILDCARDS:
        return None
    return int(value)


def _compare_pre(left: Optional[str], right: Optional[str]) -> int:
    """Order two pre-release tags; no tag sorts after every tag."""
    return SemVer(0, 0, 0, left).compare(SemVer(0, 0, 0, right))


class Comparator(NamedTuple):
    """One comma-separated clause of a requirement, e.g. ``>=1.2``."""

    op: str
    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None
    pre: Optional[str] = None

    def matches(self, ver: SemVer) -> bool:
        if self.op == "=":
            return self._exact(ver)
        if self.op == ">":
            return self._greater(ver)
        if self.op == ">=":
            return self._exact(ver) or self._greater(ver)
        if self.op == "<":
            return self._less(ver)
        if self.op == "<=":
            return self._exact(ver) or self._less(ver)
        if self.op == "~":
            return self._tilde(ver)
        return self._caret(ver)

    def allows_prerelease_of(self, ver: SemVer) -> bool:
        return (
            self.pre is not None
            and (self.major, self.minor, self.patch) == (ver.major, ver.minor, ver.patch)
        )

    def _exact(self, ver: SemVer) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is not None and ver.minor != self.minor:
            return False
        if self.patch is not None and ver.patch != self.patch:
            return False
        return _compare_pre(ver.prerelease, self.pre) == 0

    def _greater(self, ver: SemVer) -> bool:
        if ver.major != self.major:
            return ver.major > self.major
        if self.minor is None:
            return False
        if ver.minor != self.minor:
            return ver.minor > self.minor
        if self.patch is None:
            return False
        if ver.patch != self.patch:
            return ver.patch > self.patch
        return _compare_pre(ver.prerelease, self.pre) > 0

    def _less(self, ver: SemVer) -> bool:
        if ver.major != self.major:
            return ver.major < self.major
        if self.minor is None:
            return False
        if ver.minor != self.minor:
            return ver.minor < self.minor
        if self.patch is None:
            return False
        if ver.patch != self.patch:
            return ver.patch < self.patch
        return _compare_pre(ver.prerelease, self.pre) < 0

    def _tilde(self, ver: SemVer) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is not None and ver.minor != self.minor:
            return False
        if self.patch is not None and ver.patch != self.patch:
            return ver.patch > self.patch
        return _compare_pre(ver.prerelease, self.pre) >= 0

    def _caret(self, ver: SemVer) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            return ver.minor >= self.minor if self.major > 0 else ver.minor == self.minor
        if self.major > 0:
            if ver.minor != self.minor:
                return ver.minor > self.minor
            if ver.patch != self.patch:
                return ver.patch > self.patch
        elif self.minor > 0:
            if ver.minor != self.minor:
                return False
            if ver.patch != self.patch:
                return ver.patch > self.patch
        elif ver.minor != self.minor or ver.patch != self.patch:
            return False
        return _compare_pre(ver.prerelease, self.pre) >= 0


def _parse_comparator(text: str) -> Optional[Comparator]:
    match = _COMPARATOR.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid comparator: {text!r}")

    major = _part(match.group("major"))
    minor = _part(match.group("minor")) if major is not None else None
    patch = _part(match.group("patch")) if minor is not None else None
    pre = match.group("pre")

    if major is None:
        return None
    if pre is not None:
        if patch is None:
            raise ValueError(f"Pre-release requires a full version: {text!r}")
        SemVer.parse(f"{major}.{minor}.{patch}-{pre}")

    wildcard = match.group("minor") in _WILDCARDS or match.group("patch") in _WILDCARDS
    op = match.group("op") or ("=" if wildcard else "^")
    return Comparator(op, major, minor, patch, pre)


@dataclass(frozen=True)
class VersionReq:
    """A parsed requirement; equality and hashing go by the requirement text."""

    text: str
    comparators: Tuple[Comparator, ...] = field(default=(), compare=False, repr=False)

    def matches(self, candidate: SemVer) -> bool:
        if not all(c.matches(candidate) for c in self.comparators):
            return False
        if candidate.prerelease is None:
            return True
        return any(c.allows_prerelease_of(candidate) for c in self.comparators)

    @classmethod
    def exact(cls, pinned: SemVer) -> "VersionReq":
        return _exact(pinned)

    def __str__(self) -> str:
        return self.text


@lru_cache(maxsize=None)
def _exact(pinned: SemVer) -> VersionReq:
    comparator = Comparator("=", pinned.major, pinned.minor, pinned.patch, pinned.prerelease)
    return VersionReq(text=f"={pinned}", comparators=(comparator,))


@lru_cache(maxsize=None)
def parse_requirement(text: str) -> VersionReq:
    """Parse a cargo requirement string, raising ``ValueError`` when invalid."""
    text = text.strip()
    if not text:
        raise ValueError("Empty version requirement")

    comparators = []
    for clause in text.split(","):
        comparator = _parse_comparator(clause)
        if comparator is not None:
            comparators.append(comparator)
    return VersionReq(text=text, comparators=tuple(comparators))


@lru_cache(maxsize=None)
def parse_version(text: str) -> SemVer:
    """Parse and memoize a SemVer version so equal text shares one object.

    Raises ``ValueError`` for anything that is not a full SemVer 2.0 version.
    """
    return SemVer.parse(text.strip())


ANY = parse_requirement("*")
