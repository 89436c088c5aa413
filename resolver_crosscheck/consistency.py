"""
Internal consistency check of a resolved graph against the canonical registry.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List

from .interfaces import Assignment, Root
from .models import DependencyKind, parse_feature_entry
from .registry import Registry


def check_solution(registry: Registry, root: Root, assignment: Assignment) -> List[str]:
    """Return every violation found in ``assignment``; an empty list means consistent.

    Checked: the root is selected with all of its features, every selected
    version exists, every active dependency edge is satisfied by the selected
    version of its target including requested features, feature implications
    are closed, and no native library is linked twice. Weak ``dep?/feature``
    entries are not checked.
    """
    problems: List[str] = []
    name, vers = root
    selected = assignment.versions
    enabled: Dict[str, FrozenSet[str]] = {
        pkg: frozenset(assignment.features.get(pkg, ())) for pkg in selected
    }

    if selected.get(name) != vers:
        problems.append(f"root {name}@{vers} is not selected (got {selected.get(name)})")
    else:
        root_ver = registry.lookup(name, vers)
        if root_ver is not None:
            missing = sorted(set(root_ver.effective_features) - enabled[name])
            if missing:
                problems.append(f"root {root_ver} is missing features {missing}")

    linked: Dict[str, str] = {}
    for pkg in sorted(selected):
        ver = registry.lookup(pkg, selected[pkg])
        if ver is None:
            problems.append(f"{pkg}@{selected[pkg]} is not in the registry")
            continue

        if ver.links is not None:
            if ver.links in linked:
                problems.append(
                    f"{ver} and {linked[ver.links]} both link native library `{ver.links}`"
                )
            linked[ver.links] = str(ver)

        table = ver.effective_features
        active = set()
        wanted: Dict[str, set] = {}
        for feature in sorted(enabled[pkg]):
            if feature not in table:
                if feature != "default":
                    problems.append(f"{ver} enables unknown feature `{feature}`")
                continue
            for entry in table[feature]:
                try:
                    parsed = parse_feature_entry(entry)
                except ValueError:
                    continue
                if parsed.dep is None:
                    if parsed.feature not in enabled[pkg]:
                        problems.append(
                            f"{ver} feature `{feature}` implies `{parsed.feature}` which is not enabled"
                        )
                elif not parsed.weak:
                    active.add(parsed.dep)
                    if parsed.feature is not None:
                        wanted.setdefault(parsed.dep, set()).add(parsed.feature)

        for dep in ver.deps:
            if dep.kind is DependencyKind.DEV:
                continue
            if dep.optional and dep.name not in active:
                continue
            target = selected.get(dep.package_name)
            if target is None:
                problems.append(f"{ver} depends on {dep.package_name} {dep.req} but none is selected")
                continue
            if not dep.req.matches(target):
                problems.append(
                    f"{ver} requires {dep.package_name} {dep.req} but {target} is selected"
                )
                continue

            required = set(dep.features) | wanted.get(dep.name, set())
            target_ver = registry.lookup(dep.package_name, target)
            if dep.default_features and target_ver is not None and "default" in target_ver.effective_features:
                required.add("default")
            missing = sorted(required - enabled.get(dep.package_name, frozenset()))
            if missing:
                problems.append(
                    f"{ver} requires features {missing} of {dep.package_name}@{target}"
                )
    return problems
