"""
Regression directory mode.

Every ``<package>@<version>.json`` file in the directory is a persisted case.
``accepted.json`` maps case keys to the last accepted classification; a case
without an accepted state is expected not to disagree.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .checker import Classification, DifferentialChecker
from .config import Mode
from .interfaces import Root
from .minimizer import Minimizer, disagreement_predicate
from .registry import Registry
from .snapshot_io import CASE_SUFFIX, SnapshotError, read_case, write_snapshot


logger = logging.getLogger(__name__)

ACCEPTED_FILE = "accepted.json"


@dataclass
class CaseOutcome:
    case: str
    root: Root
    classification: Classification
    accepted: Optional[str]
    reason: str = ""
    duration: float = 0.0

    @property
    def changed(self) -> bool:
        if self.accepted is None:
            return self.classification is Classification.DISAGREE
        return self.classification.value != self.accepted


def case_key(file_name: str, root: Root) -> str:
    name, vers = root
    return f"{file_name}:{name}@{vers}"


def iter_case_files(directory: Path) -> List[Path]:
    return sorted(
        p
        for p in Path(directory).iterdir()
        if p.is_file() and p.name.endswith(CASE_SUFFIX) and p.name != ACCEPTED_FILE
    )


def load_accepted(directory: Path) -> Dict[str, str]:
    path = Path(directory) / ACCEPTED_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotError(f"{path}: expected a JSON object")
    return {str(k): str(v) for k, v in data.items()}


def save_accepted(directory: Path, accepted: Dict[str, str]) -> Path:
    path = Path(directory) / ACCEPTED_FILE
    with open(path, "w", encoding="utf-8") as f:
        json.dump(dict(sorted(accepted.items())), f, indent=2)
        f.write("\n")
    return path


def run_regressions(
    directory: Path,
    mode: Mode = Mode.ALL,
    timeout: Optional[float] = None,
    max_rounds: int = 200_000,
    all_versions: bool = False,
    minimize: bool = False,
    accept: bool = False,
) -> List[CaseOutcome]:
    """Re-check every persisted case and compare against the accepted state.

    With ``all_versions`` every version in each file is checked as a root,
    not only the one named by the file. With ``minimize`` a still
    disagreeing case is shrunk and its file rewritten when it got smaller.
    With ``accept`` the current classifications become the accepted state.
    """
    directory = Path(directory)
    accepted = load_accepted(directory)
    outcomes: List[CaseOutcome] = []

    for path in iter_case_files(directory):
        try:
            root, versions = read_case(path)
        except SnapshotError as e:
            logger.error("Skipping unreadable case %s: %s", path.name, e)
            continue
        except ValueError as e:
            logger.warning("Skipping %s: %s", path.name, e)
            continue
        registry = Registry.from_versions(versions)
        checker = DifferentialChecker(registry, mode=mode, timeout=timeout, max_rounds=max_rounds)
        roots = registry.roots() if all_versions else [root]

        for unit in roots:
            key = case_key(path.name, unit)
            start = time.perf_counter()
            result = checker.check(unit)
            outcome = CaseOutcome(
                case=key,
                root=unit,
                classification=result.classification,
                accepted=accepted.get(key),
                reason=result.reason,
                duration=time.perf_counter() - start,
            )
            outcomes.append(outcome)
            if outcome.changed:
                logger.warning(
                    "%s: %s (accepted: %s) %s",
                    key,
                    outcome.classification.value,
                    outcome.accepted,
                    outcome.reason,
                )
            else:
                logger.debug("%s: %s", key, outcome.classification.value)

        if minimize and not all_versions:
            _reminimize(path, root, versions, mode, timeout, max_rounds, outcomes[-1])

    if accept:
        save_accepted(directory, {o.case: o.classification.value for o in outcomes})
        logger.info("Accepted %d classifications", len(outcomes))
    return outcomes


def _reminimize(path, root, versions, mode, timeout, max_rounds, outcome: CaseOutcome) -> None:
    if outcome.classification is not Classification.DISAGREE:
        return
    predicate = disagreement_predicate(mode, timeout, max_rounds)
    try:
        result = Minimizer(root, predicate).minimize(versions)
    except ValueError as e:
        logger.warning("Not re-minimizing %s: %s", path.name, e)
        return
    if len(result.versions) < len(versions):
        write_snapshot(path, result.versions)
        logger.info("Shrunk %s from %d to %d versions", path.name, len(versions), len(result.versions))


def has_changes(outcomes: List[CaseOutcome]) -> bool:
    return any(o.changed for o in outcomes)
