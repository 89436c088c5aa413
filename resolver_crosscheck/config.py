"""
Run configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .models import Version


class Mode(str, Enum):
    """Which engines run for each root."""

    ALL = "all"
    BOTH = "both"
    ENGINE_A = "resolvelib"
    ENGINE_B = "reference"

    @property
    def runs_engine_a(self) -> bool:
        return self is not Mode.ENGINE_B

    @property
    def runs_engine_b(self) -> bool:
        return self is not Mode.ENGINE_A

    @property
    def lock_checks(self) -> bool:
        return self is Mode.ALL


@dataclass
class RunConfig:
    """Values that drive one benchmark or regression run."""

    include_ecosystem: bool = False
    ecosystem_marker: str = "solana"
    include_yanked: bool = False
    mode: Mode = Mode.ALL
    workers: int = 0
    name_filter: Optional[str] = None
    timeout: Optional[float] = None
    max_rounds: int = 200_000
    minimize: bool = False
    regression_dir: Path = Path("out/index_json")
    output: Path = Path("out.csv")
    queue_size: int = 1024

    def name_predicate(self) -> Callable[[str], bool]:
        if self.include_ecosystem:
            return lambda name: True
        marker = self.ecosystem_marker
        return lambda name: marker not in name

    def version_predicate(self) -> Callable[[Version], bool]:
        if self.include_yanked:
            return lambda ver: True
        return lambda ver: not ver.yanked

    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1
