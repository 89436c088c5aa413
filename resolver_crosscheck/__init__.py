"""
Resolver Cross-Check

Differential testing of two dependency resolvers over a snapshot of a package
registry, with minimization of the disagreements it finds.
"""

__version__ = "0.1.0"

from .checker import Classification, ComparisonRecord, DifferentialChecker
from .cli import main
from .config import Mode, RunConfig
from .registry import Registry

__all__ = [
    "Classification",
    "ComparisonRecord",
    "DifferentialChecker",
    "Mode",
    "Registry",
    "RunConfig",
    "main",
]
