# processes/detection/__init__.py

# This file makes the 'detection' directory a Python sub-package.

from .detector import IssueDetector
from .resin_traps import ResinTrapResolver
from .rules import (
    check_empty_layer,
    check_touching_bounds,
    check_islands,
    check_overhangs,
    find_hollow_areas
)

__all__ = [
    "IssueDetector",
    "ResinTrapResolver",
    "check_empty_layer",
    "check_touching_bounds",
    "check_islands",
    "check_overhangs",
    "find_hollow_areas"
]
