# processes/__init__.py

# This file makes the 'processes' directory a Python package.

# Expose key submodules
from . import detection
from . import drawing

# Import commonly-used items from submodules for convenience
from .base_processor import BaseProcessor
from .bounds import BoundingBoxComputer
from .detection import IssueDetector, ResinTrapResolver
from .drawing import DrawingEngine

# Define what gets imported with 'from slice_inspector.processes import *'
__all__ = [
    "detection",
    "drawing",
    "BaseProcessor",
    "BoundingBoxComputer",
    "IssueDetector",
    "ResinTrapResolver",
    "DrawingEngine",
]
