# slice_inspector/__init__.py

# This file makes the 'slice_inspector' directory a Python package.

# You can optionally import key modules to expose at package level
from . import core
from . import layers
from . import processes
from . import services

# Define what gets imported with 'from slice_inspector import *'
__all__ = [
    "core",
    "layers",
    "processes",
    "services"
]
