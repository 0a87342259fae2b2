# processes/drawing/__init__.py

# This file makes the 'drawing' directory a Python sub-package.

from .engine import DrawingEngine
from .operations import (
    PixelOperationType,
    BrushShape,
    LineType,
    FontFace,
    PixelOperation,
    PixelDrawing,
    PixelText,
    PixelEraser,
    PixelSupport,
    PixelDrainHole,
    parse_operations
)

__all__ = [
    "DrawingEngine",
    "PixelOperationType",
    "BrushShape",
    "LineType",
    "FontFace",
    "PixelOperation",
    "PixelDrawing",
    "PixelText",
    "PixelEraser",
    "PixelSupport",
    "PixelDrainHole",
    "parse_operations"
]
