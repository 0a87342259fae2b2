# layers/__init__.py

# This file makes the 'layers' directory a Python sub-package.

from .cache import RasterCache
from .stack import Layer, LayerStack
from .storage import ImageDirectoryStorage, InMemoryLayerStorage, LayerStorage

__all__ = [
    "RasterCache",
    "Layer",
    "LayerStack",
    "LayerStorage",
    "InMemoryLayerStorage",
    "ImageDirectoryStorage"
]
