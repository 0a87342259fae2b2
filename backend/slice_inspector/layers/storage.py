# layers/storage.py

import abc
import glob
import logging
import os
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.common_types import LayerParameters
from ..core.exceptions import ConfigurationError, LayerIndexError
from ..core import raster as raster_utils

logger = logging.getLogger(__name__)


class LayerStorage(abc.ABC):
    """
    Abstract format-specific layer storage.

    The inspection core never decodes or encodes files itself; it asks the
    storage for a raster by layer index and hands modified rasters back.
    Every call may block on I/O.
    """

    @property
    @abc.abstractmethod
    def width(self) -> int:
        pass

    @property
    @abc.abstractmethod
    def height(self) -> int:
        pass

    @property
    @abc.abstractmethod
    def layer_count(self) -> int:
        pass

    @property
    def pixel_size(self) -> Tuple[float, float]:
        """Pixel (width, height) in millimetres; zero when unknown."""
        return 0.0, 0.0

    @abc.abstractmethod
    def get_raster(self, layer_index: int) -> np.ndarray:
        """Decodes and returns a fresh raster the caller may own."""
        pass

    @abc.abstractmethod
    def set_raster(self, layer_index: int, raster: np.ndarray) -> None:
        """Encodes and replaces the raster of a layer."""
        pass

    def layer_parameters(self, layer_index: int) -> LayerParameters:
        return LayerParameters()

    def _check_index(self, layer_index: int) -> None:
        if not 0 <= layer_index < self.layer_count:
            raise LayerIndexError(f"Layer index {layer_index} out of range [0, {self.layer_count}).")


class InMemoryLayerStorage(LayerStorage):
    """Keeps already decoded rasters in a list. Reads and writes copy."""

    def __init__(self, rasters: Sequence[np.ndarray], pixel_size: Tuple[float, float] = (0.0, 0.0),
                 parameters: Optional[Sequence[LayerParameters]] = None):
        self._rasters: List[np.ndarray] = [raster_utils.validate_raster(r).copy() for r in rasters]
        if self._rasters:
            shape = self._rasters[0].shape
            for r in self._rasters:
                raster_utils.validate_raster(r, shape)
        self._pixel_size = pixel_size
        self._parameters = list(parameters) if parameters is not None else None
        if self._parameters is not None and len(self._parameters) != len(self._rasters):
            raise ConfigurationError("Layer parameters count must match the raster count.")

    @property
    def width(self) -> int:
        return self._rasters[0].shape[1] if self._rasters else 0

    @property
    def height(self) -> int:
        return self._rasters[0].shape[0] if self._rasters else 0

    @property
    def layer_count(self) -> int:
        return len(self._rasters)

    @property
    def pixel_size(self) -> Tuple[float, float]:
        return self._pixel_size

    def get_raster(self, layer_index: int) -> np.ndarray:
        self._check_index(layer_index)
        return self._rasters[layer_index].copy()

    def set_raster(self, layer_index: int, raster: np.ndarray) -> None:
        self._check_index(layer_index)
        self._rasters[layer_index] = raster.copy()

    def layer_parameters(self, layer_index: int) -> LayerParameters:
        if self._parameters is None:
            return LayerParameters()
        return self._parameters[layer_index]


class ImageDirectoryStorage(LayerStorage):
    """
    One grayscale PNG per layer inside a directory, ordered by file name.

    Args:
        directory: Folder holding the layer images.
        pattern: Glob used to select layer files.
        pixel_size: Pixel (width, height) in millimetres, when known.
        layer_height: Layer thickness in millimetres, used for position_z.
    """

    def __init__(self, directory: str, pattern: str = "*.png",
                 pixel_size: Tuple[float, float] = (0.0, 0.0), layer_height: float = 0.0):
        if not os.path.isdir(directory):
            raise ConfigurationError(f"Layer directory not found: {directory}")
        self.directory = directory
        self._files = sorted(glob.glob(os.path.join(directory, pattern)))
        self._pixel_size = pixel_size
        self._layer_height = layer_height
        self._width = 0
        self._height = 0
        if self._files:
            first = raster_utils.read_png(self._files[0])
            self._height, self._width = first.shape
        logger.info(f"Found {len(self._files)} layer images in {directory} ({self._width}x{self._height})")

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def layer_count(self) -> int:
        return len(self._files)

    @property
    def pixel_size(self) -> Tuple[float, float]:
        return self._pixel_size

    def get_raster(self, layer_index: int) -> np.ndarray:
        self._check_index(layer_index)
        return raster_utils.read_png(self._files[layer_index])

    def set_raster(self, layer_index: int, raster: np.ndarray) -> None:
        self._check_index(layer_index)
        raster_utils.write_png(self._files[layer_index], raster)

    def layer_parameters(self, layer_index: int) -> LayerParameters:
        return LayerParameters(position_z=round((layer_index + 1) * self._layer_height, 4))
