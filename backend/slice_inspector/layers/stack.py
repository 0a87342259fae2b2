# layers/stack.py

import logging
from typing import Iterator, List, Optional, Tuple

import numpy as np

from ..core.common_types import LayerParameters, Rectangle, RectangleMillimeters
from ..core.exceptions import LayerIndexError, RasterDecodeError, RasterShapeError, SliceInspectorError
from ..core.progress import OperationProgress
from ..core import raster as raster_utils
from .cache import RasterCache
from .storage import LayerStorage

logger = logging.getLogger(__name__)


class Layer:
    """
    Metadata for one sliced cross-section.

    The raster itself lives in the storage; the layer only keeps the cached
    emptiness and bounding rectangle derived from it, which are dropped
    whenever the raster is overwritten.
    """

    def __init__(self, index: int, parameters: Optional[LayerParameters] = None):
        self.index = index
        self.parameters = parameters or LayerParameters()
        self.is_modified = False
        self._bounding_rectangle: Optional[Rectangle] = None

    @property
    def has_bounds(self) -> bool:
        return self._bounding_rectangle is not None

    @property
    def bounding_rectangle(self) -> Optional[Rectangle]:
        return self._bounding_rectangle

    @property
    def is_empty(self) -> Optional[bool]:
        """None until the raster has been inspected once."""
        if self._bounding_rectangle is None:
            return None
        return self._bounding_rectangle.is_empty

    def update_bounds(self, raster: np.ndarray) -> Rectangle:
        self._bounding_rectangle = raster_utils.bounding_rectangle(raster)
        return self._bounding_rectangle

    def invalidate(self) -> None:
        self._bounding_rectangle = None

    def __repr__(self) -> str:
        return f"Layer(index={self.index}, is_modified={self.is_modified}, bounds={self._bounding_rectangle})"


class LayerStack:
    """
    Ordered sequence of layers backed by a format-specific storage.

    Algorithms receive the stack and a layer index rather than a layer holding
    a reference back to its stack.
    """

    def __init__(self, storage: LayerStorage):
        self.storage = storage
        self._layers: List[Layer] = [Layer(i, storage.layer_parameters(i)) for i in range(storage.layer_count)]
        self._bounding_rectangle = Rectangle.empty()

    # --- Sequence protocol ---

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __getitem__(self, layer_index: int) -> Layer:
        self._check_index(layer_index)
        return self._layers[layer_index]

    @property
    def count(self) -> int:
        return len(self._layers)

    @property
    def layers(self) -> List[Layer]:
        return self._layers

    @layers.setter
    def layers(self, value: List[Layer]) -> None:
        """Replaces the layer array wholesale and forgets the stack bounds."""
        if len(value) != self.storage.layer_count:
            raise SliceInspectorError(
                f"Layer array of {len(value)} does not match storage layer count {self.storage.layer_count}.")
        for index, layer in enumerate(value):
            layer.index = index
        self._layers = list(value)
        self._bounding_rectangle = Rectangle.empty()

    @property
    def first_layer(self) -> Optional[Layer]:
        return self._layers[0] if self._layers else None

    @property
    def last_layer(self) -> Optional[Layer]:
        return self._layers[-1] if self._layers else None

    @property
    def width(self) -> int:
        return self.storage.width

    @property
    def height(self) -> int:
        return self.storage.height

    @property
    def resolution(self) -> Tuple[int, int]:
        """(height, width), the numpy shape of every raster."""
        return self.storage.height, self.storage.width

    @property
    def is_modified(self) -> bool:
        return any(layer.is_modified for layer in self._layers)

    def desmodify(self) -> None:
        for layer in self._layers:
            layer.is_modified = False

    # --- Raster access ---

    def get_raster(self, layer_index: int) -> np.ndarray:
        """
        Decodes the raster of a layer through the storage.

        Raises:
            LayerIndexError: For an index outside the stack.
            RasterDecodeError: If the storage fails or returns malformed data.
        """
        self._check_index(layer_index)
        try:
            raster = self.storage.get_raster(layer_index)
            return raster_utils.validate_raster(raster, self.resolution)
        except RasterDecodeError:
            raise
        except RasterShapeError as e:
            logger.error(f"Layer {layer_index} decoded to malformed data: {e}")
            raise RasterDecodeError(f"Layer {layer_index} decoded to malformed data: {e}") from e
        except Exception as e:
            logger.error(f"Failed to decode layer {layer_index}: {e}", exc_info=True)
            raise RasterDecodeError(f"Failed to decode layer {layer_index}: {e}") from e

    def set_raster(self, layer_index: int, raster: np.ndarray) -> None:
        """Writes a raster back, marking the layer modified and dropping its cached bounds."""
        self._check_index(layer_index)
        raster_utils.validate_raster(raster, self.resolution)
        self.storage.set_raster(layer_index, raster)
        layer = self._layers[layer_index]
        layer.is_modified = True
        layer.invalidate()

    def raster_cache(self, window: int = 2) -> RasterCache:
        return RasterCache(self.get_raster, window)

    # --- Bounds ---

    def layer_bounding_rectangle(self, layer_index: int, raster: Optional[np.ndarray] = None) -> Rectangle:
        """Cached non-empty bounding rectangle of one layer; decodes only when needed."""
        layer = self[layer_index]
        if layer.has_bounds:
            return layer.bounding_rectangle
        if raster is None:
            raster = self.get_raster(layer_index)
        return layer.update_bounds(raster)

    def is_layer_empty(self, layer_index: int, raster: Optional[np.ndarray] = None) -> bool:
        return self.layer_bounding_rectangle(layer_index, raster).is_empty

    @property
    def cached_bounding_rectangle(self) -> Rectangle:
        """The memoized stack rectangle; empty when not computed yet."""
        return self._bounding_rectangle

    @cached_bounding_rectangle.setter
    def cached_bounding_rectangle(self, value: Rectangle) -> None:
        self._bounding_rectangle = value

    def get_bounding_rectangle(self, progress: Optional[OperationProgress] = None,
                               max_workers: Optional[int] = None) -> Rectangle:
        from ..processes.bounds import BoundingBoxComputer
        return BoundingBoxComputer(self, max_workers=max_workers).compute(progress)

    def bounding_rectangle_mm(self, progress: Optional[OperationProgress] = None) -> RectangleMillimeters:
        rect = self.get_bounding_rectangle(progress)
        pixel_width, pixel_height = self.storage.pixel_size
        return RectangleMillimeters(
            x=round(rect.x * pixel_width, 2),
            y=round(rect.y * pixel_height, 2),
            width=round(rect.width * pixel_width, 2),
            height=round(rect.height * pixel_height, 2),
        )

    def _check_index(self, layer_index: int) -> None:
        if not 0 <= layer_index < len(self._layers):
            raise LayerIndexError(f"Layer index {layer_index} out of range [0, {len(self._layers)}).")

    def __repr__(self) -> str:
        return (f"LayerStack(count={self.count}, resolution={self.width}x{self.height}, "
                f"bounds={self._bounding_rectangle}, is_modified={self.is_modified})")
