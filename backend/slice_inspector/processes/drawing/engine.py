# processes/drawing/engine.py

import logging
from typing import Callable, Dict, List, Optional, Sequence

import cv2
import numpy as np

from ...core.common_types import Rectangle
from ...core.exceptions import DrawingOperationError
from ...core.progress import OperationProgress, STATUS_DRAWINGS, STATUS_SAVING
from ...core import raster as raster_utils
from ...layers.stack import LayerStack
from ..base_processor import BaseProcessor
from .operations import (
    BrushShape, PixelDrainHole, PixelDrawing, PixelEraser, PixelOperation,
    PixelOperationType, PixelSupport, PixelText
)

logger = logging.getLogger(__name__)

# Pixels below this brightness are background for the eraser
ERASER_MIN_BRIGHTNESS = 10
# Layers at or below this index get the pillar base diameter
SUPPORT_BASE_LAYERS = 10
DRAIN_HOLE_DARK_THRESHOLD = 100


class DrawingEngine(BaseProcessor):
    """
    Applies a batch of pixel edits to a layer stack.

    Each touched layer is decoded once into a working copy shared by every
    operation of the batch, and written back once when the batch is done.
    """

    def __init__(self, stack: LayerStack, max_workers: Optional[int] = None):
        super().__init__(stack, max_workers)
        self._working: Dict[int, np.ndarray] = {}
        self._handlers: Dict[str, Callable[[PixelOperation], None]] = {
            PixelOperationType.DRAWING.value: self._draw_brush,
            PixelOperationType.TEXT.value: self._draw_text,
            PixelOperationType.ERASER.value: self._erase,
            PixelOperationType.SUPPORT.value: self._draw_support,
            PixelOperationType.DRAIN_HOLE.value: self._drill_drain_hole,
        }

    @property
    def process_name(self) -> str:
        return "Drawings"

    def apply(self, operations: Sequence[PixelOperation], progress: Optional[OperationProgress] = None) -> List[int]:
        """
        Applies the operations in order and persists every touched layer.

        Args:
            operations: Pixel edits, applied in sequence.
            progress: Receives one unit per operation, then one per saved layer.

        Returns:
            Sorted indexes of the layers written back.

        Raises:
            DrawingOperationError: For an operation kind with no drawing routine.
            LayerIndexError: For an operation anchored outside the stack.
        """
        progress = self._ensure_progress(progress)
        progress.reset(STATUS_DRAWINGS, len(operations))
        self._working = {}
        try:
            for operation in operations:
                handler = self._handlers.get(operation.operation_type)
                if handler is None:
                    raise DrawingOperationError(f"Unknown pixel operation type '{operation.operation_type}'.")
                handler(operation)
                progress.increment()
            return self._save(progress)
        finally:
            self._working = {}

    # --- Working set ---

    def _raster(self, layer_index: int) -> np.ndarray:
        raster = self._working.get(layer_index)
        if raster is None:
            raster = self.stack.get_raster(layer_index).copy()
            self._working[layer_index] = raster
        return raster

    def _save(self, progress: OperationProgress) -> List[int]:
        touched = sorted(self._working)
        progress.reset(STATUS_SAVING, len(touched))

        def save(layer_index: int) -> None:
            self.stack.set_raster(layer_index, self._working[layer_index])
            progress.increment()

        with self._executor() as executor:
            for _ in executor.map(save, touched):
                pass
        logger.info(f"Saved {len(touched)} modified layers.")
        return touched

    # --- Operations ---

    def _draw_brush(self, operation: PixelDrawing) -> None:
        raster = self._raster(operation.layer_index)
        x, y = operation.location
        if operation.brush_size == 1:
            self._check_location(raster, operation)
            raster[y, x] = operation.brightness
            return

        if operation.brush_shape == BrushShape.RECTANGLE:
            rect = operation.rectangle
            cv2.rectangle(raster, (rect.x, rect.y), (rect.right - 1, rect.bottom - 1), operation.brightness,
                          operation.thickness, operation.line_type.cv_value)
        else:
            cv2.circle(raster, (x, y), operation.brush_size // 2, operation.brightness,
                       operation.thickness, operation.line_type.cv_value)

    def _draw_text(self, operation: PixelText) -> None:
        raster = self._raster(operation.layer_index)
        font = operation.font.cv_value
        if not operation.mirror:
            cv2.putText(raster, operation.text, operation.location, font, operation.font_scale,
                        operation.brightness, operation.thickness, operation.line_type.cv_value)
            return

        # Render on a blank canvas, then flip the text box in place
        canvas = np.zeros_like(raster)
        cv2.putText(canvas, operation.text, operation.location, font, operation.font_scale,
                    raster_utils.WHITE, operation.thickness, operation.line_type.cv_value)
        (text_width, text_height), baseline = cv2.getTextSize(operation.text, font, operation.font_scale,
                                                              operation.thickness)
        x, y = operation.location
        box = raster_utils.clip_rectangle(
            Rectangle(x=x, y=y - text_height - operation.thickness,
                      width=text_width, height=text_height + baseline + 2 * operation.thickness),
            raster.shape[1], raster.shape[0])
        if box.is_empty:
            return
        mirrored = cv2.flip(canvas[box.as_slices()], 1)
        raster[box.as_slices()][mirrored > 0] = operation.brightness

    def _erase(self, operation: PixelEraser) -> None:
        raster = self._raster(operation.layer_index)
        self._check_location(raster, operation)
        x, y = operation.location
        if raster[y, x] < ERASER_MIN_BRIGHTNESS:
            return

        contours, hierarchy = cv2.findContours(raster, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE)
        if hierarchy is None:
            return
        for contour_index, contour in enumerate(contours):
            if hierarchy[0][contour_index][3] != -1:
                continue
            if cv2.pointPolygonTest(contour, (float(x), float(y)), False) >= 0:
                # maxLevel 1 keeps the holes of the shape out of the fill
                cv2.drawContours(raster, contours, contour_index, operation.brightness, -1,
                                 operation.line_type.cv_value, hierarchy, 1)
                break

    def _draw_support(self, operation: PixelSupport) -> None:
        """
        Grows a pillar from the layer below the anchor down to the plate.

        The pillar starts under the first empty spot found while descending and
        stops on the first layer solid enough under its tip. It widens by one
        pixel per layer up to the pillar diameter; the bottom layers get the
        base diameter.
        """
        if not raster_utils.circle_coverage(operation.location, operation.tip_diameter,
                                            self.stack.width, self.stack.height):
            logger.warning(f"Support at {operation.location} lies outside the layer; nothing drawn.")
            return

        drawn = 0
        for layer_index in range(operation.layer_index - 1, -1, -1):
            raster = self._raster(layer_index)
            lit, covered = raster_utils.circle_region_count(raster, operation.location, operation.tip_diameter)
            if lit > covered / 3:
                if drawn == 0:
                    continue
                break

            if layer_index > SUPPORT_BASE_LAYERS:
                diameter = min(operation.tip_diameter + drawn, operation.pillar_diameter)
            else:
                diameter = operation.base_diameter
            cv2.circle(raster, operation.location, diameter // 2, operation.brightness, -1,
                       operation.line_type.cv_value)
            drawn += 1
        logger.debug(f"Support at {operation.location} from layer {operation.layer_index}: {drawn} layers drawn")

    def _drill_drain_hole(self, operation: PixelDrainHole) -> None:
        """
        Drills from the anchor layer downwards until it opens into a cavity.

        Layers already open under the hole are skipped until the first solid
        layer; drilling stops at the next open layer.
        """
        drawn = 0
        radius = operation.diameter // 2
        for layer_index in range(operation.layer_index, -1, -1):
            raster = self._raster(layer_index)
            _, dark = cv2.threshold(raster, DRAIN_HOLE_DARK_THRESHOLD, raster_utils.WHITE, cv2.THRESH_BINARY_INV)
            dark_count, covered = raster_utils.circle_region_count(dark, operation.location, operation.diameter)
            if dark_count >= covered / 3:
                if drawn == 0:
                    continue
                break

            cv2.circle(raster, operation.location, radius, raster_utils.BLACK, -1, operation.line_type.cv_value)
            drawn += 1
        logger.debug(f"Drain hole at {operation.location} from layer {operation.layer_index}: {drawn} layers drilled")

    @staticmethod
    def _check_location(raster: np.ndarray, operation: PixelOperation) -> None:
        x, y = operation.location
        height, width = raster.shape
        if not (0 <= x < width and 0 <= y < height):
            raise DrawingOperationError(f"Location {operation.location} is outside the {width}x{height} layer.")
