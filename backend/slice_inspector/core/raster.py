# core/raster.py

import logging
import os
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .common_types import Point, Rectangle
from .exceptions import RasterDecodeError, RasterShapeError

logger = logging.getLogger(__name__)

WHITE = 255
BLACK = 0


def validate_raster(raster: np.ndarray, shape: Optional[Tuple[int, int]] = None) -> np.ndarray:
    """
    Checks that a raster is an 8-bit single channel image.

    Args:
        raster: The array to validate.
        shape: Optional expected (height, width).

    Returns:
        The same array, for chaining.

    Raises:
        RasterShapeError: If the dtype, dimensionality or resolution is wrong.
    """
    if not isinstance(raster, np.ndarray):
        raise RasterShapeError(f"Raster must be a numpy array, got {type(raster).__name__}.")
    if raster.dtype != np.uint8 or raster.ndim != 2:
        raise RasterShapeError(f"Raster must be 2-D uint8, got {raster.ndim}-D {raster.dtype}.")
    if shape is not None and raster.shape != tuple(shape):
        raise RasterShapeError(f"Raster resolution {raster.shape} does not match stack resolution {tuple(shape)}.")
    return raster




def bounding_rectangle(raster: np.ndarray) -> Rectangle:
    """Rectangle enclosing every pixel brighter than 0; empty for a blank raster."""
    points = cv2.findNonZero(raster)
    if points is None:
        return Rectangle.empty()
    return Rectangle.from_cv(cv2.boundingRect(points))


def binarize(raster: np.ndarray, threshold: int) -> np.ndarray:
    """Binary threshold at `threshold` when it is positive, otherwise the raster itself."""
    if threshold <= 0:
        return raster
    _, binary = cv2.threshold(raster, threshold, WHITE, cv2.THRESH_BINARY)
    return binary


def mask_points(mask: np.ndarray, offset: Tuple[int, int] = (0, 0)) -> List[Point]:
    """Row-major list of (x, y) coordinates of the non-zero pixels of a mask."""
    ys, xs = np.nonzero(mask)
    ox, oy = offset
    return list(zip((xs + ox).tolist(), (ys + oy).tolist()))


def clip_rectangle(rect: Rectangle, width: int, height: int) -> Rectangle:
    x = max(0, rect.x)
    y = max(0, rect.y)
    right = min(width, rect.right)
    bottom = min(height, rect.bottom)
    if right <= x or bottom <= y:
        return Rectangle.empty()
    return Rectangle(x=x, y=y, width=right - x, height=bottom - y)


def _circle_mask(center: Point, diameter: int, width: int, height: int) -> Tuple[Rectangle, np.ndarray]:
    """Clipped `diameter` x `diameter` box anchored on `center` and the filled circle inside it."""
    radius = diameter // 2
    box = clip_rectangle(Rectangle(x=center[0] - radius, y=center[1] - radius, width=diameter, height=diameter),
                         width, height)
    if box.is_empty:
        return box, np.zeros((0, 0), dtype=np.uint8)
    mask = np.zeros((box.height, box.width), dtype=np.uint8)
    cv2.circle(mask, (center[0] - box.x, center[1] - box.y), radius, WHITE, -1)
    return box, mask


def circle_coverage(center: Point, diameter: int, width: int, height: int) -> int:
    """Number of pixels of a `width` x `height` raster covered by the circle."""
    _, mask = _circle_mask(center, diameter, width, height)
    return cv2.countNonZero(mask) if mask.size else 0


def circle_region_count(raster: np.ndarray, center: Point, diameter: int) -> Tuple[int, int]:
    """
    Counts non-zero raster pixels under a filled circle.

    The circle is tested inside the `diameter` x `diameter` box anchored on
    `center`, clipped to the raster.

    Returns:
        (non-zero pixels under the circle, pixels covered by the circle)
    """
    height, width = raster.shape[:2]
    box, mask = _circle_mask(center, diameter, width, height)
    if box.is_empty:
        return 0, 0
    covered = cv2.countNonZero(mask)
    lit = cv2.countNonZero(cv2.bitwise_and(raster[box.as_slices()], mask))
    return lit, covered


def read_png(path: str) -> np.ndarray:
    """Decodes a PNG file into a grayscale raster."""
    raster = cv2.imread(path, cv2.IMREAD_GRAYSCALE)
    if raster is None:
        raise RasterDecodeError(f"Unable to decode layer image '{os.path.basename(path)}'.")
    return raster


def write_png(path: str, raster: np.ndarray) -> None:
    if not cv2.imwrite(path, raster):
        raise RasterDecodeError(f"Unable to encode layer image '{os.path.basename(path)}'.")
