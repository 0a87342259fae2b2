# processes/detection/rules.py

import logging
from typing import List, Optional

import cv2
import numpy as np

from ...core.common_types import (
    HollowArea, HollowAreaType, IslandDetectionConfig, Issue, IssueType,
    OverhangDetectionConfig, Rectangle, ResinTrapDetectionConfig, TouchingBoundDetectionConfig
)
from ...core import raster as raster_utils

logger = logging.getLogger(__name__)

# --- Thresholds fixed by the algorithms ---
OVERHANG_SUBTRACT_THRESHOLD = 127
# Supported islands below this many supporting pixels are not re-validated in enhanced mode
ENHANCED_DETECTION_MIN_SUPPORT = 10
_ERODE_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))

# --- Helper Functions ---

def _overhang_mask(current: np.ndarray, previous: np.ndarray, erode_iterations: int) -> np.ndarray:
    """New material relative to the previous layer, binarized and eroded."""
    subtracted = cv2.subtract(current, previous)
    _, subtracted = cv2.threshold(subtracted, OVERHANG_SUBTRACT_THRESHOLD, raster_utils.WHITE, cv2.THRESH_BINARY)
    return cv2.erode(subtracted, _ERODE_KERNEL, iterations=erode_iterations, borderType=cv2.BORDER_REFLECT_101)

# --- Layer Check Functions ---

def check_empty_layer(layer_index: int) -> Issue:
    return Issue(issue_type=IssueType.EMPTY, layer_index=layer_index)


def check_touching_bounds(raster: np.ndarray, layer_index: int, layer_rect: Rectangle,
                          config: TouchingBoundDetectionConfig) -> List[Issue]:
    """
    Reports lit pixels inside the plate margins as one issue per layer.

    A margin band is only scanned when the layer bounding rectangle reaches it.
    Left and right bands exclude the rows already covered by the top and bottom bands.
    """
    height, width = raster.shape
    touch_top = layer_rect.y <= config.margin_top
    touch_bottom = layer_rect.bottom >= height - config.margin_bottom
    touch_left = layer_rect.x <= config.margin_left
    touch_right = layer_rect.right >= width - config.margin_right
    if not (touch_top or touch_bottom or touch_left or touch_right):
        return []

    band = np.zeros(raster.shape, dtype=bool)
    if touch_top:
        band[:config.margin_top, :] = True
    if touch_bottom and config.margin_bottom > 0:
        band[max(0, height - config.margin_bottom):, :] = True
    rows = slice(config.margin_top, max(config.margin_top, height - config.margin_bottom))
    if touch_left:
        band[rows, :config.margin_left] = True
    if touch_right and config.margin_right > 0:
        band[rows, max(0, width - config.margin_right):] = True

    pixels = raster_utils.mask_points(band & (raster >= config.minimum_pixel_brightness))
    if not pixels:
        return []
    logger.debug(f"Layer {layer_index}: {len(pixels)} pixels touching bounds")
    return [Issue(issue_type=IssueType.TOUCHING_BOUND, layer_index=layer_index, pixels=pixels,
                  bounding_rectangle=Rectangle.from_points(pixels))]


def check_islands(raster: np.ndarray, previous: np.ndarray, layer_index: int,
                  island_config: IslandDetectionConfig, overhang_config: OverhangDetectionConfig) -> List[Issue]:
    """
    Finds connected regions not supported by the previous layer.

    With overhangs coupled to islands (not independent), regions that are not
    islands are tested for overhang. In enhanced mode an island with some
    support is re-validated by the same overhang test and withdrawn when no
    overhang survives the erosion.
    """
    issues: List[Issue] = []
    image = raster_utils.binarize(raster, island_config.binary_threshold)
    connectivity = 8 if island_config.allow_diagonal_bonds else 4
    label_count, labels, stats, _ = cv2.connectedComponentsWithStats(image, connectivity=connectivity)

    for label in range(1, label_count):
        if stats[label, cv2.CC_STAT_AREA] < island_config.required_area_to_process_check:
            continue
        rect = Rectangle(x=int(stats[label, cv2.CC_STAT_LEFT]), y=int(stats[label, cv2.CC_STAT_TOP]),
                         width=int(stats[label, cv2.CC_STAT_WIDTH]), height=int(stats[label, cv2.CC_STAT_HEIGHT]))
        roi = rect.as_slices()
        component = labels[roi] == label
        points_mask = component & (raster[roi] >= island_config.required_pixel_brightness_to_process_check)
        point_count = int(np.count_nonzero(points_mask))
        if point_count == 0:
            continue

        supporting = int(np.count_nonzero(points_mask & (previous[roi] >= island_config.required_pixel_brightness_to_support)))
        required_support = max(1.0, point_count * island_config.required_pixels_to_support_multiplier)

        island: Optional[Issue] = None
        if supporting < required_support:
            island = Issue(issue_type=IssueType.ISLAND, layer_index=layer_index,
                           pixels=raster_utils.mask_points(points_mask, (rect.x, rect.y)), bounding_rectangle=rect)

        coupled_overhang = (overhang_config.enabled and not overhang_config.independent_from_islands
                            and island is None)
        enhanced_recheck = (island is not None and island_config.enhanced_detection
                            and supporting >= ENHANCED_DETECTION_MIN_SUPPORT)
        if coupled_overhang or enhanced_recheck:
            eroded = _overhang_mask(raster[roi], previous[roi], overhang_config.erode_iterations)
            overhang_mask = component & (eroded > 0)
            if np.count_nonzero(overhang_mask) >= overhang_config.required_pixels_to_consider:
                if overhang_config.enabled and overhang_config.allows(layer_index):
                    issues.append(Issue(issue_type=IssueType.OVERHANG, layer_index=layer_index,
                                        pixels=raster_utils.mask_points(overhang_mask, (rect.x, rect.y)),
                                        bounding_rectangle=rect))
            elif island_config.enhanced_detection:
                logger.debug(f"Layer {layer_index}: island at {rect} withdrawn by enhanced detection")
                island = None

        if island is not None:
            issues.append(island)

    return issues


def check_overhangs(raster: np.ndarray, previous: np.ndarray, layer_index: int, layer_rect: Rectangle,
                    config: OverhangDetectionConfig) -> List[Issue]:
    """Whole-layer overhang check, independent from island candidates."""
    eroded = _overhang_mask(raster, previous, config.erode_iterations)
    pixels = raster_utils.mask_points(eroded)
    if not pixels or len(pixels) < config.required_pixels_to_consider:
        return []
    return [Issue(issue_type=IssueType.OVERHANG, layer_index=layer_index, pixels=pixels,
                  bounding_rectangle=layer_rect)]


def find_hollow_areas(raster: np.ndarray, layer_index: int, layer_count: int,
                      config: ResinTrapDetectionConfig) -> List[HollowArea]:
    """
    Innermost enclosed cavities of a layer, the resin trap candidates.

    Uses a two-level contour hierarchy: a candidate has a parent contour and no
    child. Cavities on the first and last layers are drains by definition.
    """
    image = raster_utils.binarize(raster, config.binary_threshold)
    contours, hierarchy = cv2.findContours(image, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE)
    if hierarchy is None:
        return []

    seeded_drain = layer_index == 0 or layer_index == layer_count - 1
    areas: List[HollowArea] = []
    # hierarchy[0][i]: next, previous, first child, parent
    for contour, (_, _, first_child, parent) in zip(contours, hierarchy[0]):
        if first_child != -1 or parent == -1:
            continue
        rect = Rectangle.from_cv(cv2.boundingRect(contour))
        if rect.area < config.required_area_to_process_check:
            continue
        areas.append(HollowArea(layer_index=layer_index, contour=contour, bounding_rectangle=rect,
                                area_type=HollowAreaType.DRAIN if seeded_drain else HollowAreaType.UNKNOWN))
    return areas
