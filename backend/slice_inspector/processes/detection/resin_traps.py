# processes/detection/resin_traps.py

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import cv2
import numpy as np

from ...core.common_types import HollowArea, HollowAreaType, ResinTrapDetectionConfig
from ...core.progress import OperationProgress, STATUS_RESIN_TRAPS
from ...core import raster as raster_utils
from ...layers.stack import LayerStack
from ..base_processor import BaseProcessor

logger = logging.getLogger(__name__)

# Descending layer index first, then ascending
DIRECTIONS = (-1, 1)


class ResinTrapResolver(BaseProcessor):
    """
    Classifies hollow areas as trapped resin or drained cavities.

    Every unresolved area starts as a trap. The search walks one layer up and
    one layer down from it and from every area it links, looking for an
    opening to the ambient or a link to an area already known to drain. The
    whole linked group then gets the same classification. A drain never goes
    back to trap.

    Resolution is single-threaded: it owns and mutates the hollow area records
    produced by the parallel discovery phase.
    """

    def __init__(self, stack: LayerStack, config: Optional[ResinTrapDetectionConfig] = None,
                 max_workers: Optional[int] = None):
        super().__init__(stack, max_workers)
        self.config = config or ResinTrapDetectionConfig()

    @property
    def process_name(self) -> str:
        return "Resin traps"

    def resolve(self, areas_by_layer: Dict[int, List[HollowArea]],
                progress: Optional[OperationProgress] = None) -> bool:
        """
        Resolves every UNKNOWN area in place.

        Args:
            areas_by_layer: Hollow area candidates keyed by layer index.
            progress: Receives one unit per layer.

        Returns:
            False if the run was cancelled before every area was resolved.
        """
        progress = self._ensure_progress(progress)
        progress.reset(STATUS_RESIN_TRAPS, self.stack.count)

        for layer_index in range(self.stack.count):
            for area in areas_by_layer.get(layer_index, []):
                if progress.is_cancelled:
                    logger.warning(f"Resin trap resolution cancelled at layer {layer_index}.")
                    return False
                if area.area_type != HollowAreaType.UNKNOWN:
                    continue
                if not self._resolve_area(area, areas_by_layer, progress):
                    logger.warning(f"Resin trap resolution cancelled at layer {layer_index}.")
                    return False
            progress.increment()

        return True

    def _resolve_area(self, root: HollowArea, areas_by_layer: Dict[int, List[HollowArea]],
                      progress: OperationProgress) -> bool:
        root.area_type = HollowAreaType.TRAP
        root.processed = True
        group: List[HollowArea] = [root]
        queue: Deque[HollowArea] = deque([root])
        rasters: Dict[int, np.ndarray] = {}
        drained = False

        try:
            while queue and not drained:
                area = queue.popleft()
                # Linked areas search both directions too
                for direction in DIRECTIONS:
                    if progress.is_cancelled:
                        return False
                    target_index = area.layer_index + direction
                    if not 0 <= target_index < self.stack.count:
                        continue

                    if target_index not in rasters:
                        rasters[target_index] = self.stack.get_raster(target_index)
                    drained, found = self._walk(area, rasters[target_index], areas_by_layer.get(target_index, []))

                    for candidate in found:
                        if not candidate.processed:
                            candidate.processed = True
                            group.append(candidate)
                            queue.append(candidate)

                    if drained:
                        break
        finally:
            for area in group:
                area.processed = False

        area_type = HollowAreaType.DRAIN if drained else HollowAreaType.TRAP
        for area in group:
            area.mark(area_type)

        logger.debug(f"Layer {root.layer_index}: area at {root.bounding_rectangle} resolved as "
                     f"{root.area_type.value} with {len(group) - 1} linked areas")
        return True

    def _walk(self, area: HollowArea, target: np.ndarray,
              candidates: List[HollowArea]) -> Tuple[bool, List[HollowArea]]:
        """
        Walks the dark pixels of the target layer lying under `area`.

        Returns:
            (True if the area drains through the target layer, the target
            layer areas linked before the walk stopped, in first-touch order)
        """
        height, width = target.shape
        roi = raster_utils.clip_rectangle(area.bounding_rectangle, width, height)
        if roi.is_empty:
            return False, []
        offset = (-roi.x, -roi.y)

        area_mask = np.zeros((roi.height, roi.width), dtype=np.uint8)
        cv2.drawContours(area_mask, [area.contour], -1, raster_utils.WHITE, -1, offset=offset)

        intersecting = [c for c in candidates if c.bounding_rectangle.intersects_with(area.bounding_rectangle)]
        labels = np.zeros((roi.height, roi.width), dtype=np.int32)
        candidate_mask = np.zeros_like(area_mask)
        for label, candidate in enumerate(intersecting, start=1):
            candidate_mask[:] = 0
            cv2.drawContours(candidate_mask, [candidate.contour], -1, raster_utils.WHITE, -1, offset=offset)
            labels[candidate_mask > 0] = label

        black = (area_mask > 0) & (target[roi.as_slices()] <= self.config.maximum_pixel_brightness_to_drain)
        under = labels[black]  # row-major walk order
        black_count = len(under)
        if black_count == 0:
            return False, []

        threshold = min(area.contour_length // 2, self.config.required_black_pixels_to_drain)
        running = np.arange(1, black_count + 1)
        open_pixels = under == 0
        escapes = np.flatnonzero(open_pixels & (running > threshold))
        stop = int(escapes[0]) if len(escapes) else black_count

        found: List[HollowArea] = []
        touched = under[:stop]
        touched_labels, first_touch = np.unique(touched[touched > 0], return_index=True)
        for label in touched_labels[np.argsort(first_touch)]:
            candidate = intersecting[int(label) - 1]
            if candidate.area_type == HollowAreaType.DRAIN:
                return True, found
            found.append(candidate)

        return stop < black_count, found
