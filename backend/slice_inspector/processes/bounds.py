# processes/bounds.py

import logging
from typing import Optional

from ..core.common_types import Rectangle
from ..core.progress import OperationProgress, STATUS_CALCULATING_BOUNDS, STATUS_OPTIMIZING_BOUNDS
from .base_processor import BaseProcessor

logger = logging.getLogger(__name__)


class BoundingBoxComputer(BaseProcessor):
    """Computes and memoizes the union of every layer's non-empty bounding rectangle."""

    @property
    def process_name(self) -> str:
        return "Bounds"

    def compute(self, progress: Optional[OperationProgress] = None) -> Rectangle:
        """
        Returns the stack bounding rectangle, computing it when not memoized.

        Layer 0 is measured first. When it is empty every layer is measured in
        parallel before the union. A cancellation discards the partial result
        and returns an empty rectangle.
        """
        stack = self.stack
        memo = stack.cached_bounding_rectangle
        if not memo.is_empty or stack.count == 0:
            return memo

        progress = self._ensure_progress(progress)
        progress.reset(STATUS_OPTIMIZING_BOUNDS, stack.count - 1)
        rect = stack.layer_bounding_rectangle(0)

        if rect.is_empty:
            progress.reset(STATUS_OPTIMIZING_BOUNDS, stack.count)
            self._measure_all_layers(progress)
            if progress.is_cancelled:
                return self._discard()

        progress.reset(STATUS_CALCULATING_BOUNDS, stack.count - 1)
        for layer_index in range(1, stack.count):
            if progress.is_cancelled:
                return self._discard()
            rect = rect.union(stack.layer_bounding_rectangle(layer_index))
            progress.increment()

        stack.cached_bounding_rectangle = rect
        logger.info(f"Stack bounding rectangle: {rect}")
        return rect

    def _measure_all_layers(self, progress: OperationProgress) -> None:
        def measure(layer_index: int) -> None:
            if progress.is_cancelled:
                return
            self.stack.layer_bounding_rectangle(layer_index)
            progress.increment()

        with self._executor() as executor:
            # Consume results so worker exceptions surface here
            for _ in executor.map(measure, range(self.stack.count)):
                pass

    def _discard(self) -> Rectangle:
        logger.warning("Bounding rectangle computation cancelled; partial result discarded.")
        self.stack.cached_bounding_rectangle = Rectangle.empty()
        return Rectangle.empty()
