# services/inspection_service.py

import logging
from typing import Iterable, List, Optional, Sequence

from ..core.common_types import (
    DetectionReport, IslandDetectionConfig, Issue, OverhangDetectionConfig, Rectangle,
    ResinTrapDetectionConfig, TouchingBoundDetectionConfig
)
from ..core.exceptions import SliceInspectorError
from ..core.progress import CancellationToken, OperationProgress
from ..core.utils import timed
from ..layers.stack import LayerStack
from ..processes.bounds import BoundingBoxComputer
from ..processes.detection import IssueDetector
from ..processes.drawing import DrawingEngine, PixelOperation

logger = logging.getLogger(__name__)

class InspectionService:
    """Caller-facing entry point for inspecting and editing a layer stack."""

    def __init__(self, stack: LayerStack, max_workers: Optional[int] = None):
        """
        Initialize the InspectionService.

        Args:
            stack: The layer stack to work on.
            max_workers: Thread pool size for the parallel phases; falls back to settings.
        """
        self.stack = stack
        self.max_workers = max_workers
        logger.info(f"InspectionService initialized for {stack.count} layers ({stack.width}x{stack.height}).")

    def detect_issues(self,
                      island_config: Optional[IslandDetectionConfig] = None,
                      overhang_config: Optional[OverhangDetectionConfig] = None,
                      resin_trap_config: Optional[ResinTrapDetectionConfig] = None,
                      touching_bound_config: Optional[TouchingBoundDetectionConfig] = None,
                      ignored_issues: Optional[Iterable[Issue]] = None,
                      progress: Optional[OperationProgress] = None,
                      token: Optional[CancellationToken] = None,
                      detect_empty_layers: Optional[bool] = None) -> DetectionReport:
        """
        Runs issue detection with the given configurations.

        Args:
            ignored_issues: Previously reported issues the caller chose to ignore.
            progress: Optional progress sink holder.
            token: Cancellation token; replaces the token held by `progress`.

        Returns:
            The DetectionReport. A cancelled run is reported, not raised.

        Raises:
            SliceInspectorError: If a layer fails to decode.
        """
        progress = progress or OperationProgress()
        if token is not None:
            progress.token = token

        detector = IssueDetector(self.stack, island_config, overhang_config, resin_trap_config,
                                 touching_bound_config, detect_empty_layers=detect_empty_layers,
                                 max_workers=self.max_workers)
        try:
            report = detector.detect(ignored_issues, progress)
        except SliceInspectorError as e:
            logger.error(f"Issue detection aborted: {e}", exc_info=True)
            raise

        counts = {issue_type.value: count for issue_type, count in report.counts().items() if count}
        logger.info(f"Detection summary: {counts or 'no issues'}")
        return report

    def apply_drawings(self, operations: Sequence[PixelOperation],
                       progress: Optional[OperationProgress] = None) -> List[int]:
        """Applies pixel operations to the stack; returns the layers written back."""
        if not operations:
            logger.info("No pixel operations to apply.")
            return []
        logger.info(f"Applying {len(operations)} pixel operations.")
        try:
            with timed("Pixel operations"):
                return DrawingEngine(self.stack, max_workers=self.max_workers).apply(operations, progress)
        except SliceInspectorError as e:
            logger.error(f"Drawing batch failed: {e}")
            raise

    def get_bounding_rectangle(self, progress: Optional[OperationProgress] = None) -> Rectangle:
        with timed("Bounding rectangle"):
            return BoundingBoxComputer(self.stack, max_workers=self.max_workers).compute(progress)
