# processes/detection/detector.py

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ...core.common_types import (
    DetectionReport, HollowArea, HollowAreaType, IslandDetectionConfig, Issue,
    OverhangDetectionConfig, ResinTrapDetectionConfig, TouchingBoundDetectionConfig
)
from ...core.progress import OperationProgress, STATUS_ISSUES
from ...core.utils import format_time
from ...layers.cache import RasterCache
from ...layers.stack import LayerStack
from ...config import settings
from ..base_processor import BaseProcessor
from . import rules
from .resin_traps import ResinTrapResolver

logger = logging.getLogger(__name__)


@dataclass
class _LayerResult:
    issues: List[Issue] = field(default_factory=list)
    hollow_areas: List[HollowArea] = field(default_factory=list)


class IssueDetector(BaseProcessor):
    """
    Runs the per-layer checks over a layer stack, then resolves resin traps.

    Layers are scanned in parallel within a sliding window of in-flight tasks,
    sharing decoded rasters through a RasterCache so each layer is decoded once
    for its own checks and for the island/overhang checks of the layer above.
    """

    def __init__(self, stack: LayerStack,
                 island_config: Optional[IslandDetectionConfig] = None,
                 overhang_config: Optional[OverhangDetectionConfig] = None,
                 resin_trap_config: Optional[ResinTrapDetectionConfig] = None,
                 touching_bound_config: Optional[TouchingBoundDetectionConfig] = None,
                 detect_empty_layers: Optional[bool] = None,
                 max_workers: Optional[int] = None,
                 window: Optional[int] = None):
        super().__init__(stack, max_workers)
        self.island_config = island_config or IslandDetectionConfig()
        self.overhang_config = overhang_config or OverhangDetectionConfig()
        self.resin_trap_config = resin_trap_config or ResinTrapDetectionConfig()
        self.touching_bound_config = touching_bound_config or TouchingBoundDetectionConfig()
        self.detect_empty_layers = settings.detect_empty_layers if detect_empty_layers is None else detect_empty_layers
        self.window = max(2, window if window is not None else settings.raster_cache_window)

    @property
    def process_name(self) -> str:
        return "Issue detection"

    def detect(self, ignored_issues: Optional[Iterable[Issue]] = None,
               progress: Optional[OperationProgress] = None) -> DetectionReport:
        """
        Detects every enabled issue type on the stack.

        Args:
            ignored_issues: Issues to suppress, matched on type, layer and pixel set.
            progress: Progress sink and cancellation token holder.

        Returns:
            DetectionReport sorted by type, layer and pixel count. When cancelled,
            `cancelled` is set and resin traps are not reported.

        Raises:
            RasterDecodeError: If any layer fails to decode; detection is aborted.
        """
        start_time = time.time()
        progress = self._ensure_progress(progress)
        stack = self.stack
        logger.info(f"Starting issue detection over {stack.count} layers (window {self.window}).")

        results = self._scan_layers(progress)
        issues = [issue for index in sorted(results) for issue in results[index].issues]
        cancelled = progress.is_cancelled

        if not cancelled and self.resin_trap_config.enabled:
            areas_by_layer = {index: results[index].hollow_areas for index in sorted(results)
                              if results[index].hollow_areas}
            if areas_by_layer:
                resolver = ResinTrapResolver(stack, self.resin_trap_config, self.max_workers)
                if resolver.resolve(areas_by_layer, progress):
                    issues.extend(area.to_issue()
                                  for index in sorted(areas_by_layer) for area in areas_by_layer[index]
                                  if area.area_type == HollowAreaType.TRAP
                                  and self.resin_trap_config.allows(area.layer_index))
                else:
                    cancelled = True

        if ignored_issues:
            ignored = {issue.ignore_key() for issue in ignored_issues}
            issues = [issue for issue in issues if issue.ignore_key() not in ignored]
        issues.sort(key=Issue.sort_key)

        elapsed = time.time() - start_time
        if cancelled:
            logger.warning(f"Issue detection cancelled after {format_time(elapsed)}; {len(issues)} partial issues.")
        else:
            logger.info(f"Issue detection finished in {format_time(elapsed)}: {len(issues)} issues.")
        return DetectionReport(issues=issues, cancelled=cancelled, layer_count=stack.count,
                               analysis_time_sec=round(elapsed, 3))

    def _scan_layers(self, progress: OperationProgress) -> Dict[int, _LayerResult]:
        count = self.stack.count
        progress.reset(STATUS_ISSUES, count)
        cache = self.stack.raster_cache(self.window)
        results: Dict[int, _LayerResult] = {}
        pending: Dict[Future, int] = {}
        next_index = 0

        with self._executor() as executor:
            while next_index < count or pending:
                while next_index < count and len(pending) < self.window and not progress.is_cancelled:
                    pending[executor.submit(self._process_layer, next_index, cache, progress)] = next_index
                    next_index += 1
                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    layer_index = pending.pop(future)
                    results[layer_index] = future.result()

                # A task needs its own layer and the one below it
                lowest_pending = min(pending.values()) if pending else next_index
                cache.advance(lowest_pending - 1)

        cache.clear()
        logger.debug(f"Scanned {len(results)}/{count} layers, {cache.decode_count} rasters decoded.")
        return results

    def _process_layer(self, layer_index: int, cache: RasterCache, progress: OperationProgress) -> _LayerResult:
        result = _LayerResult()
        if progress.is_cancelled:
            return result

        with cache.acquire(layer_index) as raster:
            layer_rect = self.stack.layer_bounding_rectangle(layer_index, raster)
            if layer_rect.is_empty:
                if self.detect_empty_layers:
                    result.issues.append(rules.check_empty_layer(layer_index))
            else:
                self._check_layer(layer_index, raster, layer_rect, cache, result)

        progress.increment()
        return result

    def _check_layer(self, layer_index, raster, layer_rect, cache, result):
        touching = self.touching_bound_config
        island = self.island_config
        overhang = self.overhang_config
        resin_trap = self.resin_trap_config

        if touching.enabled and touching.allows(layer_index):
            result.issues.extend(rules.check_touching_bounds(raster, layer_index, layer_rect, touching))

        check_islands = island.enabled and island.allows(layer_index)
        check_overhangs = (overhang.enabled and overhang.allows(layer_index)
                           and (not island.enabled or overhang.independent_from_islands))
        if layer_index > 0 and (check_islands or check_overhangs):
            with cache.acquire(layer_index - 1) as previous:
                if check_islands:
                    result.issues.extend(rules.check_islands(raster, previous, layer_index, island, overhang))
                if check_overhangs:
                    result.issues.extend(rules.check_overhangs(raster, previous, layer_index, layer_rect, overhang))

        if resin_trap.enabled:
            result.hollow_areas = rules.find_hollow_areas(raster, layer_index, self.stack.count, resin_trap)
