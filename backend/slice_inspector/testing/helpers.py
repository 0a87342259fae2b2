# testing/helpers.py

import threading
from collections import Counter
from typing import Optional

import numpy as np

from slice_inspector.core.common_types import IssueType
from slice_inspector.layers import InMemoryLayerStorage


class SpyStorage(InMemoryLayerStorage):
    """In-memory storage counting raster reads and writes per layer."""

    def __init__(self, rasters, fail_on: Optional[int] = None, **kwargs):
        super().__init__(rasters, **kwargs)
        self.reads: Counter = Counter()
        self.writes: Counter = Counter()
        self.fail_on = fail_on
        self._spy_lock = threading.Lock()

    def get_raster(self, layer_index: int) -> np.ndarray:
        with self._spy_lock:
            self.reads[layer_index] += 1
        if layer_index == self.fail_on:
            raise ValueError(f"corrupt layer {layer_index}")
        return super().get_raster(layer_index)

    def set_raster(self, layer_index: int, raster: np.ndarray) -> None:
        with self._spy_lock:
            self.writes[layer_index] += 1
        super().set_raster(layer_index, raster)


def blank(width: int = 100, height: int = 100) -> np.ndarray:
    return np.zeros((height, width), dtype=np.uint8)


def fill(raster: np.ndarray, x0: int, y0: int, x1: int, y1: int, value: int = 255) -> np.ndarray:
    """Fills the inclusive box (x0, y0)-(x1, y1)."""
    raster[y0:y1 + 1, x0:x1 + 1] = value
    return raster


def find_issues(issues: list, issue_type: IssueType) -> list:
    return [issue for issue in issues if issue.issue_type == issue_type]
