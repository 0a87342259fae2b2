# testing/conftest.py

import logging
from typing import List, Sequence

import numpy as np
import pytest

# --- Project Imports ---
try:
    from slice_inspector.layers import LayerStack
    from slice_inspector.testing.helpers import SpyStorage, blank, fill
except ImportError as e:
    pytest.fail(f"Failed to import essential project modules: {e}", pytrace=False)

logger = logging.getLogger(__name__)

# --- Fixtures ---

@pytest.fixture(autouse=True)
def reset_package_logging():
    yield
    # The CLI attaches a handler bound to the runner's captured stream
    logging.getLogger("slice_inspector").handlers.clear()


@pytest.fixture
def make_stack():
    """Factory: builds a LayerStack over a SpyStorage, reachable as `stack.storage`."""
    def _make(rasters: Sequence[np.ndarray], **kwargs) -> LayerStack:
        return LayerStack(SpyStorage(rasters, **kwargs))
    return _make


@pytest.fixture
def hollow_box_stack(make_stack):
    """
    Factory: layers of 60x60 with a solid 40x40 block (10..49).

    `cavity_layers` get a 10x10 hole at 20..29; `empty_layers` are left blank.
    """
    def _make(cavity_layers: Sequence[int], empty_layers: Sequence[int] = (), count: int = 5) -> LayerStack:
        rasters: List[np.ndarray] = []
        for index in range(count):
            raster = blank(60, 60)
            if index not in empty_layers:
                fill(raster, 10, 10, 49, 49)
                if index in cavity_layers:
                    fill(raster, 20, 20, 29, 29, 0)
            rasters.append(raster)
        return make_stack(rasters)
    return _make
