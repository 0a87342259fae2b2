# testing/test_bounds.py

import pytest

from slice_inspector.core.common_types import Rectangle
from slice_inspector.core.progress import (
    OperationProgress, STATUS_CALCULATING_BOUNDS, STATUS_OPTIMIZING_BOUNDS
)
from slice_inspector.layers import Layer
from slice_inspector.processes.bounds import BoundingBoxComputer
from slice_inspector.testing.helpers import blank, fill


def test_union_of_layer_rectangles(make_stack):
    stack = make_stack([fill(blank(), 10, 20, 29, 39), blank(), fill(blank(), 40, 5, 59, 69)])
    rect = BoundingBoxComputer(stack).compute()
    assert rect == Rectangle(x=10, y=5, width=50, height=65)
    assert stack.cached_bounding_rectangle == rect


def test_result_is_memoized(make_stack):
    stack = make_stack([fill(blank(), 10, 10, 19, 19), fill(blank(), 30, 30, 39, 39)])
    first = stack.get_bounding_rectangle()
    reads = dict(stack.storage.reads)

    assert stack.get_bounding_rectangle() == first
    assert dict(stack.storage.reads) == reads


def test_single_layer_edit_keeps_memo(make_stack):
    stack = make_stack([fill(blank(), 10, 10, 19, 19), fill(blank(), 30, 30, 39, 39)])
    before = stack.get_bounding_rectangle()
    stack.set_raster(1, fill(blank(), 0, 0, 99, 99))
    assert stack.get_bounding_rectangle() == before

    stack.layers = [Layer(0), Layer(1)]
    assert stack.get_bounding_rectangle() == Rectangle(x=0, y=0, width=100, height=100)


def test_empty_first_layer_measures_every_layer(make_stack):
    stack = make_stack([blank(), fill(blank(), 10, 10, 19, 19), fill(blank(), 50, 60, 59, 69)])
    statuses = []
    progress = OperationProgress(sink=lambda p: statuses.append(p.status))

    rect = BoundingBoxComputer(stack, max_workers=2).compute(progress)

    assert rect == Rectangle(x=10, y=10, width=50, height=60)
    assert all(layer.has_bounds for layer in stack)
    assert all(count == 1 for count in stack.storage.reads.values())
    assert STATUS_OPTIMIZING_BOUNDS in statuses and STATUS_CALCULATING_BOUNDS in statuses


def test_all_empty_stack_has_empty_bounds(make_stack):
    stack = make_stack([blank(), blank()])
    assert stack.get_bounding_rectangle().is_empty


def test_cancellation_discards_result(make_stack):
    stack = make_stack([fill(blank(), 10, 10, 19, 19), fill(blank(), 30, 30, 39, 39)])
    progress = OperationProgress()
    progress.token.cancel()

    rect = BoundingBoxComputer(stack).compute(progress)

    assert rect.is_empty
    assert stack.cached_bounding_rectangle.is_empty


@pytest.mark.parametrize("a, b, expected", [
    (Rectangle(x=0, y=0, width=10, height=10), Rectangle(x=9, y=9, width=5, height=5), True),
    (Rectangle(x=0, y=0, width=10, height=10), Rectangle(x=10, y=0, width=5, height=5), False),
    (Rectangle(x=0, y=0, width=10, height=10), Rectangle(), False),
])
def test_rectangle_intersection(a, b, expected):
    assert a.intersects_with(b) is expected
    assert b.intersects_with(a) is expected
