# testing/test_issue_detection.py

import pytest

from slice_inspector.core.common_types import (
    IslandDetectionConfig, IssueType, OverhangDetectionConfig, Rectangle,
    ResinTrapDetectionConfig, TouchingBoundDetectionConfig
)
from slice_inspector.core.exceptions import RasterDecodeError
from slice_inspector.core.progress import OperationProgress, STATUS_ISSUES
from slice_inspector.processes.detection import IssueDetector, check_touching_bounds
from slice_inspector.testing.helpers import blank, fill, find_issues

NO_ISLANDS = IslandDetectionConfig(enabled=False)
NO_TRAPS = ResinTrapDetectionConfig(enabled=False)


def detect(stack, **kwargs):
    ignored = kwargs.pop("ignored_issues", None)
    progress = kwargs.pop("progress", None)
    return IssueDetector(stack, **kwargs).detect(ignored, progress)


def island_stack(make_stack):
    """Layer 1 holds a supported 20x20 block and a floating 10x10 block."""
    base = fill(blank(), 60, 60, 79, 79)
    top = fill(fill(blank(), 60, 60, 79, 79), 20, 20, 29, 29)
    return make_stack([base, top])

# == Empty layers ==

def test_empty_layer_reported_once(make_stack):
    square = fill(blank(50, 50), 10, 10, 39, 39)
    stack = make_stack([square, blank(50, 50), square.copy()])
    report = detect(stack, island_config=NO_ISLANDS)
    assert [(i.issue_type, i.layer_index) for i in report.issues] == [(IssueType.EMPTY, 1)]
    empty = report.issues[0]
    assert empty.pixels == [] and empty.bounding_rectangle.is_empty


def test_empty_layer_switch(make_stack):
    square = fill(blank(50, 50), 10, 10, 39, 39)
    stack = make_stack([square, blank(50, 50)])
    report = detect(stack, island_config=NO_ISLANDS, detect_empty_layers=False)
    assert report.issues == []

# == Touching bounds ==

def test_touching_bound_collects_margin_pixels(make_stack):
    stack = make_stack([fill(blank(), 0, 40, 9, 49)])
    report = detect(stack)
    touching = find_issues(report.issues, IssueType.TOUCHING_BOUND)
    assert len(touching) == 1 and len(report.issues) == 1
    expected = {(x, y) for x in range(5) for y in range(40, 50)}
    assert set(touching[0].pixels) == expected
    assert touching[0].pixel_count == 50
    assert touching[0].bounding_rectangle == Rectangle(x=0, y=40, width=5, height=10)


def test_touching_bound_aggregates_edges_per_layer():
    raster = fill(fill(blank(), 0, 0, 2, 2), 97, 97, 99, 99)
    issues = check_touching_bounds(raster, 3, Rectangle(x=0, y=0, width=100, height=100),
                                   TouchingBoundDetectionConfig())
    assert len(issues) == 1
    assert issues[0].layer_index == 3
    assert issues[0].pixel_count == 18


def test_dim_pixels_in_margin_are_ignored(make_stack):
    stack = make_stack([fill(blank(), 0, 40, 9, 49, value=100)])
    assert detect(stack).issues == []


def test_far_from_margin_is_not_scanned(make_stack):
    stack = make_stack([fill(blank(), 10, 10, 89, 89)])
    assert find_issues(detect(stack).issues, IssueType.TOUCHING_BOUND) == []

# == Islands ==

def test_unsupported_block_is_an_island(make_stack):
    report = detect(island_stack(make_stack))
    assert len(report.issues) == 1
    island = report.issues[0]
    assert island.issue_type == IssueType.ISLAND
    assert island.layer_index == 1
    assert island.pixel_count == 100
    assert island.bounding_rectangle == Rectangle(x=20, y=20, width=10, height=10)


def test_first_layer_is_never_an_island(make_stack):
    stack = make_stack([fill(blank(), 20, 20, 29, 29)])
    assert detect(stack).issues == []


def test_dim_support_does_not_hold_an_island(make_stack):
    base = fill(blank(), 20, 20, 29, 29, value=100)
    top = fill(blank(), 20, 20, 29, 29)
    report = detect(make_stack([base, top]))
    assert [i.issue_type for i in report.issues] == [IssueType.ISLAND]


@pytest.mark.parametrize("diagonal, expected_islands", [(False, 1), (True, 0)])
def test_diagonal_bonds(make_stack, diagonal, expected_islands):
    # Floating block touches a supported block only through a corner
    base = fill(blank(), 30, 30, 39, 39)
    top = fill(fill(blank(), 30, 30, 39, 39), 20, 20, 29, 29)
    report = detect(make_stack([base, top]), island_config=IslandDetectionConfig(allow_diagonal_bonds=diagonal))
    assert len(find_issues(report.issues, IssueType.ISLAND)) == expected_islands


def test_island_white_list(make_stack):
    report = detect(island_stack(make_stack), island_config=IslandDetectionConfig(white_list_layers={5}))
    assert report.issues == []


@pytest.mark.parametrize("enhanced, expected", [(True, []), (False, [IssueType.ISLAND])])
def test_enhanced_detection_withdraws_thinly_supported_island(make_stack, enhanced, expected):
    # 13 supporting columns under a 60x60 block: 780 of the 900 pixels needed
    base = blank()
    for x in list(range(20, 76, 5)) + [79]:
        base[20:80, x] = 255
    top = fill(blank(), 20, 20, 79, 79)
    report = detect(make_stack([base, top]),
                    island_config=IslandDetectionConfig(enhanced_detection=enhanced),
                    overhang_config=OverhangDetectionConfig(erode_iterations=2))
    assert [i.issue_type for i in report.issues] == expected
    if expected:
        assert report.issues[0].pixel_count == 3600

# == Overhangs ==

def overhang_stack(make_stack):
    base = fill(blank(), 20, 20, 49, 79)
    top = fill(blank(), 20, 20, 79, 79)
    return make_stack([base, top])


def test_independent_overhang(make_stack):
    report = detect(overhang_stack(make_stack), overhang_config=OverhangDetectionConfig(erode_iterations=5))
    assert len(report.issues) == 1
    overhang = report.issues[0]
    assert overhang.issue_type == IssueType.OVERHANG
    assert overhang.pixel_count == 20 * 50
    assert overhang.bounding_rectangle == Rectangle(x=20, y=20, width=60, height=60)
    xs = {x for x, _ in overhang.pixels}
    assert min(xs) == 55 and max(xs) == 74


def test_overhang_below_required_pixels(make_stack):
    config = OverhangDetectionConfig(erode_iterations=5, required_pixels_to_consider=1001)
    assert detect(overhang_stack(make_stack), overhang_config=config).issues == []


def test_overhang_eroded_away(make_stack):
    # Default 40 erosions remove a 30 pixel wide ledge
    assert detect(overhang_stack(make_stack)).issues == []


def test_overhang_coupled_to_islands(make_stack):
    config = OverhangDetectionConfig(erode_iterations=5, independent_from_islands=False)
    report = detect(overhang_stack(make_stack), overhang_config=config)
    assert [i.issue_type for i in report.issues] == [IssueType.OVERHANG]
    overhang = report.issues[0]
    assert overhang.bounding_rectangle == Rectangle(x=20, y=20, width=60, height=60)
    assert all(x >= 55 for x, _ in overhang.pixels)


def test_overhang_runs_over_whole_layer_without_islands(make_stack):
    config = OverhangDetectionConfig(erode_iterations=5, independent_from_islands=False)
    report = detect(overhang_stack(make_stack), island_config=NO_ISLANDS, overhang_config=config)
    assert [i.pixel_count for i in report.issues] == [1000]

# == Run level behaviour ==

def test_ignore_list_suppresses_matching_issues(make_stack):
    stack = island_stack(make_stack)
    first = detect(stack)
    assert len(first.issues) == 1
    second = detect(stack, ignored_issues=first.issues)
    assert second.issues == []


def test_detection_is_idempotent_and_deterministic(make_stack):
    base = fill(fill(blank(), 0, 40, 9, 49), 60, 60, 79, 79)
    rasters = [base] + [fill(fill(blank(), 0, 40, 9, 49), 20 + i, 20, 29 + i, 29) for i in range(6)]
    stack = make_stack(rasters)
    serial = detect(stack, max_workers=1)
    parallel = detect(stack, max_workers=4, window=2)
    again = detect(stack, max_workers=4, window=2)
    assert serial.issues == parallel.issues == again.issues
    keys = [issue.sort_key() for issue in serial.issues]
    assert keys == sorted(keys)


def test_each_layer_decoded_once_during_scan(make_stack):
    rasters = [fill(blank(), 10 + i, 10, 60 + i, 60) for i in range(12)]
    stack = make_stack(rasters)
    detect(stack, resin_trap_config=NO_TRAPS, max_workers=3, window=3)
    assert stack.storage.reads == {i: 1 for i in range(12)}


def test_progress_counts_layers(make_stack):
    seen = []
    progress = OperationProgress(sink=lambda p: seen.append((p.status, p.processed, p.total)))
    detect(island_stack(make_stack), resin_trap_config=NO_TRAPS, progress=progress)
    assert (STATUS_ISSUES, 2, 2) in seen


def test_cancelled_before_start(make_stack):
    progress = OperationProgress()
    progress.token.cancel()
    report = detect(island_stack(make_stack), progress=progress)
    assert report.cancelled
    assert report.issues == []


def test_decode_failure_aborts_detection(make_stack):
    rasters = [fill(blank(), 10, 10, 20, 20) for _ in range(4)]
    stack = make_stack(rasters, fail_on=2)
    with pytest.raises(RasterDecodeError):
        detect(stack)


def test_report_counts(make_stack):
    stack = make_stack([fill(blank(), 60, 60, 79, 79), fill(blank(), 20, 20, 29, 29), blank()])
    report = detect(stack)
    counts = report.counts()
    assert counts[IssueType.ISLAND] == 1
    assert counts[IssueType.EMPTY] == 1
    assert counts[IssueType.RESIN_TRAP] == 0
    assert report.layer_count == 3
    assert not report.cancelled
