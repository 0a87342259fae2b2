# testing/test_raster_cache.py

import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from slice_inspector.layers import RasterCache
from slice_inspector.testing.helpers import blank, fill


class CountingFetch:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, layer_index: int) -> np.ndarray:
        with self._lock:
            self.calls.append(layer_index)
        return fill(blank(10, 10), 0, 0, layer_index, layer_index)


def test_acquire_decodes_once_while_cached():
    fetch = CountingFetch()
    cache = RasterCache(fetch, window=4)
    with cache.acquire(3) as first:
        with cache.acquire(3) as second:
            assert first is second
    with cache.acquire(3):
        pass
    assert fetch.calls == [3]
    assert cache.decode_count == 1
    assert 3 in cache


def test_rasters_are_read_only():
    cache = RasterCache(CountingFetch())
    with cache.acquire(0) as raster:
        with pytest.raises(ValueError):
            raster[0, 0] = 1


def test_advance_releases_idle_rasters_below_cursor():
    cache = RasterCache(CountingFetch(), window=4)
    for layer_index in range(4):
        with cache.acquire(layer_index):
            pass
    assert cache.cached_indexes == [0, 1, 2, 3]

    cache.advance(2)
    assert cache.cursor == 2
    assert cache.cached_indexes == [2, 3]

    # The cursor never moves backwards
    cache.advance(1)
    assert cache.cursor == 2


def test_held_raster_survives_advance_until_released():
    fetch = CountingFetch()
    cache = RasterCache(fetch)
    with cache.acquire(0):
        cache.advance(5)
        assert 0 in cache
    assert 0 not in cache

    with cache.acquire(0):
        pass
    assert fetch.calls == [0, 0]
    assert len(cache) == 0


def test_clear_keeps_held_entries():
    cache = RasterCache(CountingFetch())
    with cache.acquire(1):
        with cache.acquire(2):
            pass
        cache.clear()
        assert cache.cached_indexes == [1]


def test_concurrent_acquire_decodes_once():
    fetch = CountingFetch()
    cache = RasterCache(fetch, window=8)

    def read(layer_index: int) -> int:
        with cache.acquire(layer_index % 2) as raster:
            return int(raster.sum())

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(read, range(64)))

    assert sorted(fetch.calls) == [0, 1]
    assert set(results) == {255, 4 * 255}


def test_fetch_failure_propagates_and_is_not_cached():
    def broken(layer_index: int) -> np.ndarray:
        raise RuntimeError("decode failed")

    cache = RasterCache(broken)
    with pytest.raises(RuntimeError):
        with cache.acquire(0):
            pass
    assert len(cache) == 0
