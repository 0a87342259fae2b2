# layers/cache.py

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


class _CacheEntry:
    __slots__ = ("raster", "refs", "lock")

    def __init__(self):
        self.raster: Optional[np.ndarray] = None
        self.refs = 0
        self.lock = threading.Lock()


class RasterCache:
    """
    Bounded cache of decoded rasters keyed by layer index.

    Eviction follows a sliding processing cursor: once `advance()` moves the
    cursor past a layer, its raster is dropped as soon as no holder still has
    it acquired. Rasters handed out are read-only and shared between holders.

    Args:
        fetch: Callable decoding a raster for a layer index.
        window: Number of layers the owner keeps in flight; informational bound.
    """

    def __init__(self, fetch: Callable[[int], np.ndarray], window: int = 2):
        self._fetch = fetch
        self.window = max(2, window)
        self._entries: Dict[int, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._cursor = 0
        self.decode_count = 0

    @contextmanager
    def acquire(self, layer_index: int) -> Iterator[np.ndarray]:
        """Yields the raster of a layer, decoding it on first use."""
        with self._lock:
            entry = self._entries.get(layer_index)
            if entry is None:
                entry = _CacheEntry()
                self._entries[layer_index] = entry
            entry.refs += 1
        try:
            with entry.lock:
                if entry.raster is None:
                    raster = self._fetch(layer_index)
                    raster.flags.writeable = False
                    entry.raster = raster
                    with self._lock:
                        self.decode_count += 1
            yield entry.raster
        finally:
            with self._lock:
                entry.refs -= 1
                if entry.refs == 0 and (entry.raster is None or layer_index < self._cursor):
                    if self._entries.get(layer_index) is entry:
                        del self._entries[layer_index]

    def advance(self, cursor: int) -> None:
        """Moves the processing cursor; idle rasters below it are released."""
        with self._lock:
            if cursor <= self._cursor:
                return
            self._cursor = cursor
            for layer_index in [i for i, e in self._entries.items() if i < cursor and e.refs == 0]:
                del self._entries[layer_index]

    def clear(self) -> None:
        with self._lock:
            self._entries = {i: e for i, e in self._entries.items() if e.refs > 0}

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def cached_indexes(self) -> List[int]:
        with self._lock:
            return sorted(i for i, e in self._entries.items() if e.raster is not None)

    def __len__(self) -> int:
        return len(self.cached_indexes)

    def __contains__(self, layer_index: int) -> bool:
        return layer_index in self.cached_indexes
