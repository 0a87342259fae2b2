# core/progress.py

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

STATUS_ISSUES = "Computing issues"
STATUS_RESIN_TRAPS = "Resin traps"
STATUS_OPTIMIZING_BOUNDS = "Optimizing bounds"
STATUS_CALCULATING_BOUNDS = "Calculating bounds"
STATUS_DRAWINGS = "Drawings"
STATUS_SAVING = "Saving"


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and worker threads."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class OperationProgress:
    """
    Progress counter against a known total, plus a human-readable status label.

    Increments are safe from any worker thread. When a sink is given it is called
    with this object after every change, so a UI can push or poll it.
    """

    def __init__(self, status: str = "", total: int = 0,
                 sink: Optional[Callable[["OperationProgress"], None]] = None,
                 token: Optional[CancellationToken] = None):
        self.status = status
        self.total = total
        self.processed = 0
        self.sink = sink
        self.token = token or CancellationToken()
        self.mutex = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    def reset(self, status: str, total: int, processed: int = 0) -> None:
        with self.mutex:
            self.status = status
            self.total = total
            self.processed = processed
        logger.debug(f"Progress reset: '{status}' {processed}/{total}")
        self._notify()

    def increment(self, count: int = 1) -> None:
        with self.mutex:
            self.processed += count
        self._notify()

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.processed / self.total)

    def _notify(self) -> None:
        if self.sink is not None:
            self.sink(self)

    def __str__(self) -> str:
        return f"{self.status}: {self.processed}/{self.total}"
