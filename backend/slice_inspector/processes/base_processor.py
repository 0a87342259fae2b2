# processes/base_processor.py

import abc
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..core.progress import OperationProgress
from ..layers.stack import LayerStack
from ..config import settings

logger = logging.getLogger(__name__)

class BaseProcessor(abc.ABC):
    """
    Abstract Base Class for the processors working over a layer stack.
    Holds the stack handle and the shared worker pool / progress plumbing.
    """

    def __init__(self, stack: LayerStack, max_workers: Optional[int] = None):
        """
        Initializes the BaseProcessor.

        Args:
            stack: The layer stack this processor reads and writes.
            max_workers: Thread pool size for per-layer work. Falls back to the
                         configured `max_workers`, then to the executor default.
        """
        self.stack = stack
        self.max_workers = max_workers if max_workers is not None else settings.max_workers

    @property
    @abc.abstractmethod
    def process_name(self) -> str:
        """Short human-readable name used in log lines."""
        pass

    def _executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers,
                                  thread_name_prefix=self.process_name.lower().replace(" ", "-"))

    @staticmethod
    def _ensure_progress(progress: Optional[OperationProgress]) -> OperationProgress:
        return progress if progress is not None else OperationProgress()
