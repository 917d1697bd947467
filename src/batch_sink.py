from abc import ABC, abstractmethod
from typing import Any


class SinkError(Exception):
    """Raised by a sink when a batch cannot be opened, filled or committed"""


class Batch(ABC):
    """A group of rows submitted to a sink in one commit"""

    @abstractmethod
    def append(self, *values: Any) -> None:
        """Add one row, values in COLUMNS order"""

    @abstractmethod
    def commit(self) -> int:
        """Persist every appended row and return how many were written"""


class BatchSink(ABC):
    """
    Storage target consumed by the BatchEngine.

    Sinks are used sequentially from a single thread, so implementations
    do not need to coordinate concurrent batches.
    """

    @abstractmethod
    def open_batch(self, target: str) -> Batch:
        """Begin a new batch against a named target (table, file set, ...)"""

    def close(self) -> None:
        """Release any connection or file handle held by the sink"""

    def __enter__(self) -> 'BatchSink':
        """Context manager entry"""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        """Context manager exit - closes all resources"""
        self.close()
        return False  # Don't suppress exceptions
