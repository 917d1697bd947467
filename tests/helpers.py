"""
Test Helpers Module
In-memory sink and small utilities shared by the test suite
"""
import socket
import time
from typing import Any, Callable, List, Optional, Set

from src.batch_sink import Batch, BatchSink, SinkError


class RecordingBatch(Batch):
    """Batch that keeps appended rows in memory"""

    def __init__(self, sink: 'RecordingSink', target: str) -> None:
        self.sink = sink
        self.target = target
        self.rows: List[List[Any]] = []

    def append(self, *values: Any) -> None:
        index = self.sink.append_calls
        self.sink.append_calls += 1
        if index in self.sink.fail_append_at:
            raise SinkError(f"append {index} rejected")
        self.rows.append(list(values))

    def commit(self) -> int:
        if self.sink.commit_delay:
            time.sleep(self.sink.commit_delay)
        if self.sink.fail_commit:
            raise SinkError("commit rejected")
        self.sink.committed.append(self.rows)
        return len(self.rows)


class RecordingSink(BatchSink):
    """In-memory sink with switchable failures, one entry per committed batch"""

    def __init__(self) -> None:
        self.opened: List[str] = []
        self.committed: List[List[List[Any]]] = []
        self.append_calls: int = 0
        self.fail_open: bool = False
        self.fail_append_at: Set[int] = set()
        self.fail_commit: bool = False
        self.commit_delay: float = 0.0
        self.closed: bool = False

    def open_batch(self, target: str) -> RecordingBatch:
        self.opened.append(target)
        if self.fail_open:
            raise SinkError("cannot open batch")
        return RecordingBatch(self, target)

    def close(self) -> None:
        self.closed = True

    @property
    def messages(self) -> List[str]:
        return [row[4] for batch in self.committed for row in batch]


def wait_for(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until condition() is true or the timeout expires"""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


def send_datagrams(port: int, messages: List[str], delay: float = 0.0,
                   sock: Optional[socket.socket] = None) -> None:
    """Send each message as one UDP datagram to localhost"""
    own = sock is None
    if own:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        for message in messages:
            sock.sendto(message.encode('utf-8'), ('127.0.0.1', port))
            if delay:
                time.sleep(delay)
    finally:
        if own:
            sock.close()

