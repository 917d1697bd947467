import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FlushTimeoutError
from typing import List, Optional

from .batch_sink import BatchSink
from .log_record import LogRecord

logger = logging.getLogger(__name__)


class BatchEngine:
    """
    Single consumer of the record queue.

    Records are buffered in memory and written to the sink as one batch
    when either the buffer reaches batch_size or the periodic timer fires
    with something buffered. Sink failures are logged and the batch is
    dropped; the engine keeps consuming.
    """

    FLUSH_TIMEOUT = 10.0  # seconds a single flush may take
    POLL_INTERVAL = 0.5  # upper bound on one queue wait, keeps stop() responsive

    def __init__(self,
                 sink: BatchSink,
                 record_queue: 'queue.Queue[LogRecord]',
                 flush_interval: float,
                 batch_size: int,
                 target: str,
                 flush_timeout: float = FLUSH_TIMEOUT) -> None:
        """
        Initialize the batching engine.

        Args:
            sink: Storage target receiving each batch
            record_queue: Bounded queue filled by the network receiver
            flush_interval: Seconds between timer ticks
            batch_size: Buffer length that triggers an immediate flush
            target: Table (or file set) name handed to the sink
            flush_timeout: Upper bound in seconds on one flush
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if flush_interval <= 0:
            raise ValueError(f"flush_interval must be positive, got {flush_interval}")
        if flush_timeout <= 0:
            raise ValueError(f"flush_timeout must be positive, got {flush_timeout}")

        self.sink: BatchSink = sink
        self.record_queue: 'queue.Queue[LogRecord]' = record_queue
        self.flush_interval: float = flush_interval
        self.batch_size: int = batch_size
        self.target: str = target
        self.flush_timeout: float = flush_timeout

        # Owned by the consumer loop only
        self.buffer: List[LogRecord] = []

        self.running: bool = False
        self._stop_event: threading.Event = threading.Event()
        self._drain_on_stop: bool = True

        # One worker: flushes never overlap and the sink is used sequentially
        self._flush_worker: ThreadPoolExecutor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix='batch-flush'
        )
        self._inflight: Optional[Future] = None

    @property
    def buffered(self) -> int:
        """Number of records waiting for the next flush"""
        return len(self.buffer)

    def start(self) -> None:
        """Run the consumer loop until stop() is called"""
        self.running = True
        logger.info(
            f"Batch engine started (target: {self.target}, batch size: {self.batch_size}, "
            f"interval: {self.flush_interval}s)"
        )

        next_tick = time.monotonic() + self.flush_interval

        try:
            while not self._stop_event.is_set():
                now = time.monotonic()
                if now >= next_tick:
                    self.tick()
                    next_tick += self.flush_interval
                    if next_tick <= now:
                        # Missed ticks while a flush was running are coalesced
                        next_tick = now + self.flush_interval
                    continue

                wait = min(next_tick - now, self.POLL_INTERVAL)
                try:
                    record = self.record_queue.get(timeout=wait)
                except queue.Empty:
                    continue
                self.accept(record)

            if self._drain_on_stop:
                self._drain()
        finally:
            self._flush_worker.shutdown(wait=False)
            self.running = False
            logger.info("Batch engine stopped")

    def accept(self, record: LogRecord) -> None:
        """Buffer one record, flushing when the size threshold is reached"""
        self.buffer.append(record)
        if len(self.buffer) >= self.batch_size:
            self.flush()

    def tick(self) -> None:
        """Timer trigger: flush whatever is buffered, nothing if empty"""
        if self.buffer:
            self.flush()

    def flush(self) -> None:
        """
        Hand the current buffer to the sink as one batch.
        The buffer is cleared before the write, whatever its outcome.

        A batch that misses the flush deadline keeps the flush worker busy
        until the sink call returns. While it does, later batches are dropped
        instead of queued behind it, so a hung sink cannot pile up records.
        """
        if not self.buffer:
            return

        records, self.buffer = self.buffer, []

        if self._inflight is not None and not self._inflight.done():
            logger.error(
                f"Sink still busy with an abandoned batch "
                f"(Batch Size: {len(records)}), batch dropped"
            )
            return

        future = self._flush_worker.submit(self._write_batch, records)
        self._inflight = future
        try:
            future.result(timeout=self.flush_timeout)
        except FlushTimeoutError:
            future.cancel()
            logger.error(
                f"Flush timed out after {self.flush_timeout}s "
                f"(Batch Size: {len(records)}), batch abandoned"
            )

    def stop(self, drain: bool = True) -> None:
        """
        Stop the consumer loop.
        With drain, records still queued are flushed before the loop exits.
        """
        self._drain_on_stop = drain
        self._stop_event.set()

    def _drain(self) -> None:
        """Move everything left in the queue through the buffer and flush"""
        drained = 0
        while True:
            try:
                record = self.record_queue.get_nowait()
            except queue.Empty:
                break
            self.accept(record)
            drained += 1

        pending = len(self.buffer)
        self.flush()
        if drained or pending:
            logger.info(f"Drained {drained} queued records, final flush of {pending}")

    def _write_batch(self, records: List[LogRecord]) -> None:
        """Open, fill and commit one batch. Runs on the flush worker."""
        try:
            batch = self.sink.open_batch(self.target)
        except Exception as e:
            logger.error(f"Batch open failed for {self.target}, dropping {len(records)} records: {e}")
            return

        for record in records:
            try:
                batch.append(*record.as_row())
            except Exception as e:
                logger.error(f"Batch append failed for record from {record.origin}: {e}")

        try:
            written = batch.commit()
        except Exception as e:
            logger.error(f"Batch commit failed (Batch Size: {len(records)}): {e}")
            return

        logger.info(f"Wrote {written} records to {self.target}")
