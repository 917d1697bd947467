#!/usr/bin/env python3
"""
Log Collector Application - Main Entry Point
Receives tagged log lines over UDP, parses them, and writes them in batches
to ClickHouse (or to severity-based JSON files).
"""

import logging
import math
import queue
import sys
import threading
from typing import List, Optional

from .batch_engine import BatchEngine
from .batch_sink import BatchSink, SinkError
from .clickhouse_sink import ClickHouseSink
from .config import CollectorConfig, ConfigError, load_config
from .file_sink import JsonFileSink
from .log_record import LogRecord
from .udp_log_receiver import UDPLogReceiver

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ENGINE_JOIN_MARGIN = 5.0


def build_sink(config: CollectorConfig) -> BatchSink:
    """Create the configured sink; a ClickHouse sink must answer a ping"""
    if config.sink == 'file':
        return JsonFileSink(log_dir=config.log_dir)

    sink = ClickHouseSink(
        host=config.db_host,
        port=config.db_port,
        database=config.db_name,
        username=config.db_user,
        password=config.db_pass,
        timeout=config.flush_timeout,
    )
    if not sink.ping():
        sink.close()
        raise SinkError(f"ClickHouse at {config.db_host}:{config.db_port} did not answer ping")
    return sink


def engine_join_timeout(config: CollectorConfig) -> float:
    """
    How long to wait for the engine to drain at shutdown.
    Covers a full queue plus one buffered batch, each flush taking its whole deadline.
    """
    flushes = math.ceil(config.queue_capacity / config.batch_size) + 1
    return flushes * config.flush_timeout + ENGINE_JOIN_MARGIN


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point, returns the process exit status"""
    try:
        config = load_config(argv)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logging.getLogger().setLevel(config.log_level)

    logger.info("Starting Log Collector")
    logger.info(f"UDP: {config.udp_host}:{config.udp_port}")
    logger.info(f"Sink: {config.sink} (target: {config.db_table})")
    logger.info(
        f"Batching: {config.batch_size} records or {config.flush_interval}s, "
        f"queue capacity {config.queue_capacity}"
    )

    try:
        sink = build_sink(config)
    except SinkError as e:
        logger.error(f"Sink unavailable: {e}")
        return 1

    record_queue: 'queue.Queue[LogRecord]' = queue.Queue(maxsize=config.queue_capacity)

    receiver = UDPLogReceiver(
        record_queue,
        host=config.udp_host,
        port=config.udp_port,
        buffer_size=config.recv_buffer_size,
    )
    try:
        receiver.bind()
    except OSError as e:
        logger.error(f"Cannot listen on {config.udp_host}:{config.udp_port}: {e}")
        sink.close()
        return 1

    engine = BatchEngine(
        sink,
        record_queue,
        flush_interval=config.flush_interval,
        batch_size=config.batch_size,
        target=config.db_table,
        flush_timeout=config.flush_timeout,
    )
    engine_thread = threading.Thread(target=engine.start, name='batch-engine', daemon=True)
    engine_thread.start()

    exit_code = 1
    try:
        exit_code = receiver.start()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        receiver.stop()
        exit_code = 0
    finally:
        engine.stop(drain=True)
        join_timeout = engine_join_timeout(config)
        engine_thread.join(timeout=join_timeout)
        if engine_thread.is_alive():
            logger.warning(
                f"Batch engine still draining after {join_timeout}s, "
                f"{engine.buffered + record_queue.qsize()} records may be lost"
            )
        sink.close()

    return exit_code


def run() -> None:
    sys.exit(main())


if __name__ == '__main__':
    run()
