"""
Log Collector Application Package

Receives comma-tagged log lines over UDP, parses them into structured
records and writes them in batches to ClickHouse or severity-based files.
"""

from .batch_engine import BatchEngine
from .batch_sink import Batch, BatchSink, SinkError
from .clickhouse_sink import ClickHouseSink
from .file_sink import JsonFileSink
from .log_record import COLUMNS, LogRecord, Severity
from .tag_parser import TagParser
from .udp_log_receiver import UDPLogReceiver

__all__ = [
    'Batch',
    'BatchEngine',
    'BatchSink',
    'ClickHouseSink',
    'COLUMNS',
    'JsonFileSink',
    'LogRecord',
    'Severity',
    'SinkError',
    'TagParser',
    'UDPLogReceiver',
]

__version__ = '1.0.0'
