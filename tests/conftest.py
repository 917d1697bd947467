"""Pytest configuration and shared fixtures for test suite"""

import queue
import tempfile
import threading
from datetime import datetime, timezone
from typing import Callable, Generator, Tuple

import pytest

from src.batch_engine import BatchEngine
from src.file_sink import JsonFileSink
from src.log_record import LogRecord, Severity
from src.udp_log_receiver import UDPLogReceiver
from tests.helpers import RecordingSink, wait_for


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests requiring network")
    config.addinivalue_line("markers", "scenario: Real-world scenario and performance tests")
    config.addinivalue_line("markers", "slow: Tests that take longer than 1 second")


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    """Factory for LogRecord instances with sensible defaults"""
    def _make(message: str = 'test message',
              severity: Severity = Severity.INFO,
              categories: Tuple[str, ...] = ('system',),
              origin: str = '10.0.0.5:514') -> LogRecord:
        return LogRecord(
            timestamp=datetime(2025, 1, 15, 10, 30, 45, tzinfo=timezone.utc),
            origin=origin,
            severity=severity,
            categories=categories,
            message=message,
        )
    return _make


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def record_queue() -> 'queue.Queue[LogRecord]':
    return queue.Queue(maxsize=100)


@pytest.fixture
def batch_engine(recording_sink: RecordingSink, record_queue: queue.Queue) -> BatchEngine:
    """Engine with a small threshold and a long interval so only explicit ticks fire"""
    return BatchEngine(
        recording_sink,
        record_queue,
        flush_interval=60.0,
        batch_size=3,
        target='test_logs',
        flush_timeout=1.0,
    )


@pytest.fixture
def temp_log_dir() -> Generator[str, None, None]:
    """Create temporary directory for log files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def file_sink(temp_log_dir: str) -> Generator[JsonFileSink, None, None]:
    """Create JsonFileSink instance with temporary directory"""
    sink = JsonFileSink(log_dir=temp_log_dir)
    yield sink
    sink.close()


@pytest.fixture
def running_collector(
    recording_sink: RecordingSink
) -> Generator[Tuple[UDPLogReceiver, BatchEngine, RecordingSink, int], None, None]:
    """UDP receiver and batch engine wired together on an available port"""
    record_queue: queue.Queue = queue.Queue(maxsize=1000)

    receiver = UDPLogReceiver(record_queue, host='127.0.0.1', port=0)
    _, port = receiver.bind()

    engine = BatchEngine(
        recording_sink,
        record_queue,
        flush_interval=0.2,
        batch_size=5,
        target='test_logs',
        flush_timeout=1.0,
    )

    receiver_thread = threading.Thread(target=receiver.start, daemon=True)
    engine_thread = threading.Thread(target=engine.start, daemon=True)
    receiver_thread.start()
    engine_thread.start()

    wait_for(lambda: receiver.running and engine.running, timeout=1.0)

    yield receiver, engine, recording_sink, port

    receiver.stop()
    engine.stop(drain=True)
    receiver_thread.join(timeout=2.0)
    engine_thread.join(timeout=2.0)


@pytest.fixture
def sample_log_lines() -> dict:
    """Sample tagged log lines as sent by network devices"""
    return {
        'interface_down': 'network,critical,interface eth0 down',
        'login_failure': 'system,error,account login failure for user admin from 192.168.88.10',
        'dhcp_lease': 'dhcp,info,lease assigned 192.168.88.254 to 00:11:22:33:44:55',
        'firewall_drop': 'firewall,debug,drop input: in:ether1 proto TCP 203.0.113.100:54321->192.168.88.1:22',
        'wireless_roam': 'wireless,notice,roaming client 00:AA:BB:CC:DD:EE moved to ap2',
        'script_warning': 'script,warning,scheduler backup script took 42s',
        'custom_severity': 'ospf,state,neighbor 10.0.0.2 changed to Full',
        'unstructured': 'System rebooted by user admin',
        'no_whitespace': 'kernel-panic',
        'single_tag': 'system boot completed',
    }
