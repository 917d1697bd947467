import logging
import queue
import socket
from typing import Optional, Tuple

from .log_record import LogRecord
from .tag_parser import TagParser

logger = logging.getLogger(__name__)


class UDPLogReceiver:
    """Receive tagged log lines over UDP and queue the parsed records"""

    MAX_DATAGRAM_SIZE = 40960
    POLL_INTERVAL = 1.0

    def __init__(self, record_queue: 'queue.Queue[LogRecord]',
                 host: str = '0.0.0.0', port: int = 514,
                 buffer_size: int = MAX_DATAGRAM_SIZE) -> None:
        """
        Initialize UDP log receiver.

        Args:
            record_queue: Bounded queue consumed by the BatchEngine
            host: Interface to bind to
                  - '0.0.0.0' = All interfaces (default, required for containers)
                  - '127.0.0.1' = Localhost only (development)
                  - Specific IP = Single interface (production on bare metal)
            port: UDP port to listen on (default: 514)
            buffer_size: Largest datagram read in one call

        Security Note:
            When using 0.0.0.0 (all interfaces), ensure proper firewall rules
            or security groups are configured to restrict access to trusted sources.
        """
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {buffer_size}")

        self.record_queue: 'queue.Queue[LogRecord]' = record_queue
        self.host: str = host
        self.port: int = port
        self.buffer_size: int = buffer_size
        self.running: bool = False
        self.sock: Optional[socket.socket] = None

    def bind(self) -> Tuple[str, int]:
        """Open the socket; returns the bound address (port 0 picks a free one)"""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        sock.settimeout(self.POLL_INTERVAL)
        self.sock = sock
        self.host, self.port = sock.getsockname()[:2]
        return self.host, self.port

    def start(self) -> int:
        """
        Start the UDP log receiver.
        Returns 0 after stop(), 1 when reading from the socket failed.
        """
        if self.sock is None:
            self.bind()

        self.running = True
        logger.info(f"UDP log receiver listening on {self.host}:{self.port}")

        exit_code = 0
        try:
            while self.running:
                try:
                    data, addr = self.sock.recvfrom(self.buffer_size)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.running:
                        logger.error(f"UDP read error: {e}")
                        exit_code = 1
                    break

                message = data.decode('utf-8', errors='replace')
                self._process_message(message, addr)
        finally:
            self.running = False
            self.sock.close()
            self.sock = None

        return exit_code

    def _process_message(self, message: str, addr: Tuple) -> None:
        """Parse a datagram and hand the record to the engine"""
        record = TagParser.parse(message, addr)
        logger.debug(f"Received {record.severity.label} message from {record.origin}")

        # Blocks while the queue is full; retried in slices so stop() is honoured
        while self.running:
            try:
                self.record_queue.put(record, timeout=self.POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def stop(self) -> None:
        """Stop the receiver"""
        self.running = False
