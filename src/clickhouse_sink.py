import logging
from typing import Any, List, Optional, Sequence

import clickhouse_connect
from clickhouse_connect.driver.exceptions import ClickHouseError

from .batch_sink import Batch, BatchSink, SinkError
from .log_record import COLUMNS

logger = logging.getLogger(__name__)


class ClickHouseBatch(Batch):
    """Rows collected locally and sent to ClickHouse in a single INSERT"""

    def __init__(self, client: Any, context: Any, column_names: Sequence[str]) -> None:
        self.client = client
        self.context = context
        self.column_names: Sequence[str] = column_names
        self.rows: List[List[Any]] = []

    def append(self, *values: Any) -> None:
        if len(values) != len(self.column_names):
            raise SinkError(
                f"Expected {len(self.column_names)} values "
                f"({', '.join(self.column_names)}), got {len(values)}"
            )
        self.rows.append(list(values))

    def commit(self) -> int:
        if not self.rows:
            return 0

        try:
            summary = self.client.insert(data=self.rows, context=self.context)
        except ClickHouseError as e:
            raise SinkError(f"ClickHouse insert failed: {e}") from e

        written = getattr(summary, 'written_rows', None)
        return written if written else len(self.rows)


class ClickHouseSink(BatchSink):
    """Write batches of log records to a ClickHouse table"""

    DEFAULT_PORT = 8123  # HTTP interface

    def __init__(self,
                 host: str = 'localhost',
                 port: int = DEFAULT_PORT,
                 database: str = 'default',
                 username: str = 'default',
                 password: str = '',
                 timeout: float = 10.0,
                 column_names: Sequence[str] = COLUMNS,
                 client: Optional[Any] = None) -> None:
        """
        Initialize the ClickHouse sink.

        Args:
            host: ClickHouse server host
            port: HTTP port of the server
            database: Database holding the target table
            username: Login user
            password: Login password
            timeout: Send/receive timeout for every request, in seconds
            column_names: Insert columns, in the order rows are appended
            client: Pre-built client (tests, shared connections)
        """
        self.host: str = host
        self.port: int = port
        self.database: str = database
        self.column_names: Sequence[str] = tuple(column_names)

        if client is None:
            try:
                client = clickhouse_connect.get_client(
                    host=host,
                    port=port,
                    username=username,
                    password=password,
                    database=database,
                    connect_timeout=timeout,
                    send_receive_timeout=timeout,
                )
            except ClickHouseError as e:
                raise SinkError(f"Cannot connect to ClickHouse at {host}:{port}: {e}") from e

        self.client = client
        logger.info(f"ClickHouse sink connected to {host}:{port}/{database}")

    def ping(self) -> bool:
        """Check the server answers"""
        return bool(self.client.ping())

    def open_batch(self, target: str) -> ClickHouseBatch:
        """
        Prepare an INSERT against the target table.
        Column types are fetched from the server, so unknown tables or
        columns fail here rather than at commit.
        """
        try:
            context = self.client.create_insert_context(
                table=target,
                column_names=list(self.column_names),
            )
        except ClickHouseError as e:
            raise SinkError(f"Cannot prepare batch for {target}: {e}") from e

        return ClickHouseBatch(self.client, context, self.column_names)

    def close(self) -> None:
        try:
            self.client.close()
            logger.info("ClickHouse connection closed")
        except ClickHouseError as e:
            logger.error(f"Error closing ClickHouse connection: {e}")
