import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from .batch_sink import Batch, BatchSink, SinkError
from .log_record import COLUMNS, Severity

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class FileBatch(Batch):
    """Rows serialized at append time, written to disk on commit"""

    def __init__(self, sink: 'JsonFileSink', target: str) -> None:
        self.sink = sink
        self.target = target
        self.lines: List[tuple] = []  # (severity label, json line)

    def append(self, *values: Any) -> None:
        if len(values) != len(COLUMNS):
            raise SinkError(f"Expected {len(COLUMNS)} values, got {len(values)}")

        row: Dict[str, Any] = dict(zip(COLUMNS, values))
        try:
            severity = Severity(row['severity']).label
        except ValueError as e:
            raise SinkError(f"Invalid severity {row['severity']!r}") from e

        try:
            line = json.dumps(row, default=_json_default, ensure_ascii=False)
        except TypeError as e:
            raise SinkError(f"Row is not serializable: {e}") from e

        self.lines.append((severity, line))

    def commit(self) -> int:
        return self.sink.write_lines(self.target, self.lines)


class JsonFileSink(BatchSink):
    """Write batches as JSON lines to severity-based log files with automatic rotation"""

    def __init__(self,
                 log_dir: str = 'logs',
                 max_bytes: int = 10 * 1024 * 1024,  # 10MB
                 backup_count: int = 5) -> None:
        """
        Initialize the file sink.

        Args:
            log_dir: Directory to store log files, one subdirectory per target
            max_bytes: Maximum size per log file before rotation
            backup_count: Number of backup files to keep
        """
        self.log_dir: Path = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.max_bytes: int = max_bytes
        self.backup_count: int = backup_count

        # File handles cache, keyed by path
        self.file_handles: Dict[Path, TextIO] = {}

        # Guards commit against close() from the main thread
        self.lock: threading.Lock = threading.Lock()

        self.is_closed: bool = False

    def open_batch(self, target: str) -> FileBatch:
        if self.is_closed:
            raise SinkError("JsonFileSink is closed")
        # Prevent path traversal through the target name
        if not target or Path(target).name != target or target in ('.', '..'):
            raise SinkError(f"Invalid target name {target!r}")
        return FileBatch(self, target)

    def path_for(self, target: str, severity: str) -> Path:
        return self.log_dir / target / f"{severity}.log"

    def write_lines(self, target: str, lines: Sequence[tuple]) -> int:
        """Append serialized rows to their severity files"""
        with self.lock:
            if self.is_closed:
                raise SinkError("JsonFileSink is closed")

            touched = set()
            try:
                for severity, line in lines:
                    path = self.path_for(target, severity)
                    if self._should_rotate(path):
                        self._rotate_file(path)

                    file_handle = self._get_file_handle(path)
                    file_handle.write(line)
                    file_handle.write('\n')
                    touched.add(path)

                for path in touched:
                    self.file_handles[path].flush()  # Ensure data reaches disk
            except OSError as e:
                raise SinkError(f"I/O error writing {target}: {e}") from e

        return len(lines)

    def _get_file_handle(self, path: Path) -> TextIO:
        if path not in self.file_handles:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.file_handles[path] = open(path, 'a', buffering=8192, encoding='utf-8')
        return self.file_handles[path]

    def _should_rotate(self, path: Path) -> bool:
        """Check if file should be rotated based on size"""
        handle: Optional[TextIO] = self.file_handles.get(path)
        if handle is not None:
            handle.flush()
        return path.exists() and path.stat().st_size >= self.max_bytes

    def _rotate_file(self, path: Path) -> None:
        """
        Rotate log file when it exceeds max_bytes.
        Renames: info.log → info.log.1 → info.log.2 → ... → info.log.N
        """
        if path in self.file_handles:
            self.file_handles[path].close()
            del self.file_handles[path]

        # Rotate existing backups (N-1 → N, ... , 1 → 2)
        for i in range(self.backup_count - 1, 0, -1):
            old_backup = path.with_name(f"{path.name}.{i}")
            new_backup = path.with_name(f"{path.name}.{i + 1}")

            if old_backup.exists():
                if new_backup.exists():
                    new_backup.unlink()  # Remove oldest
                old_backup.rename(new_backup)

        if self.backup_count > 0:
            path.rename(path.with_name(f"{path.name}.1"))
        else:
            path.unlink()

        logger.info(f"Rotated {path} (kept {self.backup_count} backups)")

    def close(self) -> None:
        """Close all open file handles"""
        with self.lock:
            if self.is_closed:
                logger.debug("JsonFileSink already closed")
                return

            self.is_closed = True

            for path, file_handle in list(self.file_handles.items()):
                try:
                    file_handle.flush()
                    file_handle.close()
                    logger.info(f"Closed {path}")
                except OSError as e:
                    logger.error(f"Error closing {path}: {e}")

            self.file_handles.clear()
