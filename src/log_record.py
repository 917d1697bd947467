from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, List, Tuple


class Severity(IntEnum):
    """
    Syslog severity levels (RFC 5424)
    https://devops.com/syslogs-in-linux-understanding-facilities-and-levels/
    """
    EMERGENCY = 0
    ALERT = 1
    CRITICAL = 2
    ERROR = 3
    WARNING = 4
    NOTICE = 5
    INFO = 6
    DEBUG = 7

    @property
    def label(self) -> str:
        return self.name.lower()


# Column order expected by every sink
COLUMNS: Tuple[str, ...] = ('timestamp', 'origin', 'severity', 'categories', 'message')


@dataclass(frozen=True)
class LogRecord:
    """One parsed log line, immutable once built by the parser"""

    timestamp: datetime
    origin: str
    severity: Severity
    categories: Tuple[str, ...]
    message: str

    def as_row(self) -> List[Any]:
        """Values in COLUMNS order, converted to plain types for the store"""
        return [
            self.timestamp,
            self.origin,
            int(self.severity),
            list(self.categories),
            self.message,
        ]
