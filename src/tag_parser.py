import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Pattern, Tuple, Union

from .log_record import LogRecord, Severity

logger = logging.getLogger(__name__)

Origin = Union[str, Tuple]


def format_origin(origin: Origin) -> str:
    """Render a recvfrom() address as host:port ([host]:port for IPv6)"""
    if isinstance(origin, str):
        return origin

    host, port = origin[0], origin[1]
    if ':' in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class TagParser:
    """
    Parse the comma-delimited tag convention used by network devices:

        tag0,severity,tag1,tag2 free text message

    The second tag carries the severity, every other tag becomes a category.
    Anything that does not have this shape is kept whole as an
    unstructured message.
    """
    SEVERITY_KEYWORDS: Dict[str, Severity] = {
        'fatal': Severity.EMERGENCY,
        'emergency': Severity.EMERGENCY,
        'alert': Severity.ALERT,
        'critical': Severity.CRITICAL,
        'error': Severity.ERROR,
        'warning': Severity.WARNING,
        'notice': Severity.NOTICE,
        'info': Severity.INFO,
        'debug': Severity.DEBUG,
        'packet': Severity.DEBUG,
        'raw': Severity.DEBUG,
    }

    DEFAULT_SEVERITY: Severity = Severity.INFO
    UNKNOWN_CATEGORY: str = 'unknown'

    # First whitespace character separates the tag header from the message
    HEADER_SEPARATOR: Pattern[str] = re.compile(r'\s')

    @classmethod
    def parse(cls, raw: str, origin: Origin) -> LogRecord:
        """
        Parse one datagram payload into a LogRecord.
        Never raises: input without a tag header falls back to an
        unstructured record holding the raw text.
        """
        try:
            source = format_origin(origin)
        except (IndexError, TypeError) as e:
            logger.error(f"Unusable origin address {origin!r}: {e}")
            source = str(origin)

        parts = cls.HEADER_SEPARATOR.split(raw, maxsplit=1)
        if len(parts) < 2:
            return cls._unstructured(raw, source)

        header, message = parts
        topics = header.split(',')
        if len(topics) < 2:
            return cls._unstructured(raw, source)

        severity, categories = cls._classify(topics)
        return LogRecord(
            timestamp=datetime.now(timezone.utc),
            origin=source,
            severity=severity,
            categories=tuple(categories),
            message=message,
        )

    @classmethod
    def _classify(cls, topics: List[str]) -> Tuple[Severity, List[str]]:
        """Split header topics into the severity and the remaining categories"""
        token = topics[1]
        categories = [topics[0]] + topics[2:]

        severity = cls.SEVERITY_KEYWORDS.get(token)
        if severity is None:
            # Unrecognised keywords are kept as a tag instead of being lost
            severity = cls.DEFAULT_SEVERITY
            categories.append(token)

        return severity, categories

    @classmethod
    def _unstructured(cls, raw: str, source: str) -> LogRecord:
        return LogRecord(
            timestamp=datetime.now(timezone.utc),
            origin=source,
            severity=cls.DEFAULT_SEVERITY,
            categories=(cls.UNKNOWN_CATEGORY,),
            message=raw,
        )
