"""Collector configuration: .env file, then environment variables, then CLI flags."""

import argparse
import logging
import os
from dataclasses import dataclass, replace
from typing import List, Mapping, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SINK_TYPES = ('clickhouse', 'file')


class ConfigError(ValueError):
    """Raised when a configuration value is missing or invalid"""


@dataclass(frozen=True)
class CollectorConfig:
    udp_host: str = '0.0.0.0'
    udp_port: int = 514
    recv_buffer_size: int = 40960

    sink: str = 'clickhouse'
    db_host: str = 'localhost'
    db_port: int = 8123
    db_name: str = 'default'
    db_user: str = 'default'
    db_pass: str = ''
    db_table: str = 'mikrotik_logs'
    log_dir: str = 'logs'

    batch_size: int = 1000  # flush once this many records are buffered
    flush_interval: float = 2.0  # or once this many seconds have passed
    flush_timeout: float = 10.0
    queue_capacity: int = 10000  # burst protection between receiver and engine

    log_level: str = 'INFO'

    def validate(self) -> 'CollectorConfig':
        if not 0 <= self.udp_port <= 65535:
            raise ConfigError(f"UDP port out of range: {self.udp_port}")
        if self.recv_buffer_size < 1:
            raise ConfigError(f"RECV_BUFFER_SIZE must be at least 1, got {self.recv_buffer_size}")
        if self.sink not in SINK_TYPES:
            raise ConfigError(f"Unknown sink {self.sink!r}, expected one of {', '.join(SINK_TYPES)}")
        if self.batch_size < 1:
            raise ConfigError(f"BATCH_SIZE must be at least 1, got {self.batch_size}")
        if self.flush_interval <= 0:
            raise ConfigError(f"FLUSH_INTERVAL must be positive, got {self.flush_interval}")
        if self.flush_timeout <= 0:
            raise ConfigError(f"FLUSH_TIMEOUT must be positive, got {self.flush_timeout}")
        if self.queue_capacity < 1:
            raise ConfigError(f"QUEUE_CAPACITY must be at least 1, got {self.queue_capacity}")
        if not self.db_table:
            raise ConfigError("DB_TABLE must not be empty")
        if logging.getLevelName(self.log_level) == f"Level {self.log_level}":
            raise ConfigError(f"Unknown LOG_LEVEL {self.log_level!r}")
        return self


def split_host_port(value: str, default_port: int) -> Tuple[str, int]:
    """Split 'host', 'host:port' or '[v6]:port'"""
    value = value.strip()
    if value.startswith('['):
        host, _, rest = value[1:].partition(']')
        port = rest[1:] if rest.startswith(':') else ''
    elif value.count(':') == 1:
        host, port = value.split(':')
    else:
        host, port = value, ''

    if not port:
        return host, default_port
    try:
        return host, int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in address {value!r}") from None


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="UDP log collector with batched storage")
    parser.add_argument('--port', type=int, default=None, help="UDP port to listen on")
    parser.add_argument('--sink', choices=SINK_TYPES, default=None, help="Storage backend")
    parser.add_argument('--env-file', default='.env', help="Path of the .env file to load")
    return parser


def config_from_env(env: Mapping[str, str]) -> CollectorConfig:
    """Build CollectorConfig from a mapping of environment variables"""
    db_host, db_port = split_host_port(
        env.get('DB_HOST', CollectorConfig.db_host), CollectorConfig.db_port
    )
    return CollectorConfig(
        udp_host=env.get('UDP_HOST', CollectorConfig.udp_host),
        udp_port=_get_int(env, 'UDP_PORT', CollectorConfig.udp_port),
        recv_buffer_size=_get_int(env, 'RECV_BUFFER_SIZE', CollectorConfig.recv_buffer_size),
        sink=env.get('SINK', CollectorConfig.sink).lower(),
        db_host=db_host,
        db_port=db_port,
        db_name=env.get('DB_NAME', CollectorConfig.db_name),
        db_user=env.get('DB_USER', CollectorConfig.db_user),
        db_pass=env.get('DB_PASS', CollectorConfig.db_pass),
        db_table=env.get('DB_TABLE', CollectorConfig.db_table),
        log_dir=env.get('LOG_DIR', CollectorConfig.log_dir),
        batch_size=_get_int(env, 'BATCH_SIZE', CollectorConfig.batch_size),
        flush_interval=_get_float(env, 'FLUSH_INTERVAL', CollectorConfig.flush_interval),
        flush_timeout=_get_float(env, 'FLUSH_TIMEOUT', CollectorConfig.flush_timeout),
        queue_capacity=_get_int(env, 'QUEUE_CAPACITY', CollectorConfig.queue_capacity),
        log_level=env.get('LOG_LEVEL', CollectorConfig.log_level).upper(),
    )


def load_config(argv: Optional[List[str]] = None) -> CollectorConfig:
    """
    Load configuration for the collector.

    Pass argv for testability; when None, argparse reads sys.argv.
    Values already set in the process environment win over the .env file,
    CLI flags win over both.
    """
    args = build_parser().parse_args(argv)

    if not load_dotenv(args.env_file):
        logger.warning(f"No .env file loaded from {args.env_file}, using process environment")

    config = config_from_env(os.environ)

    overrides = {}
    if args.port is not None:
        overrides['udp_port'] = args.port
    if args.sink is not None:
        overrides['sink'] = args.sink
    if overrides:
        config = replace(config, **overrides)

    return config.validate()
