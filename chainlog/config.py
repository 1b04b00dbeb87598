"""Configuration: frozen dataclass built from defaults, YAML, env vars and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass, fields

import yaml

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    # Ledger
    ledger_host: str = "127.0.0.1"
    ledger_port: int = 7545
    ledger_data_file: str = "data/ledger.ndjson"
    producer_id: str = "chainlog"
    call_timeout: float = 5.0
    cost_buffer: int = 100_000
    min_cost: int = 200_000
    bulk_read_budget: int = 8_000_000

    # Ingestion
    queue_capacity: int = 50
    dispatch_interval: float = 1.0
    daily_quota: int = 1000
    quota_window: float = 24 * 60 * 60
    quota_log_interval: float = 60 * 60
    error_throttle: float = 5.0

    # Retrieval
    probe_ceiling: int = 10_000
    probe_stride: int = 500
    search_window: int = 1000
    scan_limit: int = 5000
    tail_size: int = 100
    cache_tail: bool = False

    # Outer surfaces
    api_host: str = "127.0.0.1"
    api_port: int = 3000
    source_command: str = "log stream"
    source_file: str = ""
    stream_events: bool = False
    echo_lines: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        positive = (
            "queue_capacity", "daily_quota", "probe_stride", "search_window",
            "tail_size", "scan_limit",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("dispatch_interval", "error_throttle", "quota_log_interval"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.quota_window <= 0 or self.call_timeout <= 0:
            raise ValueError("quota_window and call_timeout must be positive")
        if self.probe_ceiling < 0:
            raise ValueError("probe_ceiling must not be negative")


_FIELD_TYPES = {f.name: f.type for f in fields(Config)}


def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    if kind in (bool, "bool"):
        return value if isinstance(value, bool) else _parse_bool(str(value))
    if kind in (int, "int"):
        return int(value)
    if kind in (float, "float"):
        return float(value)
    return str(value)


def load_yaml_config(path: str | None) -> dict:
    """Load option overrides from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def build_parser(description: str = "chainlog") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    for f in fields(Config):
        flag = "--" + f.name.replace("_", "-")
        if f.type in (bool, "bool"):
            parser.add_argument(flag, dest=f.name, default=None, action="store_true")
        else:
            parser.add_argument(flag, dest=f.name, default=None)
    return parser


def load_config(argv: list[str] | None = None, description: str = "chainlog") -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority)."""
    args = build_parser(description).parse_args(argv)

    kwargs: dict = {}
    yaml_data = load_yaml_config(args.config or os.environ.get("CHAINLOG_CONFIG"))
    for key, value in yaml_data.items():
        if key not in _FIELD_TYPES:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        kwargs[key] = _coerce(key, value)

    for name in _FIELD_TYPES:
        env_value = os.environ.get("CHAINLOG_" + name.upper())
        if env_value is not None:
            kwargs[name] = _coerce(name, env_value)

    for name in _FIELD_TYPES:
        cli_value = getattr(args, name)
        if cli_value is not None:
            kwargs[name] = _coerce(name, cli_value)

    return Config(**kwargs)
