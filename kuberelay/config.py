"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kuberelay.models.config import (
    DEFAULT_WATERMARK_ANNOTATION,
    APIConfig,
    CacheConfig,
    KubeRelayConfig,
    LogConfig,
    SinkConfig,
    WatchConfig,
)

_SINK_TYPES = {"log", "webhook"}

# Qualified annotation key: optional DNS prefix, then a name segment.
_ANNOTATION_KEY_RE = re.compile(
    r"^([a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*/)?[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$"
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBERELAY_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_annotation_key(value: str) -> str:
    if not _ANNOTATION_KEY_RE.match(value):
        raise ValueError(f"Invalid annotation key: {value}")
    return value


def _validate_sink(sink: SinkConfig) -> SinkConfig:
    if sink.type not in _SINK_TYPES:
        raise ValueError(f"Invalid sink type: {sink.type}. Must be one of {_SINK_TYPES}")
    if sink.type == "webhook" and not sink.webhook_url:
        raise ValueError("KUBERELAY_SINK_WEBHOOK_URL is required when KUBERELAY_SINK_TYPE=webhook")
    return sink


def load_config() -> KubeRelayConfig:
    """Load configuration from KUBERELAY_* environment variables."""
    return KubeRelayConfig(
        watch=WatchConfig(
            namespace=_env("NAMESPACE", ""),
            timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=60, max_val=3600),
            watermark_annotation=_validate_annotation_key(
                _env("WATERMARK_ANNOTATION", DEFAULT_WATERMARK_ANNOTATION)
            ),
        ),
        cache=CacheConfig(
            max_entries=_env_int("CACHE_MAX_ENTRIES", 1024, min_val=16, max_val=65536),
            by_uid=_env_bool("CACHE_BY_UID", True),
        ),
        sink=_validate_sink(
            SinkConfig(
                type=_env("SINK_TYPE", "log").lower(),
                webhook_url=_env("SINK_WEBHOOK_URL", ""),
                webhook_timeout=_env_float("SINK_WEBHOOK_TIMEOUT", 10.0),
            )
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
