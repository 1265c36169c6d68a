"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_WATERMARK_ANNOTATION = "kuberelay.io/last-count"


@dataclass
class WatchConfig:
    """Notification source configuration."""

    namespace: str = ""
    timeout_seconds: int = 300
    watermark_annotation: str = DEFAULT_WATERMARK_ANNOTATION


@dataclass
class CacheConfig:
    """Metadata cache configuration."""

    max_entries: int = 1024
    by_uid: bool = True


@dataclass
class SinkConfig:
    """Downstream sink configuration."""

    type: str = "log"
    webhook_url: str = ""
    webhook_timeout: float = 10.0


@dataclass
class APIConfig:
    """Health and metrics API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeRelayConfig:
    """Top-level kuberelay configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
