"""Downstream sinks for forwarded events.

Exports:
    EventSink   -- Abstract base; instances are usable directly as the
                   pipeline's EventHandler.
    LogSink     -- One structured JSON log line per event.
    WebhookSink -- JSON POST to an HTTP endpoint.
    build_sink  -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kuberelay.sinks.base import EventSink
from kuberelay.sinks.log import LogSink
from kuberelay.sinks.webhook import WebhookSink

if TYPE_CHECKING:
    from kuberelay.models.config import SinkConfig

_log = structlog.get_logger(component="sinks")

__all__ = ["EventSink", "LogSink", "WebhookSink", "build_sink"]


def build_sink(config: SinkConfig) -> EventSink:
    """Build the sink selected by ``KUBERELAY_SINK_TYPE``."""
    if config.type == "webhook":
        _log.info("webhook_sink_enabled")
        return WebhookSink(url=config.webhook_url, timeout=config.webhook_timeout)
    if config.type == "log":
        _log.info("log_sink_enabled")
        return LogSink()
    raise ValueError(f"Unknown sink type: {config.type}")
