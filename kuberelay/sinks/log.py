"""Sink that writes each enriched event as one structured log line."""

from __future__ import annotations

import structlog

from kuberelay.models.events import EnrichedEvent
from kuberelay.sinks.base import EventSink

_log = structlog.get_logger(component="sinks.log")


class LogSink(EventSink):
    @property
    def sink_name(self) -> str:
        return "log"

    async def send(self, event: EnrichedEvent) -> None:
        _log.info("event_forwarded", payload=event.to_dict())
