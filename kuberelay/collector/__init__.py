"""Collector package for kuberelay.

Turns the cluster's ``v1.Event`` stream into forwarded, enriched events.

Submodules
----------
dedup    -- Watermark parsing and the forward/discard decision.
source   -- NotificationSink/NotificationSource contracts and the Informer loop.
pipeline -- EventPipeline: dedup, enrichment, handler call, watermark write-back.
k8s      -- kubernetes-asyncio source, metadata fetcher and watermark store.
"""

from kuberelay.collector.dedup import parse_watermark, should_process
from kuberelay.collector.pipeline import EventHandler, EventPipeline, WatermarkStore
from kuberelay.collector.source import Informer, Notification, NotificationSink, NotificationSource

__all__ = [
    "EventHandler",
    "EventPipeline",
    "Informer",
    "Notification",
    "NotificationSink",
    "NotificationSource",
    "WatermarkStore",
    "parse_watermark",
    "should_process",
]
