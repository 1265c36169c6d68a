"""EventPipeline: watch -> deduplicate -> enrich -> forward -> acknowledge.

The pipeline is the NotificationSink of an Informer. For every added or
updated event record it checks the persisted watermark, attaches the labels
and annotations of the involved object, awaits the handler and finally
patches the watermark to the forwarded count.

The handler runs inside the delivery callback: while it is awaited no other
notification of this pipeline is processed. A slow handler therefore slows
the whole stream instead of queueing work without bound.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from kuberelay.cache.metadata_cache import MetadataCache
from kuberelay.collector.dedup import should_process
from kuberelay.collector.source import Informer, NotificationSource
from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION
from kuberelay.models.events import EnrichedEvent, RawEvent
from kuberelay.observability.metrics import (
    enrichment_failures_total,
    events_discarded_total,
    events_forwarded_total,
    events_received_total,
    watermark_write_failures_total,
)

_log = structlog.get_logger(component="collector.pipeline")

EventHandler = Callable[[EnrichedEvent], Awaitable[None]]


class WatermarkStore(Protocol):
    """Persists the last forwarded count on the event record itself."""

    async def write(self, raw: RawEvent, count: int) -> None: ...


class EventPipeline:
    """Forwards each new event occurrence once, enriched with metadata.

    Args:
        source:           Notification source for one namespace scope.
        label_cache:      MetadataCache over ``labels``.
        annotation_cache: MetadataCache over ``annotations``.
        handler:          Awaited once per forwarded event.
        watermarks:       Write-back target for the last forwarded count.
        watermark_key:    Annotation key holding the watermark.
    """

    def __init__(
        self,
        source: NotificationSource,
        label_cache: MetadataCache,
        annotation_cache: MetadataCache,
        handler: EventHandler,
        watermarks: WatermarkStore,
        watermark_key: str = DEFAULT_WATERMARK_ANNOTATION,
    ) -> None:
        if label_cache is annotation_cache:
            raise ValueError("label and annotation caches must be distinct instances")
        self._source = source
        self._label_cache = label_cache
        self._annotation_cache = annotation_cache
        self._handler = handler
        self._watermarks = watermarks
        self._watermark_key = watermark_key
        self._informer = Informer(source, self)
        self._in_flight = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe and begin consuming notifications in the background.

        Precondition: called at most once. Raises SubscriptionError when the
        initial list fails; returns as soon as the consumer task is running.
        """
        await self._informer.prime()
        self._task = asyncio.create_task(self._informer.run(), name="event-pipeline")
        _log.info("pipeline_started", resource_version=self._informer.resource_version)

    async def stop(self) -> None:
        """Stop consuming and release the subscription.

        Waits for the notification currently being handled, if any, then
        cancels the consumer task. Call once, after start().
        """
        if self._task is not None:
            async with self._in_flight:
                self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        await self._source.close()
        _log.info("pipeline_stopped")

    async def join(self) -> None:
        """Wait for the consumer task; re-raises a runtime subscription fault."""
        if self._task is not None:
            await self._task

    # ------------------------------------------------------------------
    # NotificationSink
    # ------------------------------------------------------------------

    async def on_add(self, obj: RawEvent) -> None:
        async with self._in_flight:
            await self.handle_event(obj)

    async def on_update(self, old: RawEvent | None, obj: RawEvent) -> None:
        async with self._in_flight:
            await self.handle_event(obj)

    async def on_delete(self, obj: RawEvent) -> None:
        """Deleted event records carry nothing new to forward."""

    # ------------------------------------------------------------------
    # Per-event processing
    # ------------------------------------------------------------------

    async def handle_event(self, raw: RawEvent) -> None:
        """Run one event record through dedup, enrichment, handler and write-back.

        Enrichment and write-back failures are logged and absorbed. Handler
        exceptions propagate and skip the write-back, so the occurrence is
        offered again on the next update of the record.
        """
        events_received_total.inc()
        ref = raw.involved_object
        log = _log.bind(
            namespace=raw.namespace,
            event_name=raw.name,
            reason=raw.reason,
            involved_object=f"{ref.kind}/{ref.name}",
            count=raw.count,
        )
        log.debug("event_received", message=raw.message)

        if not should_process(raw, self._watermark_key):
            events_discarded_total.labels(reason="duplicate").inc()
            return

        enriched = EnrichedEvent.from_raw(raw)
        enriched_any = False

        try:
            enriched.labels = await self._label_cache.get_with_cache(ref)
            enriched_any = True
        except Exception as exc:
            enrichment_failures_total.labels(field="labels").inc()
            log.error("cannot_fetch_labels", error=str(exc))

        try:
            enriched.annotations = await self._annotation_cache.get_with_cache(ref)
            enriched_any = True
        except Exception as exc:
            enrichment_failures_total.labels(field="annotations").inc()
            log.error("cannot_fetch_annotations", error=str(exc))

        if enriched_any:
            enriched.involved_object = copy.deepcopy(ref)

        await self._handler(enriched)
        events_forwarded_total.inc()

        try:
            await self._watermarks.write(raw, raw.count)
        except Exception as exc:
            watermark_write_failures_total.inc()
            log.error("cannot_update_watermark", error=str(exc))
