"""Notification source contracts and the list/watch delivery loop.

A NotificationSource lists and watches event records; the Informer turns
that stream into ``on_add`` / ``on_update`` / ``on_delete`` callbacks on a
NotificationSink. Callbacks are awaited one at a time, so a slow sink holds
back delivery of the next notification.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

import structlog

from kuberelay.errors import WatchExpiredError
from kuberelay.models.events import RawEvent
from kuberelay.observability.metrics import handler_errors_total

_log = structlog.get_logger(component="collector.source")

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
BOOKMARK = "BOOKMARK"


@dataclass(frozen=True)
class Notification:
    """One item of a watch stream. ``event`` is None for bookmarks."""

    type: str
    event: RawEvent | None
    resource_version: str = ""


class NotificationSink(Protocol):
    """Receiver of add/update/delete callbacks."""

    async def on_add(self, obj: RawEvent) -> None: ...

    async def on_update(self, old: RawEvent | None, obj: RawEvent) -> None: ...

    async def on_delete(self, obj: RawEvent) -> None: ...


class NotificationSource(Protocol):
    """List-then-watch access to event records in one namespace scope."""

    async def list(self) -> tuple[list[RawEvent], str]:
        """Return the current records and the list resourceVersion.

        Raises SubscriptionError when the scope cannot be listed.
        """
        ...

    def watch(self, resource_version: str) -> AsyncIterator[Notification]:
        """Stream changes after *resource_version* until the window closes.

        Raises WatchExpiredError when *resource_version* is too old.
        """
        ...

    async def close(self) -> None: ...


def _identity(obj: RawEvent) -> str:
    return obj.uid or f"{obj.namespace}/{obj.name}"


class Informer:
    """Delivers a NotificationSource to a NotificationSink.

    Keeps the last seen version of every record so updates carry the old
    object and a relist after an expired watch can tell adds, updates and
    deletions apart.
    """

    def __init__(self, source: NotificationSource, sink: NotificationSink) -> None:
        self._source = source
        self._sink = sink
        self._store: dict[str, RawEvent] = {}
        self._resource_version = ""
        self._pending: list[RawEvent] | None = None

    @property
    def resource_version(self) -> str:
        return self._resource_version

    async def prime(self) -> None:
        """Perform the initial list. Raises SubscriptionError on failure."""
        items, self._resource_version = await self._source.list()
        self._pending = items
        _log.info("initial_list_complete", events=len(items), resource_version=self._resource_version)

    async def run(self) -> None:
        """Deliver the primed list, then watch until cancelled.

        Watch windows that close normally are resumed from the last seen
        resourceVersion; an expired resourceVersion triggers a relist. Any
        other source error propagates.
        """
        if self._pending is None:
            await self.prime()
        items, self._pending = self._pending or [], []
        await self._replace(items)

        while True:
            try:
                async for notification in self._source.watch(self._resource_version):
                    await self._handle(notification)
            except WatchExpiredError:
                _log.info("watch_expired_relisting", resource_version=self._resource_version)
                items, self._resource_version = await self._source.list()
                await self._replace(items)
                continue
            _log.debug("watch_window_closed", resource_version=self._resource_version)

    async def _replace(self, items: list[RawEvent]) -> None:
        seen: set[str] = set()
        for obj in items:
            ident = _identity(obj)
            seen.add(ident)
            old = self._store.get(ident)
            self._store[ident] = obj
            if old is None:
                await self._dispatch(ADDED, self._sink.on_add, obj)
            else:
                await self._dispatch(MODIFIED, self._sink.on_update, old, obj)
        for ident in list(self._store):
            if ident not in seen:
                await self._dispatch(DELETED, self._sink.on_delete, self._store.pop(ident))

    async def _handle(self, notification: Notification) -> None:
        if notification.resource_version:
            self._resource_version = notification.resource_version
        obj = notification.event
        if obj is None:
            return
        ident = _identity(obj)
        if notification.type == ADDED:
            self._store[ident] = obj
            await self._dispatch(ADDED, self._sink.on_add, obj)
        elif notification.type == MODIFIED:
            old = self._store.get(ident)
            self._store[ident] = obj
            await self._dispatch(MODIFIED, self._sink.on_update, old, obj)
        elif notification.type == DELETED:
            self._store.pop(ident, None)
            await self._dispatch(DELETED, self._sink.on_delete, obj)
        else:
            _log.debug("notification_ignored", type=notification.type)

    async def _dispatch(self, kind: str, callback, *args: RawEvent | None) -> None:  # type: ignore[no-untyped-def]
        # One failing callback must not stop delivery of the rest of the stream.
        try:
            await callback(*args)
        except Exception as exc:
            handler_errors_total.inc()
            obj = args[-1]
            _log.error(
                "notification_callback_failed",
                notification=kind,
                namespace=getattr(obj, "namespace", ""),
                event_name=getattr(obj, "name", ""),
                error=str(exc),
                exc_info=True,
            )
