"""Per-identity memoizing cache of involved-object labels or annotations.

Concurrent lookups for the same ObjectKey share a single fetch task; lookups
for different keys never wait on each other. A failed fetch is not
remembered: the next lookup for that key fetches again.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Protocol

import structlog

from kuberelay.models.events import ObjectKey, ObjectReference
from kuberelay.observability.metrics import metadata_cache_entries, metadata_fetches_total

_log = structlog.get_logger(component="cache.metadata")

_DEFAULT_MAX_ENTRIES = 1024


class MetadataFetcher(Protocol):
    """Fetches the ``metadata`` mapping of the object *ref* points to."""

    async def fetch(self, ref: ObjectReference) -> dict[str, Any]: ...


class MetadataCache:
    """Memoizes one metadata field (``labels`` or ``annotations``) per object.

    Args:
        fetcher:     Source of truth for object metadata.
        field:       Key under ``metadata`` to extract.
        max_entries: LRU bound; the least recently used key is evicted first.
        by_uid:      Include the object UID in the cache identity, so a
                     recreated object with the same name is fetched anew.
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        field: str,
        max_entries: int = _DEFAULT_MAX_ENTRIES,
        by_uid: bool = True,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._fetcher = fetcher
        self._field = field
        self._max_entries = max_entries
        self._by_uid = by_uid
        self._entries: OrderedDict[ObjectKey, dict[str, str]] = OrderedDict()
        self._inflight: dict[ObjectKey, asyncio.Task[dict[str, str]]] = {}

    @property
    def field(self) -> str:
        return self._field

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ref: object) -> bool:
        if isinstance(ref, ObjectReference):
            return ref.key(self._by_uid) in self._entries
        return ref in self._entries

    async def get_with_cache(self, ref: ObjectReference) -> dict[str, str]:
        """Return the cached mapping for *ref*, fetching it on a miss.

        Raises whatever the fetcher raised; every caller that joined the
        same in-flight fetch receives the same exception.
        """
        key = ref.key(self._by_uid)
        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            return dict(cached)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, ref))
            task.add_done_callback(_consume_exception)
            self._inflight[key] = task
        else:
            _log.debug("metadata_fetch_joined", cache=self._field, key=str(key))

        # Shield so that one cancelled caller does not abort the fetch for the others.
        result = await asyncio.shield(task)
        return dict(result)

    def invalidate(self, ref: ObjectReference) -> None:
        """Drop the entry for *ref* so the next lookup refetches it.

        A fetch already running for *ref* still answers its waiters but its
        result is not stored.
        """
        key = ref.key(self._by_uid)
        self._entries.pop(key, None)
        self._inflight.pop(key, None)
        metadata_cache_entries.labels(cache=self._field).set(len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()
        metadata_cache_entries.labels(cache=self._field).set(0)

    async def _load(self, key: ObjectKey, ref: ObjectReference) -> dict[str, str]:
        this = asyncio.current_task()
        try:
            metadata = await self._fetcher.fetch(ref)
        except Exception:
            metadata_fetches_total.labels(cache=self._field, outcome="error").inc()
            raise
        finally:
            # Invalidated while running: another fetch may own the key by now.
            current = self._inflight.get(key) is this
            if current:
                del self._inflight[key]

        metadata_fetches_total.labels(cache=self._field, outcome="ok").inc()
        value = {str(k): str(v) for k, v in (metadata.get(self._field) or {}).items()}
        if current:
            self._store(key, value)
        else:
            _log.debug("metadata_fetch_discarded", cache=self._field, key=str(key))
        return value

    def _store(self, key: ObjectKey, value: dict[str, str]) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            _log.debug("metadata_cache_evicted", cache=self._field, key=str(evicted))
        metadata_cache_entries.labels(cache=self._field).set(len(self._entries))


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Mark the exception as retrieved when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


def build_metadata_caches(
    fetcher: MetadataFetcher,
    max_entries: int = _DEFAULT_MAX_ENTRIES,
    by_uid: bool = True,
) -> tuple[MetadataCache, MetadataCache]:
    """Return independent (labels, annotations) caches sharing one fetcher."""
    return (
        MetadataCache(fetcher, "labels", max_entries=max_entries, by_uid=by_uid),
        MetadataCache(fetcher, "annotations", max_entries=max_entries, by_uid=by_uid),
    )
