"""kubernetes-asyncio adapters for the event pipeline.

KubernetesEventSource     -- list + watch of ``v1.Event`` in one namespace scope.
KubernetesMetadataFetcher -- metadata of any involved object via the dynamic client.
KubernetesWatermarkStore  -- patches the last-count annotation onto an event.

Every adapter takes its API client as a constructor argument; nothing here
touches module-level client state.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]

from kuberelay.collector.source import BOOKMARK, Notification
from kuberelay.errors import (
    MetadataFetchError,
    StaleReferenceError,
    SubscriptionError,
    WatchExpiredError,
    WatermarkWriteError,
)
from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION
from kuberelay.models.events import ObjectReference, RawEvent

_log = structlog.get_logger(component="collector.k8s")

_HTTP_GONE = 410


class KubernetesEventSource:
    """Lists and watches ``v1.Event`` records.

    Args:
        core_v1:         CoreV1Api bound to the caller's ApiClient.
        namespace:       Namespace scope; empty string watches all namespaces.
        timeout_seconds: Server-side length of one watch window.
    """

    def __init__(self, core_v1: k8s_client.CoreV1Api, namespace: str = "", timeout_seconds: int = 300) -> None:
        self._api = core_v1
        self._namespace = namespace
        self._timeout_seconds = timeout_seconds
        self._watch: watch.Watch | None = None

    def _list_call(self) -> tuple[Any, tuple[str, ...]]:
        if self._namespace:
            return self._api.list_namespaced_event, (self._namespace,)
        return self._api.list_event_for_all_namespaces, ()

    def _to_raw(self, item: Any) -> RawEvent:
        if not isinstance(item, dict):
            item = self._api.api_client.sanitize_for_serialization(item)
        return RawEvent.from_dict(item)

    async def list(self) -> tuple[list[RawEvent], str]:
        func, args = self._list_call()
        try:
            response = await func(*args)
        except Exception as exc:
            raise SubscriptionError(f"cannot list events in {self._namespace or 'all namespaces'}: {exc}") from exc
        items = [self._to_raw(item) for item in response.items or []]
        return items, str(response.metadata.resource_version or "")

    async def watch(self, resource_version: str) -> AsyncIterator[Notification]:
        func, args = self._list_call()
        self._watch = watch.Watch()
        try:
            async with self._watch.stream(
                func,
                *args,
                resource_version=resource_version,
                timeout_seconds=self._timeout_seconds,
                allow_watch_bookmarks=True,
            ) as stream:
                async for item in stream:
                    notification = self._to_notification(item)
                    if notification is not None:
                        yield notification
        except ApiException as exc:
            if exc.status == _HTTP_GONE:
                raise WatchExpiredError(str(exc.reason)) from exc
            raise SubscriptionError(f"watch failed: {exc.status} {exc.reason}") from exc
        finally:
            self._watch = None

    def _to_notification(self, item: dict[str, Any]) -> Notification | None:
        event_type = str(item.get("type", ""))
        raw = item.get("raw_object") or {}
        if event_type == "ERROR":
            code = raw.get("code")
            if code == _HTTP_GONE:
                raise WatchExpiredError(str(raw.get("message", "")))
            raise SubscriptionError(f"watch error {code}: {raw.get('message', '')}")
        resource_version = str((raw.get("metadata") or {}).get("resourceVersion") or "")
        if event_type == BOOKMARK:
            return Notification(type=BOOKMARK, event=None, resource_version=resource_version)
        if not raw:
            raw = self._api.api_client.sanitize_for_serialization(item.get("object"))
        return Notification(type=event_type, event=RawEvent.from_dict(raw), resource_version=resource_version)

    async def close(self) -> None:
        if self._watch is not None:
            self._watch.stop()


class KubernetesMetadataFetcher:
    """Fetches involved-object metadata through the dynamic client.

    Resource discovery (apiVersion + kind -> REST path) happens lazily on
    the first fetch and is reused afterwards.
    """

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        self._api_client = api_client
        self._dynamic: DynamicClient | None = None
        self._init_lock = asyncio.Lock()

    async def _client(self) -> DynamicClient:
        async with self._init_lock:
            if self._dynamic is None:
                self._dynamic = await DynamicClient(self._api_client)
        return self._dynamic

    async def fetch(self, ref: ObjectReference) -> dict[str, Any]:
        key = ref.key()
        try:
            dynamic = await self._client()
            resource = await dynamic.resources.get(api_version=ref.api_version, kind=ref.kind)
            obj = await dynamic.get(resource, name=ref.name, namespace=ref.namespace or None)
        except Exception as exc:
            raise MetadataFetchError(key, exc) from exc

        metadata: dict[str, Any] = dict(obj.to_dict().get("metadata") or {})
        live_uid = metadata.get("uid")
        if ref.uid and live_uid and live_uid != ref.uid:
            raise StaleReferenceError(key, f"live object has uid {live_uid}")
        return metadata


class KubernetesWatermarkStore:
    """Writes the watermark annotation with a strategic merge patch on the event record."""

    def __init__(self, core_v1: k8s_client.CoreV1Api, key: str = DEFAULT_WATERMARK_ANNOTATION) -> None:
        self._api = core_v1
        self._key = key

    async def write(self, raw: RawEvent, count: int) -> None:
        body = {"metadata": {"annotations": {self._key: str(count)}}}
        try:
            await self._api.patch_namespaced_event(name=raw.name, namespace=raw.namespace, body=body)
        except Exception as exc:
            raise WatermarkWriteError(f"cannot patch event {raw.namespace}/{raw.name}: {exc}") from exc
        _log.debug("watermark_written", namespace=raw.namespace, event_name=raw.name, count=count)
