"""Core event data structures.

RawEvent mirrors a ``v1.Event`` record as delivered by the notification
source; EnrichedEvent is what the pipeline hands to the downstream sink.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ObjectKey:
    """Identity under which involved-object metadata is memoized.

    ``uid`` is empty when the cache is keyed by name only.
    """

    kind: str
    namespace: str
    name: str
    uid: str = ""

    def __str__(self) -> str:
        base = f"{self.kind}/{self.namespace}/{self.name}" if self.namespace else f"{self.kind}/{self.name}"
        return f"{base}@{self.uid}" if self.uid else base


@dataclass(frozen=True)
class ObjectReference:
    """The resource an event is about (``involvedObject``)."""

    kind: str
    name: str
    namespace: str = ""
    uid: str = ""
    api_version: str = "v1"
    resource_version: str = ""
    field_path: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> ObjectReference:
        raw = raw or {}
        return cls(
            kind=str(raw.get("kind") or ""),
            name=str(raw.get("name") or ""),
            namespace=str(raw.get("namespace") or ""),
            uid=str(raw.get("uid") or ""),
            api_version=str(raw.get("apiVersion") or "v1"),
            resource_version=str(raw.get("resourceVersion") or ""),
            field_path=str(raw.get("fieldPath") or ""),
        )

    def key(self, with_uid: bool = True) -> ObjectKey:
        return ObjectKey(
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
            uid=self.uid if with_uid else "",
        )

    def to_dict(self) -> dict[str, str]:
        out = {
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "apiVersion": self.api_version,
            "resourceVersion": self.resource_version,
            "fieldPath": self.field_path,
        }
        return {k: v for k, v in out.items() if v}


@dataclass(frozen=True)
class RawEvent:
    """A ``v1.Event`` notification as delivered by the source.

    Immutable: the pipeline deep-copies it before enrichment and never
    writes to ``annotations`` or ``raw_object``.
    """

    name: str
    namespace: str
    reason: str
    message: str
    count: int
    involved_object: ObjectReference
    uid: str = ""
    type: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    first_timestamp: str = ""
    last_timestamp: str = ""
    source_component: str = ""
    raw_object: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> RawEvent:
        """Build a RawEvent from the JSON form of a ``v1.Event``.

        ``count`` falls back to ``series.count`` and then to 0 for records
        that carry neither.
        """
        metadata = raw.get("metadata") or {}
        series = raw.get("series") or {}
        count = raw.get("count")
        if count is None:
            count = series.get("count", 0)
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            uid=str(metadata.get("uid") or ""),
            reason=str(raw.get("reason") or ""),
            message=str(raw.get("message") or ""),
            type=str(raw.get("type") or ""),
            count=int(count or 0),
            annotations=dict(metadata.get("annotations") or {}),
            involved_object=ObjectReference.from_dict(raw.get("involvedObject")),
            first_timestamp=str(raw.get("firstTimestamp") or ""),
            last_timestamp=str(raw.get("lastTimestamp") or ""),
            source_component=str((raw.get("source") or {}).get("component") or ""),
            raw_object=raw,
        )


@dataclass
class EnrichedEvent:
    """A forwarded event plus the metadata of its involved object.

    Owned by the pipeline until handed to the handler; afterwards the
    handler may mutate it freely.
    """

    event: RawEvent
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    involved_object: ObjectReference | None = None

    @classmethod
    def from_raw(cls, raw: RawEvent) -> EnrichedEvent:
        return cls(event=copy.deepcopy(raw))

    def to_dict(self) -> dict[str, Any]:
        """Render as the event JSON with enrichment folded into ``involvedObject``."""
        out = copy.deepcopy(self.event.raw_object)
        involved = dict(out.get("involvedObject") or {})
        if self.involved_object is not None:
            involved.update(self.involved_object.to_dict())
        if self.labels:
            involved["labels"] = dict(self.labels)
        if self.annotations:
            involved["annotations"] = dict(self.annotations)
        out["involvedObject"] = involved
        return out
