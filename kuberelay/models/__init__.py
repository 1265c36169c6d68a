"""Core data structures for kuberelay."""

from kuberelay.models.config import KubeRelayConfig
from kuberelay.models.events import EnrichedEvent, ObjectKey, ObjectReference, RawEvent

__all__ = [
    "EnrichedEvent",
    "KubeRelayConfig",
    "ObjectKey",
    "ObjectReference",
    "RawEvent",
]
