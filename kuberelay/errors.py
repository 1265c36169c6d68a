"""Exception hierarchy for kuberelay.

Per-event failures (metadata fetch, watermark write, sink delivery) are
absorbed and logged by the pipeline; only SubscriptionError is fatal.
"""

from __future__ import annotations


class KubeRelayError(Exception):
    """Base class for every error raised by kuberelay."""


class SubscriptionError(KubeRelayError):
    """The notification source could not be listed or watched."""


class MetadataFetchError(KubeRelayError):
    """Labels or annotations of an involved object could not be fetched."""

    def __init__(self, key: object, cause: Exception | str) -> None:
        super().__init__(f"cannot fetch metadata of {key}: {cause}")
        self.key = key
        self.cause = cause


class StaleReferenceError(MetadataFetchError):
    """The live object no longer carries the UID the event refers to."""


class WatermarkWriteError(KubeRelayError):
    """The last-count annotation could not be patched onto the event record."""


class SinkError(KubeRelayError):
    """A sink rejected or failed to deliver an enriched event."""


class WatchExpiredError(KubeRelayError):
    """The watch resourceVersion is too old (410 Gone); a relist is required."""
