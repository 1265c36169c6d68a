"""Watermark-based de-duplication of event notifications.

The watermark is the highest ``count`` already forwarded for an event
record, persisted as an annotation on that record. The gate keeps no state
of its own, so it recovers fully after a restart.

    Unseen   --any count-->            forward, becomes Seen(count)
    Seen(w)  --count > w-->            forward, becomes Seen(count)
    Seen(w)  --count <= w-->           discard, stays Seen(w)
"""

from __future__ import annotations

import re

import structlog

from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION
from kuberelay.models.events import RawEvent

_log = structlog.get_logger(component="collector.dedup")

# Plain ASCII decimal only: no padding, no digit separators, no other scripts.
_WATERMARK_RE = re.compile(r"[+-]?[0-9]+")


def parse_watermark(raw: RawEvent, key: str = DEFAULT_WATERMARK_ANNOTATION) -> int | None:
    """Return the persisted watermark of *raw*, or None when absent.

    A value that is not a non-negative integer is logged and treated as
    absent so a malformed annotation never stalls the stream.
    """
    value = raw.annotations.get(key)
    if value is None:
        return None
    watermark = -1
    if isinstance(value, str) and _WATERMARK_RE.fullmatch(value):
        watermark = int(value)
    if watermark < 0:
        text = str(value)
        _log.warning(
            "malformed_watermark",
            namespace=raw.namespace,
            event_name=raw.name,
            annotation=key,
            value=text[:64],
            value_length=len(text),
        )
        return None
    return watermark


def should_process(raw: RawEvent, key: str = DEFAULT_WATERMARK_ANNOTATION) -> bool:
    """Return True if *raw* carries an occurrence not yet forwarded.

    An equal count is a duplicate: only ``count > watermark`` passes.
    """
    watermark = parse_watermark(raw, key)
    if watermark is not None and watermark >= raw.count:
        _log.debug(
            "event_skipped",
            namespace=raw.namespace,
            event_name=raw.name,
            count=raw.count,
            watermark=watermark,
        )
        return False
    return True
