"""Prometheus metrics for the event pipeline and metadata caches."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

events_received_total = Counter(
    "kuberelay_events_received_total",
    "Event notifications delivered to the pipeline (adds and updates).",
)

events_discarded_total = Counter(
    "kuberelay_events_discarded_total",
    "Event notifications dropped before forwarding.",
    ["reason"],
)

events_forwarded_total = Counter(
    "kuberelay_events_forwarded_total",
    "Enriched events handed to the handler.",
)

handler_errors_total = Counter(
    "kuberelay_handler_errors_total",
    "Handler calls that raised.",
)

enrichment_failures_total = Counter(
    "kuberelay_enrichment_failures_total",
    "Metadata lookups that failed during enrichment.",
    ["field"],
)

watermark_write_failures_total = Counter(
    "kuberelay_watermark_write_failures_total",
    "Failed patches of the last-count annotation.",
)

metadata_fetches_total = Counter(
    "kuberelay_metadata_fetches_total",
    "Metadata fetches issued against the cluster API.",
    ["cache", "outcome"],
)

metadata_cache_entries = Gauge(
    "kuberelay_metadata_cache_entries",
    "Memoized identities per metadata cache.",
    ["cache"],
)
