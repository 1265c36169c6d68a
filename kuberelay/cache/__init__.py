"""Cache layer for kuberelay.

Memoizes involved-object metadata fetched from the cluster API so that a
burst of events about the same object costs one lookup.

Submodules:
    metadata_cache -- Single-flight, LRU-bounded labels/annotations cache.
"""

from kuberelay.cache.metadata_cache import MetadataCache, MetadataFetcher, build_metadata_caches

__all__ = ["MetadataCache", "MetadataFetcher", "build_metadata_caches"]
