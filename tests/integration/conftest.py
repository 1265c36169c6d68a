"""Shared fixtures for kuberelay pipeline scenarios.

The fakes themselves live in ``fakes.py`` so test modules can import them.
"""

from __future__ import annotations

import pytest

from kuberelay.cache.metadata_cache import MetadataCache

from .fakes import FakeCluster, FakeFetcher, RecordingHandler


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(
        {
            "Pod/default/web-1": {
                "name": "web-1",
                "uid": "pod-uid-1",
                "labels": {"app": "web", "tier": "frontend"},
                "annotations": {"team": "payments"},
            }
        }
    )


@pytest.fixture
def caches(fetcher: FakeFetcher) -> tuple[MetadataCache, MetadataCache]:
    return MetadataCache(fetcher, "labels"), MetadataCache(fetcher, "annotations")


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()
