"""Tests for KUBERELAY_* environment configuration loading."""

from __future__ import annotations

import pytest

from kuberelay.config import load_config
from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION


class TestDefaults:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("NAMESPACE", "SINK_TYPE", "LOG_LEVEL", "WATERMARK_ANNOTATION"):
            monkeypatch.delenv(f"KUBERELAY_{key}", raising=False)
        config = load_config()
        assert config.watch.namespace == ""
        assert config.watch.watermark_annotation == DEFAULT_WATERMARK_ANNOTATION
        assert config.watch.timeout_seconds == 300
        assert config.cache.max_entries == 1024
        assert config.cache.by_uid is True
        assert config.sink.type == "log"
        assert config.api.port == 8080
        assert config.log.level == "info"


class TestOverrides:
    def test_values_are_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBERELAY_NAMESPACE", "payments")
        monkeypatch.setenv("KUBERELAY_CACHE_BY_UID", "false")
        monkeypatch.setenv("KUBERELAY_SINK_TYPE", "WEBHOOK")
        monkeypatch.setenv("KUBERELAY_SINK_WEBHOOK_URL", "https://hooks.example.com/events")
        monkeypatch.setenv("KUBERELAY_LOG_LEVEL", "DEBUG")
        config = load_config()
        assert config.watch.namespace == "payments"
        assert config.cache.by_uid is False
        assert config.sink.type == "webhook"
        assert config.sink.webhook_url == "https://hooks.example.com/events"
        assert config.log.level == "debug"

    def test_integers_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBERELAY_WATCH_TIMEOUT", "5")
        monkeypatch.setenv("KUBERELAY_CACHE_MAX_ENTRIES", "10000000")
        monkeypatch.setenv("KUBERELAY_API_PORT", "80")
        config = load_config()
        assert config.watch.timeout_seconds == 60
        assert config.cache.max_entries == 65536
        assert config.api.port == 1024


class TestValidation:
    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBERELAY_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_invalid_sink_type(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBERELAY_SINK_TYPE", "kafka")
        with pytest.raises(ValueError, match="sink type"):
            load_config()

    def test_webhook_requires_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBERELAY_SINK_TYPE", "webhook")
        monkeypatch.delenv("KUBERELAY_SINK_WEBHOOK_URL", raising=False)
        with pytest.raises(ValueError, match="WEBHOOK_URL"):
            load_config()

    @pytest.mark.parametrize("key", ["example.com/last-count", "last-count", "a.b.c/x_y.z"])
    def test_valid_annotation_keys(self, monkeypatch: pytest.MonkeyPatch, key: str) -> None:
        monkeypatch.setenv("KUBERELAY_WATERMARK_ANNOTATION", key)
        assert load_config().watch.watermark_annotation == key

    @pytest.mark.parametrize("key", ["", "Example.com/x", "example.com/", "/x", "bad key"])
    def test_invalid_annotation_keys(self, monkeypatch: pytest.MonkeyPatch, key: str) -> None:
        monkeypatch.setenv("KUBERELAY_WATERMARK_ANNOTATION", key)
        with pytest.raises(ValueError, match="annotation key"):
            load_config()
