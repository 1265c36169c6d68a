"""Tests for watermark parsing and the forward/discard decision."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st
from structlog.testing import capture_logs

from kuberelay.collector.dedup import parse_watermark, should_process
from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION
from kuberelay.models.events import ObjectReference, RawEvent

_KEY = DEFAULT_WATERMARK_ANNOTATION


def _raw(count: int, watermark: str | None = None, key: str = _KEY) -> RawEvent:
    return RawEvent(
        name="web-1.17f3a2",
        namespace="default",
        reason="BackOff",
        message="Back-off restarting failed container",
        count=count,
        involved_object=ObjectReference(kind="Pod", name="web-1", namespace="default"),
        annotations={} if watermark is None else {key: watermark},
    )


class TestParseWatermark:
    def test_absent(self) -> None:
        assert parse_watermark(_raw(1)) is None

    def test_integer(self) -> None:
        assert parse_watermark(_raw(1, "7")) == 7

    def test_explicit_plus_sign(self) -> None:
        assert parse_watermark(_raw(1, "+7")) == 7

    def test_surrounding_whitespace_is_absent(self) -> None:
        assert parse_watermark(_raw(1, " 5 ")) is None

    def test_digit_separator_is_absent(self) -> None:
        assert parse_watermark(_raw(1, "1_0")) is None

    def test_non_ascii_digit_is_absent(self) -> None:
        assert parse_watermark(_raw(1, "９")) is None

    def test_malformed_watermark_does_not_block_forward(self) -> None:
        assert should_process(_raw(5, "1_0"))
        assert should_process(_raw(5, "９"))

    def test_long_malformed_value_is_truncated_in_log(self) -> None:
        with capture_logs() as logs:
            assert parse_watermark(_raw(1, "x" * 100)) is None
        assert logs[0]["value"] == "x" * 64
        assert logs[0]["value_length"] == 100

    def test_non_numeric_is_absent_and_logged(self) -> None:
        with capture_logs() as logs:
            assert parse_watermark(_raw(1, "seven")) is None
        assert logs[0]["event"] == "malformed_watermark"
        assert logs[0]["log_level"] == "warning"

    def test_negative_is_absent(self) -> None:
        assert parse_watermark(_raw(1, "-3")) is None

    def test_empty_is_absent(self) -> None:
        assert parse_watermark(_raw(1, "")) is None

    def test_custom_key(self) -> None:
        raw = _raw(1, "4", key="example.com/seen")
        assert parse_watermark(raw) is None
        assert parse_watermark(raw, "example.com/seen") == 4


class TestShouldProcess:
    def test_unseen_event_is_forwarded(self) -> None:
        assert should_process(_raw(1))

    def test_unseen_zero_count_is_forwarded(self) -> None:
        assert should_process(_raw(0))

    def test_equal_count_is_discarded(self) -> None:
        assert not should_process(_raw(3, "3"))

    def test_lower_count_is_discarded(self) -> None:
        assert not should_process(_raw(2, "3"))

    def test_higher_count_is_forwarded(self) -> None:
        assert should_process(_raw(4, "3"))

    def test_malformed_watermark_is_forwarded(self) -> None:
        assert should_process(_raw(1, "garbage"))

    @given(count=st.integers(min_value=0, max_value=2**31 - 1), watermark=st.integers(min_value=0, max_value=2**31 - 1))
    def test_forward_iff_count_exceeds_watermark(self, count: int, watermark: int) -> None:
        assert should_process(_raw(count, str(watermark))) == (count > watermark)

    @given(counts=st.lists(st.integers(min_value=0, max_value=1000), min_size=1, max_size=30))
    def test_sequence_never_forwards_at_or_below_watermark(self, counts: list[int]) -> None:
        """Replaying counts with write-back forwards exactly the running maxima."""
        watermark: str | None = None
        forwarded: list[int] = []
        for count in counts:
            if should_process(_raw(count, watermark)):
                forwarded.append(count)
                watermark = str(count)

        expected: list[int] = []
        for count in counts:
            if not expected or count > expected[-1]:
                expected.append(count)
        assert forwarded == expected
