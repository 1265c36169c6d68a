"""Sink contract for enriched events.

EventSink -- ABC every sink must implement. The pipeline awaits ``send``
             inside its delivery callback, so a sink that blocks holds back
             the stream.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kuberelay.models.events import EnrichedEvent


class EventSink(ABC):
    """Abstract base class for all event sinks.

    ``send`` raises SinkError when delivery fails; the pipeline then skips
    the watermark write-back so the occurrence is offered again.
    """

    @property
    @abstractmethod
    def sink_name(self) -> str:
        """Human-readable sink identifier used in logs."""

    @abstractmethod
    async def send(self, event: EnrichedEvent) -> None:
        """Deliver *event*."""

    async def __call__(self, event: EnrichedEvent) -> None:
        await self.send(event)

    async def close(self) -> None:
        """Release any held connections."""
