"""Generic JSON webhook sink.

Posts ``EnrichedEvent.to_dict()`` to a configured HTTP endpoint. The body is
the received ``v1.Event`` JSON with the involved object's labels and
annotations folded into ``involvedObject``.
"""

from __future__ import annotations

import httpx
import structlog

from kuberelay.errors import SinkError
from kuberelay.models.events import EnrichedEvent
from kuberelay.sinks.base import EventSink

_log = structlog.get_logger(component="sinks.webhook")


class WebhookSink(EventSink):
    """Delivers events by POSTing a JSON payload to a configurable URL.

    Args:
        url:     Full endpoint URL.
        headers: Optional extra headers (e.g. Authorization).
        timeout: HTTP request timeout in seconds. Defaults to 10.
        client:  Optional pre-built AsyncClient, mainly for tests.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def sink_name(self) -> str:
        return "webhook"

    async def send(self, event: EnrichedEvent) -> None:
        """POST *event* as JSON. Raises SinkError unless the response is 2xx."""
        try:
            response = await self._client.post(self._url, json=event.to_dict(), headers=self._headers)
        except httpx.TimeoutException as exc:
            _log.warning("webhook_request_timeout", url=self._url, event_name=event.event.name)
            raise SinkError(f"webhook timed out: {self._url}") from exc
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc), event_name=event.event.name)
            raise SinkError(f"webhook request failed: {exc}") from exc

        if not response.is_success:
            _log.warning(
                "webhook_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
                event_name=event.event.name,
            )
            raise SinkError(f"webhook returned {response.status_code}")

    async def close(self) -> None:
        await self._client.aclose()
