"""Application bootstrap for kuberelay.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> metadata caches
              -> watermark store -> sink -> pipeline -> REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kuberelay.config import load_config
from kuberelay.models.config import KubeRelayConfig
from kuberelay.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kuberelay.collector.pipeline import EventPipeline

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeRelayApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self, config: KubeRelayConfig | None = None) -> None:
        self.config = config

        self._api_client: object | None = None
        self._label_cache: object | None = None
        self._annotation_cache: object | None = None
        self._watermarks: object | None = None
        self._sink: object | None = None
        self._pipeline: EventPipeline | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []
        self._stopped = asyncio.Event()

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info(
            "kuberelay starting",
            version=_kuberelay_version(),
            namespace=self.config.watch.namespace or "*",
        )

        await self._start_k8s_client()
        await self._start_caches()
        await self._start_watermarks()
        await self._start_sink()
        await self._start_pipeline()
        await self._start_rest()

        self._running = True
        self._log.info("kuberelay started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Load in-cluster config (falling back to kubeconfig) and build an ApiClient."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_caches(self) -> None:
        """Build the label and annotation caches over one dynamic-client fetcher."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kuberelay.cache import build_metadata_caches
            from kuberelay.collector.k8s import KubernetesMetadataFetcher

            fetcher = KubernetesMetadataFetcher(self._api_client)  # type: ignore[arg-type]
            self._label_cache, self._annotation_cache = build_metadata_caches(
                fetcher,
                max_entries=self.config.cache.max_entries,
                by_uid=self.config.cache.by_uid,
            )
            self._log.info("metadata caches started", max_entries=self.config.cache.max_entries)
        except Exception as exc:
            raise _ComponentError("cache", exc) from exc

    async def _start_watermarks(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from kuberelay.collector.k8s import KubernetesWatermarkStore

            self._watermarks = KubernetesWatermarkStore(
                k8s_client.CoreV1Api(self._api_client),
                key=self.config.watch.watermark_annotation,
            )
        except Exception as exc:
            raise _ComponentError("watermarks", exc) from exc

    async def _start_sink(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kuberelay.sinks import build_sink

            self._sink = build_sink(self.config.sink)
        except Exception as exc:
            raise _ComponentError("sink", exc) from exc

    async def _start_pipeline(self) -> None:
        """Subscribe to events; a failed initial list is fatal."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting event pipeline")
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from kuberelay.collector.k8s import KubernetesEventSource
            from kuberelay.collector.pipeline import EventPipeline

            source = KubernetesEventSource(
                k8s_client.CoreV1Api(self._api_client),
                namespace=self.config.watch.namespace,
                timeout_seconds=self.config.watch.timeout_seconds,
            )
            pipeline = EventPipeline(
                source=source,
                label_cache=self._label_cache,  # type: ignore[arg-type]
                annotation_cache=self._annotation_cache,  # type: ignore[arg-type]
                handler=self._sink,  # type: ignore[arg-type]
                watermarks=self._watermarks,  # type: ignore[arg-type]
                watermark_key=self.config.watch.watermark_annotation,
            )
            await pipeline.start()
            self._pipeline = pipeline
            self._log.info("event pipeline started")
        except Exception as exc:
            raise _ComponentError("pipeline", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn health/metrics server."""
        assert self._log is not None
        assert self.config is not None
        try:
            import uvicorn

            from kuberelay.api import build_app

            uv_config = uvicorn.Config(
                app=build_app(pipeline=self._pipeline, config=self.config),
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def wait(self) -> None:
        """Block until stop() is called or the pipeline fails.

        Re-raises a runtime watch fault from the pipeline.
        """
        if self._pipeline is None:
            return
        join = asyncio.create_task(self._pipeline.join(), name="pipeline-join")
        stopped = asyncio.create_task(self._stopped.wait(), name="stop-wait")
        done, pending = await asyncio.wait({join, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if join in done and not join.cancelled():
            join.result()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        """Wake wait() so the caller can run stop()."""
        self._stopped.set()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kuberelay shutting down")

        self._running = False
        self._stopped.set()

        await self._stop_component("pipeline", self._pipeline)

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("sink", self._sink, method="close")
        await self._stop_component("k8s_client", self._api_client, method="close")
        self._pipeline = None
        self._sink = None
        self._api_client = None

        log.info("kuberelay stopped")

    async def _stop_component(self, name: str, component: object | None, method: str = "stop") -> None:
        """Call stop()/close() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, method, None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _kuberelay_version() -> str:
    from kuberelay import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown or a watch fault."""
    app = KubeRelayApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        await app.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal startup error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    except Exception as exc:
        log = get_logger("app")
        log.critical("event watch failed", error=str(exc))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
