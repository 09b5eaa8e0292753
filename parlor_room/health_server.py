"""HTTP endpoints for health probes and Prometheus metrics."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Optional

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from .collector import TEXT_CONTENT_TYPE, MetricsCollector
from .service_health import AppStateLike, HealthCheck, HealthStatus
from .types import _format_timestamp
from .utils import current_timestamp

logger = logging.getLogger(__name__)

SERVICE_NAME = "parlor-room"
SERVICE_VERSION = "0.1.0"
ENDPOINTS = ("/health", "/ready", "/alive", "/metrics", "/stats")


@dataclass
class HealthServerConfig:
    """Where the health server listens."""

    port: int = 8080
    host: str = "0.0.0.0"


def _validate_address(host: str, port: int) -> None:
    try:
        ipaddress.ip_address(host)
    except ValueError as exc:
        raise ValueError(f"Invalid health server address: {host}:{port}") from exc
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ValueError(f"Invalid health server address: {host}:{port}")


def _health_body(status: str, **extra: Any) -> dict[str, Any]:
    return {"status": status, "service": SERVICE_NAME, "version": SERVICE_VERSION, **extra}


def _stats_error(error: str) -> dict[str, Any]:
    return {
        "service": {"name": SERVICE_NAME, "version": SERVICE_VERSION, "status": "error"},
        "error": error,
        "timestamp": _format_timestamp(current_timestamp()),
    }


class HealthServer:
    """Serves health, readiness, liveness, metrics and statistics endpoints."""

    def __init__(
        self,
        config: Optional[HealthServerConfig] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> None:
        self.config = config if config is not None else HealthServerConfig()
        self.metrics_collector = (
            metrics_collector if metrics_collector is not None else MetricsCollector()
        )
        self.app_state: Optional[AppStateLike] = None
        self._shutdown: Optional[asyncio.Event] = None

    def with_app_state(self, app_state: AppStateLike) -> HealthServer:
        """Attach the application state used by the health checks."""
        self.app_state = app_state
        return self

    def create_app(self) -> Starlette:
        """The ASGI application with every endpoint routed."""
        return Starlette(
            routes=[
                Route("/", self._root, methods=["GET"]),
                Route("/health", self._health, methods=["GET"]),
                Route("/ready", self._ready, methods=["GET"]),
                Route("/alive", self._alive, methods=["GET"]),
                Route("/metrics", self._metrics, methods=["GET"]),
                Route("/stats", self._stats, methods=["GET"]),
            ]
        )

    async def start(self) -> None:
        """Serve until stop() is called; raises ValueError on a bad address."""
        _validate_address(self.config.host, self.config.port)
        server = uvicorn.Server(
            uvicorn.Config(
                self.create_app(),
                host=self.config.host,
                port=self.config.port,
                log_level="warning",
                lifespan="off",
            )
        )
        shutdown = asyncio.Event()
        self._shutdown = shutdown
        logger.info("Health server listening on http://%s:%s", self.config.host, self.config.port)

        serve_task = asyncio.create_task(server.serve())
        waiter = asyncio.create_task(shutdown.wait())
        done, _ = await asyncio.wait({serve_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if waiter in done:
            logger.info("Health server shutdown signal received")
            server.should_exit = True
        else:
            waiter.cancel()
        try:
            await serve_task
        except SystemExit as exc:
            raise OSError(
                f"Health server could not serve on {self.config.host}:{self.config.port}"
            ) from exc
        finally:
            if self._shutdown is shutdown:
                self._shutdown = None
        logger.info("Health server stopped")

    async def stop(self) -> None:
        """Signal a running server to shut down gracefully."""
        logger.info("Stopping health server...")
        if self._shutdown is None:
            logger.warning("Failed to send shutdown signal to health server: not running")
        else:
            self._shutdown.set()
        logger.info("Health server stop signal sent")

    async def _root(self, request: Request) -> Response:
        return JSONResponse(
            {"service": SERVICE_NAME, "version": SERVICE_VERSION, "endpoints": list(ENDPOINTS)}
        )

    async def _health(self, request: Request) -> Response:
        logger.debug("Health check requested")
        if self.app_state is None:
            return JSONResponse(
                _health_body("unhealthy", error="Service not initialized"), status_code=503
            )
        try:
            status = await HealthCheck.liveness_check(self.app_state)
        except Exception:
            status = HealthStatus.UNHEALTHY
        code = 503 if status is HealthStatus.UNHEALTHY else 200
        return JSONResponse(_health_body(status.value), status_code=code)

    async def _ready(self, request: Request) -> Response:
        logger.debug("Readiness check requested")
        if self.app_state is None:
            return PlainTextResponse("Service not initialized", status_code=503)
        try:
            status = await HealthCheck.readiness_check(self.app_state)
        except Exception as exc:
            logger.error("Readiness check failed: %s", exc)
            return PlainTextResponse("Not ready", status_code=503)
        if status is HealthStatus.HEALTHY:
            return PlainTextResponse("Ready")
        if status is HealthStatus.DEGRADED:
            return PlainTextResponse("Degraded but ready")
        return PlainTextResponse("Not ready", status_code=503)

    async def _alive(self, request: Request) -> Response:
        logger.debug("Liveness check requested")
        if self.app_state is None:
            return PlainTextResponse("Service not initialized", status_code=503)
        try:
            status = await HealthCheck.liveness_check(self.app_state)
        except Exception:
            status = HealthStatus.UNHEALTHY
        if status is HealthStatus.HEALTHY:
            return PlainTextResponse("Alive")
        return PlainTextResponse("Not alive", status_code=503)

    async def _metrics(self, request: Request) -> Response:
        logger.debug("Metrics endpoint requested")
        try:
            text = self.metrics_collector.registry.encode_text()
        except Exception as exc:
            logger.error("Failed to encode metrics: %s", exc)
            return PlainTextResponse("Failed to encode metrics", status_code=500)
        return Response(text, media_type=TEXT_CONTENT_TYPE)

    async def _stats(self, request: Request) -> Response:
        logger.debug("Stats endpoint requested")
        if self.app_state is None:
            return JSONResponse(_stats_error("Service not initialized"), status_code=503)
        try:
            health = await HealthCheck.check(self.app_state)
        except Exception as exc:
            logger.error("Failed to get stats: %s", exc)
            return JSONResponse(_stats_error("Failed to get service stats"), status_code=503)
        return JSONResponse(
            {
                "service": {
                    "name": SERVICE_NAME,
                    "version": SERVICE_VERSION,
                    "status": health.status.value,
                    "uptime": health.stats.uptime_info,
                },
                "lobbies": {
                    "active": health.stats.active_lobbies,
                    "games_started": health.stats.games_started,
                },
                "players": {
                    "waiting": health.stats.players_waiting,
                    "matched": health.stats.players_matched,
                },
                "components": [check.to_dict() for check in health.checks],
                "timestamp": _format_timestamp(current_timestamp()),
            }
        )


class HealthEndpoints:
    """Programmatic access to what the endpoints report."""

    @staticmethod
    async def get_health_status(app_state: Optional[AppStateLike]) -> dict[str, Any]:
        """Liveness as a JSON-ready dictionary."""
        if app_state is None:
            return {
                "status": "unhealthy",
                "service": SERVICE_NAME,
                "error": "Service not initialized",
            }
        try:
            status = await HealthCheck.liveness_check(app_state)
        except Exception:
            status = HealthStatus.UNHEALTHY
        return {"status": status.value, "service": SERVICE_NAME}

    @staticmethod
    async def get_metrics_text(metrics_collector: MetricsCollector) -> str:
        """All metrics in the Prometheus text format."""
        try:
            return metrics_collector.registry.encode_text()
        except Exception as exc:
            raise RuntimeError(f"Failed to encode metrics: {exc}") from exc


class MetricsService:
    """Metrics collection together with the server that exposes it."""

    def __init__(self, collector: MetricsCollector, health_server: HealthServer) -> None:
        self.collector = collector
        self.health_server = health_server

    async def start(self) -> None:
        """Serve the health endpoints until stopped."""
        await self.health_server.start()

    async def stop(self) -> None:
        """Stop serving the health endpoints."""
        await self.health_server.stop()