"""Health checks of the matchmaking service: liveness, readiness and full reports."""

from __future__ import annotations

import inspect
import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from .types import _format_timestamp
from .utils import current_timestamp

logger = logging.getLogger(__name__)


class LobbyManagerLike(Protocol):
    """What a health check needs from the lobby manager."""

    async def get_stats(self) -> Any: ...


class AppStateLike(Protocol):
    """What a health check needs from the running application.

    ``lobby_manager`` is None when the manager cannot be accessed.
    """

    service_name: str
    lobby_manager: Optional[LobbyManagerLike]

    async def is_running(self) -> bool: ...


class HealthStatus(Enum):
    """Health of the service or one of its components."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    def __str__(self) -> str:
        return {
            HealthStatus.HEALTHY: "✅ healthy",
            HealthStatus.DEGRADED: "⚠️  degraded",
            HealthStatus.UNHEALTHY: "❌ unhealthy",
        }[self]


@dataclass
class ComponentCheck:
    """Result of checking one component."""

    name: str
    status: HealthStatus
    message: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ServiceStats:
    """Service statistics reported alongside health."""

    active_lobbies: int = 0
    players_waiting: int = 0
    games_started: int = 0
    players_matched: int = 0
    uptime_info: str = "Service running"

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_lobbies": self.active_lobbies,
            "players_waiting": self.players_waiting,
            "games_started": self.games_started,
            "players_matched": self.players_matched,
            "uptime_info": self.uptime_info,
        }


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _is_running(app_state: AppStateLike) -> bool:
    return bool(await _resolve(app_state.is_running()))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _combine(overall: HealthStatus, component: HealthStatus) -> HealthStatus:
    if component is HealthStatus.UNHEALTHY:
        return HealthStatus.UNHEALTHY
    if component is HealthStatus.DEGRADED and overall is HealthStatus.HEALTHY:
        return HealthStatus.DEGRADED
    return overall


@dataclass
class HealthCheck:
    """Full health report of the service."""

    status: HealthStatus
    service: str
    version: str
    timestamp: datetime = field(default_factory=current_timestamp)
    checks: list[ComponentCheck] = field(default_factory=list)
    stats: ServiceStats = field(default_factory=ServiceStats)

    @staticmethod
    async def check(app_state: AppStateLike) -> HealthCheck:
        """Check every component and gather statistics."""
        service_check = await _check_service_running(app_state)
        overall = (
            HealthStatus.HEALTHY
            if service_check.status is HealthStatus.HEALTHY
            else HealthStatus.UNHEALTHY
        )
        lobby_check = await _check_lobby_manager(app_state)
        overall = _combine(overall, lobby_check.status)
        amqp_check = _check_amqp_health(app_state)
        overall = _combine(overall, amqp_check.status)

        return HealthCheck(
            status=overall,
            service=app_state.service_name,
            version=os.environ.get("SERVICE_VERSION", "unknown"),
            timestamp=current_timestamp(),
            checks=[service_check, lobby_check, amqp_check],
            stats=await _gather_service_stats(app_state),
        )

    @staticmethod
    async def liveness_check(app_state: AppStateLike) -> HealthStatus:
        """Healthy while the service runs, otherwise unhealthy."""
        if await _is_running(app_state):
            return HealthStatus.HEALTHY
        return HealthStatus.UNHEALTHY

    @staticmethod
    async def readiness_check(app_state: AppStateLike) -> HealthStatus:
        """Whether the running service can handle requests."""
        if not await _is_running(app_state):
            return HealthStatus.UNHEALTHY
        return (await _check_lobby_manager(app_state)).status

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "service": self.service,
            "version": self.version,
            "timestamp": _format_timestamp(self.timestamp),
            "checks": [c.to_dict() for c in self.checks],
            "stats": self.stats.to_dict(),
        }

    def to_json(self) -> str:
        """The report as pretty-printed JSON."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


async def _check_service_running(app_state: AppStateLike) -> ComponentCheck:
    start = time.perf_counter()
    if await _is_running(app_state):
        status, message = HealthStatus.HEALTHY, None
    else:
        status, message = HealthStatus.UNHEALTHY, "Service is not running"
    return ComponentCheck("service_running", status, message, _elapsed_ms(start))


async def _check_lobby_manager(app_state: AppStateLike) -> ComponentCheck:
    start = time.perf_counter()
    manager = getattr(app_state, "lobby_manager", None)
    if manager is None:
        status, message = HealthStatus.UNHEALTHY, "Cannot access lobby manager"
    else:
        try:
            await _resolve(manager.get_stats())
        except Exception as exc:
            logger.error("Lobby manager stats check failed: %s", exc)
            status, message = HealthStatus.DEGRADED, f"Stats check failed: {exc}"
        else:
            status, message = HealthStatus.HEALTHY, None
    return ComponentCheck("lobby_manager", status, message, _elapsed_ms(start))


def _check_amqp_health(app_state: AppStateLike) -> ComponentCheck:
    # The broker connection is assumed healthy while the service holds it.
    start = time.perf_counter()
    return ComponentCheck("amqp_connection", HealthStatus.HEALTHY, None, _elapsed_ms(start))


async def _gather_service_stats(app_state: AppStateLike) -> ServiceStats:
    manager = getattr(app_state, "lobby_manager", None)
    if manager is None:
        return ServiceStats()
    try:
        stats = await _resolve(manager.get_stats())
    except Exception as exc:
        logger.debug("Failed to get lobby stats for health check: %s", exc)
        return ServiceStats()
    return ServiceStats(
        active_lobbies=stats.active_lobbies,
        players_waiting=stats.players_waiting,
        games_started=stats.games_started,
        players_matched=stats.players_queued,
        uptime_info=(
            f"Lobbies created: {stats.lobbies_created}, cleaned: {stats.lobbies_cleaned}"
        ),
    )