import json
from types import SimpleNamespace

import pytest

from parlor_room.service_health import (
    ComponentCheck,
    HealthCheck,
    HealthStatus,
    ServiceStats,
)


def _stats():
    return SimpleNamespace(
        active_lobbies=4,
        players_waiting=7,
        games_started=2,
        players_queued=9,
        lobbies_created=5,
        lobbies_cleaned=1,
    )


class FakeManager:
    def __init__(self, fail=False):
        self.fail = fail

    async def get_stats(self):
        if self.fail:
            raise RuntimeError("boom")
        return _stats()


class FakeApp:
    def __init__(self, running=True, manager=None, name="parlor-room"):
        self.running = running
        self.lobby_manager = manager
        self.service_name = name

    async def is_running(self):
        return self.running


@pytest.mark.asyncio
async def test_liveness_running():
    app = FakeApp(running=True, manager=FakeManager())
    assert await HealthCheck.liveness_check(app) is HealthStatus.HEALTHY


@pytest.mark.asyncio
async def test_liveness_not_running():
    app = FakeApp(running=False, manager=FakeManager())
    assert await HealthCheck.liveness_check(app) is HealthStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_readiness_variants():
    assert (
        await HealthCheck.readiness_check(FakeApp(False, FakeManager()))
        is HealthStatus.UNHEALTHY
    )
    assert await HealthCheck.readiness_check(FakeApp(True, FakeManager())) is HealthStatus.HEALTHY
    assert (
        await HealthCheck.readiness_check(FakeApp(True, FakeManager(fail=True)))
        is HealthStatus.DEGRADED
    )
    assert await HealthCheck.readiness_check(FakeApp(True, None)) is HealthStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_full_check_healthy(monkeypatch):
    monkeypatch.setenv("SERVICE_VERSION", "9.9.9")
    report = await HealthCheck.check(FakeApp(True, FakeManager(), name="svc"))
    assert report.status is HealthStatus.HEALTHY
    assert report.service == "svc"
    assert report.version == "9.9.9"
    assert [c.name for c in report.checks] == [
        "service_running",
        "lobby_manager",
        "amqp_connection",
    ]
    assert all(c.status is HealthStatus.HEALTHY for c in report.checks)
    assert report.stats.active_lobbies == 4
    assert report.stats.players_waiting == 7
    assert report.stats.games_started == 2
    assert report.stats.players_matched == 9
    assert report.stats.uptime_info == "Lobbies created: 5, cleaned: 1"


@pytest.mark.asyncio
async def test_full_check_not_running(monkeypatch):
    monkeypatch.delenv("SERVICE_VERSION", raising=False)
    report = await HealthCheck.check(FakeApp(False, FakeManager()))
    assert report.status is HealthStatus.UNHEALTHY
    assert report.version == "unknown"
    assert report.checks[0].message == "Service is not running"


@pytest.mark.asyncio
async def test_full_check_degraded_stats():
    report = await HealthCheck.check(FakeApp(True, FakeManager(fail=True)))
    assert report.status is HealthStatus.DEGRADED
    lobby = report.checks[1]
    assert lobby.status is HealthStatus.DEGRADED
    assert lobby.message.startswith("Stats check failed:")
    assert report.stats == ServiceStats()
    assert report.stats.uptime_info == "Service running"


@pytest.mark.asyncio
async def test_full_check_without_manager():
    report = await HealthCheck.check(FakeApp(True, None))
    assert report.status is HealthStatus.UNHEALTHY
    assert report.checks[1].message == "Cannot access lobby manager"
    assert report.stats.active_lobbies == 0


@pytest.mark.asyncio
async def test_to_json_round_trip():
    report = await HealthCheck.check(FakeApp(True, FakeManager()))
    data = json.loads(report.to_json())
    assert data["status"] == "healthy"
    assert data["service"] == report.service
    assert len(data["checks"]) == 3
    assert data["checks"][2]["name"] == "amqp_connection"
    assert data["checks"][0]["message"] is None
    assert data["stats"]["players_matched"] == report.stats.players_matched
    assert data["timestamp"].endswith("Z")


def test_component_check_to_dict():
    check = ComponentCheck("lobby_manager", HealthStatus.DEGRADED, "slow", 3)
    assert check.to_dict() == {
        "name": "lobby_manager",
        "status": "degraded",
        "message": "slow",
        "duration_ms": 3,
    }


def test_health_status_display_and_values():
    assert str(HealthStatus.HEALTHY) == "✅ healthy"
    assert str(HealthStatus.UNHEALTHY) == "❌ unhealthy"
    assert HealthStatus("degraded") is HealthStatus.DEGRADED