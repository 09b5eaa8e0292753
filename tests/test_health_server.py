from types import SimpleNamespace

import pytest
from starlette.testclient import TestClient

from parlor_room.collector import MetricsCollector
from parlor_room.health_server import (
    HealthEndpoints,
    HealthServer,
    HealthServerConfig,
    MetricsService,
)
from parlor_room.types import LobbyType


class _Manager:
    def __init__(self, fail=False):
        self.fail = fail

    async def get_stats(self):
        if self.fail:
            raise RuntimeError("stats unavailable")
        return SimpleNamespace(
            active_lobbies=3,
            players_waiting=7,
            games_started=5,
            players_queued=20,
            lobbies_created=8,
            lobbies_cleaned=2,
        )


class _AppState:
    def __init__(self, running=True, manager=None):
        self.service_name = "parlor-room"
        self.lobby_manager = manager if manager is not None else _Manager()
        self._running = running

    async def is_running(self):
        return self._running


def _client(app_state=None, collector=None):
    server = HealthServer(HealthServerConfig(), collector or MetricsCollector())
    if app_state is not None:
        server.with_app_state(app_state)
    return TestClient(server.create_app())


def test_root_endpoint():
    response = _client().get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["service"] == "parlor-room"
    assert body["endpoints"] == ["/health", "/ready", "/alive", "/metrics", "/stats"]


def test_metrics_endpoint():
    collector = MetricsCollector()
    collector.record_lobby_created(LobbyType.GENERAL)
    collector.update_health_status(2)
    response = _client(collector=collector).get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert 'parlor_room_lobbies_created_total{lobby_type="general"} 1' in response.text
    assert "parlor_room_health_status 2" in response.text


def test_health_endpoints_without_app_state():
    client = _client()
    for path in ("/health", "/ready", "/alive", "/stats"):
        assert client.get(path).status_code == 503


def test_lightweight_health_check_without_state_is_json():
    response = _client().get("/health")
    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "unhealthy"
    assert body["error"] == "Service not initialized"


def test_health_server_config():
    config = HealthServerConfig()
    assert config.port == 8080
    assert config.host == "0.0.0.0"
    custom = HealthServerConfig(port=9090, host="127.0.0.1")
    assert custom.port == 9090
    assert custom.host == "127.0.0.1"


def test_404_handling():
    assert _client().get("/nonexistent").status_code == 404


@pytest.mark.asyncio
async def test_health_endpoints_compatibility():
    collector = MetricsCollector()
    status = await HealthEndpoints.get_health_status(None)
    assert status["status"] == "unhealthy"
    text = await HealthEndpoints.get_metrics_text(collector)
    assert "parlor_room" in text


@pytest.mark.asyncio
async def test_health_status_with_running_state():
    status = await HealthEndpoints.get_health_status(_AppState())
    assert status == {"status": "healthy", "service": "parlor-room"}


def test_running_service_endpoints():
    client = _client(_AppState())
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    ready = client.get("/ready")
    assert (ready.status_code, ready.text) == (200, "Ready")
    alive = client.get("/alive")
    assert (alive.status_code, alive.text) == (200, "Alive")


def test_stopped_service_endpoints():
    client = _client(_AppState(running=False))
    assert client.get("/health").json()["status"] == "unhealthy"
    alive = client.get("/alive")
    assert (alive.status_code, alive.text) == (503, "Not alive")
    ready = client.get("/ready")
    assert (ready.status_code, ready.text) == (503, "Not ready")


def test_degraded_readiness():
    client = _client(_AppState(manager=_Manager(fail=True)))
    ready = client.get("/ready")
    assert (ready.status_code, ready.text) == (200, "Degraded but ready")


def test_stats_endpoint():
    response = _client(_AppState()).get("/stats")
    assert response.status_code == 200
    body = response.json()
    assert body["service"]["status"] == "healthy"
    assert body["service"]["uptime"] == "Lobbies created: 8, cleaned: 2"
    assert body["lobbies"] == {"active": 3, "games_started": 5}
    assert body["players"] == {"waiting": 7, "matched": 20}
    assert [c["name"] for c in body["components"]] == [
        "service_running",
        "lobby_manager",
        "amqp_connection",
    ]


def test_with_app_state_returns_same_server():
    server = HealthServer(HealthServerConfig(), MetricsCollector())
    state = _AppState()
    assert server.with_app_state(state) is server
    assert server.app_state is state


@pytest.mark.asyncio
async def test_start_rejects_invalid_address():
    server = HealthServer(HealthServerConfig(host="not an address"), MetricsCollector())
    with pytest.raises(ValueError):
        await server.start()


def test_metrics_service_exposes_parts():
    collector = MetricsCollector()
    server = HealthServer(HealthServerConfig(), collector)
    service = MetricsService(collector, server)
    assert service.collector is collector
    assert service.health_server is server