import math
import time
from datetime import timedelta
from types import SimpleNamespace

import pytest

from parlor_room.collector import (
    Counter,
    Gauge,
    Histogram,
    MetricsCollector,
    Registry,
)
from parlor_room.types import LobbyType, PlayerType


@pytest.fixture
def collector():
    return MetricsCollector()


def test_collector_creation_registers_all_groups(collector):
    names = {family.name for family in collector.registry.gather()}
    assert "parlor_room_health_status" in names
    assert "parlor_room_lobbies_cleaned_total" in names
    assert "parlor_room_queue_processing_duration_seconds" in names
    assert collector.bot.bot_auth_failures_total.value == 0


def test_two_collectors_cannot_share_registry():
    registry = Registry()
    MetricsCollector(registry)
    with pytest.raises(ValueError):
        MetricsCollector(registry)


def test_queue_request_recording(collector):
    collector.record_queue_request(PlayerType.HUMAN, LobbyType.GENERAL, 0.1)
    assert collector.player.players_queued_total.labels("human", "general").value == 1
    hist = collector.performance.queue_processing_duration
    assert hist.count == 1
    assert hist.sum == pytest.approx(0.1)


def test_queue_request_accepts_timedelta(collector):
    collector.record_queue_request(PlayerType.BOT, LobbyType.ALL_BOT, timedelta(milliseconds=100))
    assert collector.player.players_queued_total.labels("bot", "allbot").value == 1
    assert collector.performance.queue_processing_duration.sum == pytest.approx(0.1)


def test_lobby_operations(collector):
    collector.record_lobby_created(LobbyType.GENERAL)
    collector.record_game_started(LobbyType.GENERAL, 2, 2)
    collector.record_bot_backfill(True)
    collector.record_rating_calculation(1e-6)
    assert collector.lobby.lobbies_created_total.labels("general").value == 1
    assert collector.lobby.active_lobbies.labels("general").value == 1
    assert collector.lobby.games_started_total.labels("general").value == 1
    assert collector.bot.bot_utilization.labels("general").value == 0.5
    assert collector.bot.backfill_operations_total.labels("success").value == 1
    assert collector.performance.rating_calculation_duration.count == 1


def test_game_started_without_players_leaves_utilization_unset(collector):
    collector.record_game_started(LobbyType.ALL_BOT, 0, 0)
    assert collector.lobby.games_started_total.labels("allbot").value == 1
    text = collector.registry.encode_text()
    assert "parlor_room_bot_utilization{" not in text


def test_failed_backfill(collector):
    collector.record_bot_backfill(False)
    assert collector.bot.backfill_operations_total.labels("failed").value == 1
    assert collector.bot.backfill_operations_total.labels("success").value == 0


def test_health_status_updates(collector):
    collector.update_health_status(2)
    collector.update_component_health("lobby_manager", True)
    collector.update_component_health("amqp", False)
    assert collector.service.health_status.value == 2
    assert collector.service.component_health.labels("lobby_manager").value == 1
    assert collector.service.component_health.labels("amqp").value == 0


def test_amqp_operation_error_counted(collector):
    collector.record_amqp_operation("publish", False, 0.02)
    collector.record_amqp_operation("publish", True, 0.01)
    assert collector.service.amqp_messages_total.labels("publish", "error").value == 1
    assert collector.service.amqp_messages_total.labels("publish", "success").value == 1
    assert collector.service.amqp_errors_total.labels("publish").value == 1
    assert collector.performance.amqp_operation_duration.labels("publish", "error").count == 1


def test_lobby_operation_duration(collector):
    collector.record_lobby_operation("join", 0.003)
    child = collector.performance.lobby_operation_duration.labels("join")
    buckets = dict(child.bucket_counts)
    assert buckets[0.001] == 0
    assert buckets[0.005] == 1
    assert buckets[math.inf] == 1


def test_update_from_lobby_stats(collector):
    stats = SimpleNamespace(
        lobbies_created=5,
        lobbies_cleaned=2,
        games_started=3,
        players_queued=12,
        active_lobbies=4,
        players_waiting=7,
    )
    collector.update_from_lobby_stats(stats)
    assert collector.lobby.lobbies_created_total.labels("total").value == 5
    assert collector.lobby.lobbies_cleaned_total.value == 2
    assert collector.lobby.games_started_total.labels("total").value == 3
    assert collector.player.players_queued_total.labels("total", "total").value == 12
    assert collector.lobby.active_lobbies.labels("total").value == 4
    assert collector.player.players_waiting.labels("total").value == 7


def test_metrics_timer(collector):
    timer = collector.start_timer()
    time.sleep(0.01)
    assert timer.elapsed() >= 0.01
    final = timer.stop()
    assert final >= 0.01
    time.sleep(0.005)
    assert timer.elapsed() == final


def test_counter_rejects_negative():
    counter = Counter("c_total", "help")
    with pytest.raises(ValueError):
        counter.inc(-1)


def test_labels_count_must_match():
    gauge = Gauge("g", "help", ["a", "b"])
    with pytest.raises(ValueError):
        gauge.labels("x")
    with pytest.raises(ValueError):
        gauge.set(1)


def test_invalid_metric_name():
    with pytest.raises(ValueError):
        Gauge("bad name", "help")


def test_histogram_buckets_must_increase():
    with pytest.raises(ValueError):
        Histogram("h", "help", buckets=[1.0, 0.5])


def test_encode_text_format():
    registry = Registry()
    gauge = registry.register(Gauge("parlor_room_health_status", "Health status"))
    gauge.set(2)
    hist = registry.register(Histogram("h_seconds", "Hist", buckets=[1.0, 2.0]))
    hist.observe(1.5)
    text = registry.encode_text()
    assert "# TYPE parlor_room_health_status gauge\nparlor_room_health_status 2\n" in text
    assert 'h_seconds_bucket{le="1"} 0' in text
    assert 'h_seconds_bucket{le="2"} 1' in text
    assert 'h_seconds_bucket{le="+Inf"} 1' in text
    assert "h_seconds_sum 1.5" in text
    assert "h_seconds_count 1" in text


def test_gather_skips_empty_labelled_metrics():
    registry = Registry()
    registry.register(Counter("labelled_total", "help", ["x"]))
    assert registry.gather() == []
    assert registry.encode_text() == ""


def test_label_values_escaped():
    registry = Registry()
    gauge = registry.register(Gauge("g", "help", ["name"]))
    gauge.labels('a"b').set(1)
    assert 'g{name="a\\"b"} 1' in registry.encode_text()


def test_collector_text_contains_prefix(collector):
    collector.record_lobby_created(LobbyType.GENERAL)
    text = collector.registry.encode_text()
    assert 'parlor_room_lobbies_created_total{lobby_type="general"} 1' in text