"""Metrics collection for the matchmaking service in the Prometheus text format."""

from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterable, Sequence, Union

from .types import LobbyType, PlayerType

TEXT_CONTENT_TYPE = "text/plain; version=0.0.4"

DEFAULT_BUCKETS: tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)

_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

Seconds = Union[float, int, timedelta]

_PLAYER_TYPE_LABELS = {PlayerType.HUMAN: "human", PlayerType.BOT: "bot"}
_LOBBY_TYPE_LABELS = {LobbyType.GENERAL: "general", LobbyType.ALL_BOT: "allbot"}


def _seconds(duration: Seconds) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


def _format_value(value: float) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


@dataclass(frozen=True)
class Sample:
    """One exposed time series value."""

    name: str
    labels: dict[str, str]
    value: float


@dataclass
class MetricFamily:
    """All samples of one metric, with its help text and type."""

    name: str
    help: str
    type: str
    samples: list[Sample] = field(default_factory=list)


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str, labelnames: Sequence[str] = ()) -> None:
        if not _METRIC_NAME.match(name):
            raise ValueError(f"invalid metric name: {name!r}")
        for label in labelnames:
            if not _LABEL_NAME.match(label) or label.startswith("__"):
                raise ValueError(f"invalid label name: {label!r}")
        if len(set(labelnames)) != len(labelnames):
            raise ValueError("duplicate label names")
        self.name = name
        self.help = help
        self.labelnames = tuple(labelnames)
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], Any] = {}
        if not self.labelnames:
            self._children[()] = self._new_child()

    def _new_child(self) -> Any:
        raise NotImplementedError

    def labels(self, *args: Any) -> Any:
        """The child series for the given label values, created on first use."""
        if len(args) != len(self.labelnames):
            raise ValueError(
                f"{self.name} expects {len(self.labelnames)} label values, got {len(args)}"
            )
        key = tuple(str(arg) for arg in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = self._new_child()
            return child

    def _unlabelled(self) -> Any:
        if self.labelnames:
            raise ValueError(f"{self.name} has labels; select a series with labels()")
        return self._children[()]

    def _series(self) -> list[tuple[dict[str, str], Any]]:
        with self._lock:
            items = sorted(self._children.items())
        return [(dict(zip(self.labelnames, key)), child) for key, child in items]

    def _samples(self) -> list[Sample]:
        return [Sample(self.name, labels, child.value) for labels, child in self._series()]


class _ValueChild:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: float = 0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class _CounterChild(_ValueChild):
    def inc(self, amount: float = 1) -> None:
        if amount < 0:
            raise ValueError("counters can only increase")
        with self._lock:
            self._value += amount


class _GaugeChild(_ValueChild):
    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def inc(self, amount: float = 1) -> None:
        with self._lock:
            self._value += amount

    def dec(self, amount: float = 1) -> None:
        with self._lock:
            self._value -= amount


class _HistogramChild:
    def __init__(self, buckets: tuple[float, ...]) -> None:
        self._lock = threading.Lock()
        self._buckets = buckets
        self._counts = [0] * len(buckets)
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            for position, upper in enumerate(self._buckets):
                if value <= upper:
                    self._counts[position] += 1
                    break
            self._sum += value
            self._count += 1

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def bucket_counts(self) -> list[tuple[float, int]]:
        """Cumulative count per upper bound, ending with +Inf."""
        with self._lock:
            result, running = [], 0
            for upper, count in zip(self._buckets, self._counts):
                running += count
                result.append((upper, running))
            result.append((math.inf, self._count))
            return result


class Counter(_Metric):
    """Monotonically increasing value."""

    kind = "counter"

    def _new_child(self) -> _CounterChild:
        return _CounterChild()

    def inc(self, amount: float = 1) -> None:
        self._unlabelled().inc(amount)

    def labels(self, *args: Any) -> _CounterChild:
        return super().labels(*args)

    @property
    def value(self) -> float:
        return self._unlabelled().value


class Gauge(_Metric):
    """Value that can go up and down."""

    kind = "gauge"

    def _new_child(self) -> _GaugeChild:
        return _GaugeChild()

    def set(self, value: float) -> None:
        self._unlabelled().set(value)

    def inc(self, amount: float = 1) -> None:
        self._unlabelled().inc(amount)

    def labels(self, *args: Any) -> _GaugeChild:
        return super().labels(*args)

    @property
    def value(self) -> float:
        return self._unlabelled().value


class Histogram(_Metric):
    """Distribution of observations in cumulative buckets."""

    kind = "histogram"

    def __init__(
        self,
        name: str,
        help: str,
        labelnames: Sequence[str] = (),
        buckets: Iterable[float] = DEFAULT_BUCKETS,
    ) -> None:
        bounds = tuple(float(b) for b in buckets if not math.isinf(b))
        if not bounds:
            raise ValueError("histogram needs at least one finite bucket")
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        if "le" in labelnames:
            raise ValueError("'le' is reserved for histogram buckets")
        self.buckets = bounds
        super().__init__(name, help, labelnames)

    def _new_child(self) -> _HistogramChild:
        return _HistogramChild(self.buckets)

    def observe(self, value: float) -> None:
        self._unlabelled().observe(value)

    def labels(self, *args: Any) -> _HistogramChild:
        return super().labels(*args)

    @property
    def count(self) -> int:
        return self._unlabelled().count

    @property
    def sum(self) -> float:
        return self._unlabelled().sum

    def _samples(self) -> list[Sample]:
        samples = []
        for labels, child in self._series():
            for upper, count in child.bucket_counts:
                samples.append(
                    Sample(f"{self.name}_bucket", {**labels, "le": _format_value(upper)}, count)
                )
            samples.append(Sample(f"{self.name}_sum", labels, child.sum))
            samples.append(Sample(f"{self.name}_count", labels, child.count))
        return samples


class Registry:
    """Holds metrics and renders them for scraping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, _Metric] = {}

    def register(self, metric: _Metric) -> _Metric:
        """Add a metric; raises ValueError if its name is already taken."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"duplicate metrics registration attempted: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    def gather(self) -> list[MetricFamily]:
        """Families with at least one sample, sorted by name."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        families = []
        for metric in metrics:
            samples = metric._samples()
            if samples:
                families.append(MetricFamily(metric.name, metric.help, metric.kind, samples))
        return families

    def encode_text(self) -> str:
        """All metrics in the Prometheus text exposition format."""
        lines = []
        for family in self.gather():
            lines.append(f"# HELP {family.name} {_escape_help(family.help)}")
            lines.append(f"# TYPE {family.name} {family.type}")
            for sample in family.samples:
                if sample.labels:
                    rendered = ",".join(
                        f'{key}="{_escape_label(value)}"' for key, value in sample.labels.items()
                    )
                    lines.append(f"{sample.name}{{{rendered}}} {_format_value(sample.value)}")
                else:
                    lines.append(f"{sample.name} {_format_value(sample.value)}")
        return "\n".join(lines) + "\n" if lines else ""


@dataclass
class ServiceMetrics:
    """Service-level metrics."""

    uptime_seconds: Gauge
    amqp_messages_total: Counter
    amqp_errors_total: Counter
    health_status: Gauge
    component_health: Gauge

    @classmethod
    def _create(cls, registry: Registry) -> ServiceMetrics:
        return cls(
            uptime_seconds=registry.register(
                Gauge("parlor_room_uptime_seconds", "Service uptime in seconds")
            ),
            amqp_messages_total=registry.register(
                Counter(
                    "parlor_room_amqp_messages_total",
                    "Total AMQP messages processed",
                    ["operation", "status"],
                )
            ),
            amqp_errors_total=registry.register(
                Counter("parlor_room_amqp_errors_total", "Total AMQP errors", ["operation"])
            ),
            health_status=registry.register(
                Gauge(
                    "parlor_room_health_status",
                    "Health status (0=unhealthy, 1=degraded, 2=healthy)",
                )
            ),
            component_health=registry.register(
                Gauge("parlor_room_component_health", "Component health status", ["component"])
            ),
        )


@dataclass
class LobbyMetrics:
    """Lobby-related metrics."""

    active_lobbies: Gauge
    lobbies_created_total: Counter
    lobbies_cleaned_total: Counter
    games_started_total: Counter
    lobby_utilization: Gauge
    lobby_wait_time_seconds: Histogram

    @classmethod
    def _create(cls, registry: Registry) -> LobbyMetrics:
        return cls(
            active_lobbies=registry.register(
                Gauge("parlor_room_active_lobbies", "Number of active lobbies", ["lobby_type"])
            ),
            lobbies_created_total=registry.register(
                Counter(
                    "parlor_room_lobbies_created_total", "Total lobbies created", ["lobby_type"]
                )
            ),
            lobbies_cleaned_total=registry.register(
                Counter("parlor_room_lobbies_cleaned_total", "Total lobbies cleaned up")
            ),
            games_started_total=registry.register(
                Counter("parlor_room_games_started_total", "Total games started", ["lobby_type"])
            ),
            lobby_utilization=registry.register(
                Gauge(
                    "parlor_room_lobby_utilization", "Lobby capacity utilization", ["lobby_type"]
                )
            ),
            lobby_wait_time_seconds=registry.register(
                Histogram(
                    "parlor_room_lobby_wait_time_seconds",
                    "Lobby wait time in seconds",
                    ["lobby_type"],
                )
            ),
        )


@dataclass
class PlayerMetrics:
    """Player-related metrics."""

    players_queued_total: Counter
    players_waiting: Gauge
    players_matched_total: Counter
    queue_wait_time_seconds: Histogram
    rating_distribution: Histogram

    @classmethod
    def _create(cls, registry: Registry) -> PlayerMetrics:
        return cls(
            players_queued_total=registry.register(
                Counter(
                    "parlor_room_players_queued_total",
                    "Total players queued",
                    ["player_type", "lobby_type"],
                )
            ),
            players_waiting=registry.register(
                Gauge(
                    "parlor_room_players_waiting",
                    "Players currently waiting in queue",
                    ["player_type"],
                )
            ),
            players_matched_total=registry.register(
                Counter(
                    "parlor_room_players_matched_total",
                    "Total players matched",
                    ["player_type", "lobby_type"],
                )
            ),
            queue_wait_time_seconds=registry.register(
                Histogram(
                    "parlor_room_queue_wait_time_seconds",
                    "Player queue wait time",
                    ["player_type", "lobby_type"],
                )
            ),
            rating_distribution=registry.register(
                Histogram(
                    "parlor_room_rating_distribution",
                    "Player rating distribution",
                    ["player_type"],
                    buckets=[500.0, 1000.0, 1200.0, 1400.0, 1600.0, 1800.0, 2000.0, 2500.0],
                )
            ),
        )


@dataclass
class BotMetrics:
    """Bot-related metrics."""

    active_bot_requests: Gauge
    backfill_operations_total: Counter
    backfill_success_rate: Gauge
    bot_utilization: Gauge
    bot_auth_failures_total: Counter

    @classmethod
    def _create(cls, registry: Registry) -> BotMetrics:
        return cls(
            active_bot_requests=registry.register(
                Gauge("parlor_room_active_bot_requests", "Active bot queue requests")
            ),
            backfill_operations_total=registry.register(
                Counter(
                    "parlor_room_backfill_operations_total", "Bot backfill operations", ["status"]
                )
            ),
            backfill_success_rate=registry.register(
                Gauge("parlor_room_backfill_success_rate", "Bot backfill success rate")
            ),
            bot_utilization=registry.register(
                Gauge("parlor_room_bot_utilization", "Bot utilization in lobbies", ["lobby_type"])
            ),
            bot_auth_failures_total=registry.register(
                Counter("parlor_room_bot_auth_failures_total", "Bot authentication failures")
            ),
        )


@dataclass
class PerformanceMetrics:
    """Timing and resource metrics."""

    queue_processing_duration: Histogram
    rating_calculation_duration: Histogram
    lobby_operation_duration: Histogram
    amqp_operation_duration: Histogram
    memory_usage_bytes: Gauge
    thread_pool_active: Gauge

    @classmethod
    def _create(cls, registry: Registry) -> PerformanceMetrics:
        return cls(
            queue_processing_duration=registry.register(
                Histogram(
                    "parlor_room_queue_processing_duration_seconds",
                    "Queue processing time",
                    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
                )
            ),
            rating_calculation_duration=registry.register(
                Histogram(
                    "parlor_room_rating_calculation_duration_seconds",
                    "Rating calculation time",
                    buckets=[0.0001, 0.001, 0.005, 0.01, 0.05, 0.1],
                )
            ),
            lobby_operation_duration=registry.register(
                Histogram(
                    "parlor_room_lobby_operation_duration_seconds",
                    "Lobby operation duration",
                    ["operation"],
                    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
                )
            ),
            amqp_operation_duration=registry.register(
                Histogram(
                    "parlor_room_amqp_operation_duration_seconds",
                    "AMQP operation duration",
                    ["operation", "status"],
                    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
                )
            ),
            memory_usage_bytes=registry.register(
                Gauge("parlor_room_memory_usage_bytes", "Memory usage in bytes")
            ),
            thread_pool_active=registry.register(
                Gauge("parlor_room_thread_pool_active", "Active threads in pool")
            ),
        )


class MetricsTimer:
    """Measures the time since it was started, in seconds."""

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._stopped: float | None = None

    def elapsed(self) -> float:
        """Seconds since the start, or until stop() if it was stopped."""
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return end - self._start

    def stop(self) -> float:
        """Freeze the timer and return the elapsed seconds."""
        if self._stopped is None:
            self._stopped = time.perf_counter()
        return self.elapsed()


class MetricsCollector:
    """All metrics of the matchmaking service, registered in one registry."""

    def __init__(self, registry: Registry | None = None) -> None:
        self.registry = registry if registry is not None else Registry()
        self.service = ServiceMetrics._create(self.registry)
        self.lobby = LobbyMetrics._create(self.registry)
        self.player = PlayerMetrics._create(self.registry)
        self.bot = BotMetrics._create(self.registry)
        self.performance = PerformanceMetrics._create(self.registry)

    def update_from_lobby_stats(self, stats: Any) -> None:
        """Add lobby manager totals and set current lobby and player gauges."""
        self.lobby.lobbies_created_total.labels("total").inc(stats.lobbies_created)
        self.lobby.lobbies_cleaned_total.inc(stats.lobbies_cleaned)
        self.lobby.games_started_total.labels("total").inc(stats.games_started)
        self.player.players_queued_total.labels("total", "total").inc(stats.players_queued)
        self.lobby.active_lobbies.labels("total").set(int(stats.active_lobbies))
        self.player.players_waiting.labels("total").set(int(stats.players_waiting))

    def record_queue_request(
        self, player_type: PlayerType, lobby_type: LobbyType, duration: Seconds
    ) -> None:
        """Count a processed queue request and its processing time."""
        self.player.players_queued_total.labels(
            _PLAYER_TYPE_LABELS[player_type], _LOBBY_TYPE_LABELS[lobby_type]
        ).inc()
        self.performance.queue_processing_duration.observe(_seconds(duration))

    def record_lobby_created(self, lobby_type: LobbyType) -> None:
        """Count a new lobby and raise the active lobby gauge."""
        label = _LOBBY_TYPE_LABELS[lobby_type]
        self.lobby.lobbies_created_total.labels(label).inc()
        self.lobby.active_lobbies.labels(label).inc()

    def record_game_started(self, lobby_type: LobbyType, human_count: int, bot_count: int) -> None:
        """Count a started game and record its share of bots."""
        label = _LOBBY_TYPE_LABELS[lobby_type]
        self.lobby.games_started_total.labels(label).inc()
        total = human_count + bot_count
        if total > 0:
            self.bot.bot_utilization.labels(label).set(bot_count / total)

    def record_bot_backfill(self, success: bool) -> None:
        """Count a backfill attempt by outcome."""
        self.bot.backfill_operations_total.labels("success" if success else "failed").inc()

    def record_rating_calculation(self, duration: Seconds) -> None:
        """Record how long a rating calculation took."""
        self.performance.rating_calculation_duration.observe(_seconds(duration))

    def record_lobby_operation(self, operation: str, duration: Seconds) -> None:
        """Record how long a lobby operation took."""
        self.performance.lobby_operation_duration.labels(operation).observe(_seconds(duration))

    def record_amqp_operation(self, operation: str, success: bool, duration: Seconds) -> None:
        """Count an AMQP operation, its failures and its duration."""
        status = "success" if success else "error"
        self.service.amqp_messages_total.labels(operation, status).inc()
        if not success:
            self.service.amqp_errors_total.labels(operation).inc()
        self.performance.amqp_operation_duration.labels(operation, status).observe(
            _seconds(duration)
        )

    def update_health_status(self, status: int) -> None:
        """Set overall health: 0 unhealthy, 1 degraded, 2 healthy."""
        self.service.health_status.set(int(status))

    def update_component_health(self, component: str, healthy: bool) -> None:
        """Set a component's health to 1 or 0."""
        self.service.component_health.labels(component).set(1 if healthy else 0)

    def start_timer(self) -> MetricsTimer:
        """A new running timer."""
        return MetricsTimer()